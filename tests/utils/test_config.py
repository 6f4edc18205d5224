"""Tests for the configuration layer: durations, the pydantic model,
``ConfigProvider`` and dot-path lookups."""

from datetime import timedelta

import pytest
import yaml
from pydantic import ValidationError

from deck.utils.config import (
    ConfigBuilder,
    ConfigProvider,
    DeckConfig,
    get_config_value,
    parse_duration,
    reset_config_cache,
)


def write_config(root, text):
    path = root / ".deck" / "config.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestParseDuration:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("24h", timedelta(hours=24)),
            ("30m", timedelta(minutes=30)),
            ("7d", timedelta(days=7)),
            ("45s", timedelta(seconds=45)),
            (" 2H ", timedelta(hours=2)),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "soon", "24", "h", "1.5h", "-1h"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(value)


class TestDeckConfig:
    """Defaults and validation of the typed model."""

    def test_defaults(self):
        config = DeckConfig()

        assert config.templates.branch == "main"
        assert config.templates.auto_update is True
        assert config.cache_ttl == timedelta(hours=24)
        assert config.container.engine == "podman"
        assert config.container.auto_install is True
        assert config.environments.port_offsets == {"Development": 0, "Test": 1000, "Production": 2000}
        assert config.cli.theme == "default"

    def test_partial_mapping_keeps_other_defaults(self):
        config = DeckConfig.model_validate({"templates": {"cache_ttl": "1h"}})

        assert config.cache_ttl == timedelta(hours=1)
        assert config.templates.branch == "main"
        assert config.logging.level == "INFO"

    def test_bad_cache_ttl_rejected(self):
        with pytest.raises(ValidationError):
            DeckConfig.model_validate({"templates": {"cache_ttl": "tomorrow"}})


class TestConfigProvider:
    def test_ensure_writes_defaults(self, tmp_path):
        provider = ConfigProvider(tmp_path)

        path = provider.ensure()

        assert path == tmp_path / ".deck" / "config.yml"
        assert path.read_text().startswith("# Deck project configuration")
        data = yaml.safe_load(path.read_text())
        assert data["templates"]["branch"] == "main"
        assert data["environments"]["port_offsets"]["Test"] == 1000

    def test_ensure_is_idempotent(self, tmp_path):
        path = write_config(tmp_path, "templates:\n  branch: develop\n")
        provider = ConfigProvider(tmp_path)

        provider.ensure()

        assert path.read_text() == "templates:\n  branch: develop\n"
        assert provider.get_config().templates.branch == "develop"

    def test_missing_file_gives_defaults(self, tmp_path):
        provider = ConfigProvider(tmp_path)

        assert not provider.exists()
        assert provider.get_config() == DeckConfig()
        assert provider.get("templates.branch", "fallback") == "fallback"

    def test_invalid_file_raises_value_error(self, tmp_path):
        write_config(tmp_path, "container:\n  auto_install: [1, 2]\n")

        with pytest.raises(ValueError, match="Invalid configuration"):
            ConfigProvider(tmp_path).get_config()

    def test_env_var_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DECK_TEST_BRANCH", "release")
        write_config(tmp_path, "templates:\n  branch: ${DECK_TEST_BRANCH}\n  repository: ${DECK_UNSET_REPO:-https://example.com/t.git}\n")

        config = ConfigProvider(tmp_path).get_config()

        assert config.templates.branch == "release"
        assert config.templates.repository == "https://example.com/t.git"


class TestConfigBuilder:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigBuilder(tmp_path / "nope.yml")

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = write_config(tmp_path, "")

        assert ConfigBuilder(path).raw_config == {}

    def test_non_mapping_rejected(self, tmp_path):
        path = write_config(tmp_path, "- just\n- a list\n")

        with pytest.raises(ValueError, match="must contain a mapping"):
            ConfigBuilder(path)


class TestGetConfigValue:
    def test_default_without_any_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert get_config_value("logging.level", "INFO") == "INFO"

    def test_explicit_path(self, tmp_path):
        path = write_config(tmp_path, "logging:\n  level: DEBUG\n")

        assert get_config_value("logging.level", "INFO", str(path)) == "DEBUG"
        assert get_config_value("logging.missing", 42, str(path)) == 42

    def test_deck_project_variable(self, tmp_path, monkeypatch):
        write_config(tmp_path, "cli:\n  theme: daylight\n")
        monkeypatch.setenv("DECK_PROJECT", str(tmp_path))

        assert get_config_value("cli.theme") == "daylight"

    def test_deck_config_variable_wins(self, tmp_path, monkeypatch):
        write_config(tmp_path, "cli:\n  theme: daylight\n")
        other = tmp_path / "other.yml"
        other.write_text("cli:\n  theme: default\n")
        monkeypatch.setenv("DECK_PROJECT", str(tmp_path))
        monkeypatch.setenv("DECK_CONFIG", str(other))

        assert get_config_value("cli.theme") == "default"

    def test_values_are_cached_until_reset(self, tmp_path):
        path = write_config(tmp_path, "cli:\n  theme: daylight\n")
        assert get_config_value("cli.theme", config_path=str(path)) == "daylight"

        path.write_text("cli:\n  theme: default\n")
        assert get_config_value("cli.theme", config_path=str(path)) == "daylight"

        reset_config_cache()
        assert get_config_value("cli.theme", config_path=str(path)) == "default"

    def test_empty_path_rejected(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            get_config_value("")
