"""Tests for Development → Test/Production rewrites."""

from unittest.mock import patch

import pytest

from deck.environment import (
    adjusted_port,
    apply_environment,
    container_name,
    environment_of,
    port_offset,
    project_name_for,
    rewrite_compose,
    rewrite_env,
)
from deck.models import EnvironmentType
from tests.conftest import DEFAULT_COMPOSE, make_resource


class TestEnvironmentType:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Development", EnvironmentType.DEVELOPMENT),
            ("dev", EnvironmentType.DEVELOPMENT),
            ("TEST", EnvironmentType.TEST),
            ("prod", EnvironmentType.PRODUCTION),
        ],
    )
    def test_parse(self, value, expected):
        assert EnvironmentType.parse(value) is expected

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            EnvironmentType.parse("staging")


class TestPortOffsets:
    def test_defaults(self):
        assert adjusted_port(8080, EnvironmentType.DEVELOPMENT) == 8080
        assert adjusted_port(8080, EnvironmentType.TEST) == 9080
        assert adjusted_port(8080, EnvironmentType.PRODUCTION) == 10080

    def test_configured_offsets_override(self):
        assert port_offset(EnvironmentType.TEST, {"Test": 500}) == 500
        assert port_offset(EnvironmentType.TEST, {"test": 700}) == 700
        assert port_offset(EnvironmentType.PRODUCTION, {"Test": 500}) == 2000


class TestNaming:
    def test_container_name_appends_suffix_once(self):
        assert container_name("app", EnvironmentType.TEST) == "app-test"
        assert container_name("app-test", EnvironmentType.TEST) == "app-test"

    def test_environment_of(self):
        assert environment_of("app-20261017-1200-prod") is EnvironmentType.PRODUCTION
        assert environment_of("app-20261017-1200-test") is EnvironmentType.TEST
        assert environment_of("app-20261017-1200-dev") is EnvironmentType.DEVELOPMENT
        assert environment_of("legacy") is EnvironmentType.DEVELOPMENT

    def test_project_name_matches_compose_container_name(self):
        image = "app-20261017-1200-test"
        project = project_name_for(image, EnvironmentType.TEST)
        assert f"{project}-test" == container_name(image, EnvironmentType.TEST)


class TestRewriteCompose:
    def test_development_is_identity(self):
        assert rewrite_compose(DEFAULT_COMPOSE, EnvironmentType.DEVELOPMENT, "x") == DEFAULT_COMPOSE

    def test_test_environment(self):
        rewritten = rewrite_compose(DEFAULT_COMPOSE, EnvironmentType.TEST, "demo")
        assert "app-test:" in rewritten
        assert "app-dev" not in rewritten
        assert "container_name: ${PROJECT_NAME:-demo}-test" in rewritten
        assert "hostname: ${PROJECT_NAME:-demo}-test" in rewritten

    def test_dev_command_dropped(self):
        compose = "services:\n  app-dev:\n    command: app-dev bash\n"
        assert "command: bash" in rewrite_compose(compose, EnvironmentType.PRODUCTION, "x")


class TestRewriteEnv:
    def test_shifts_ports_and_sets_markers(self):
        content = "WEB_PORT=8080\r\n# DOTNET_ENVIRONMENT=Development\r\nOTHER=1\r\n"

        rewritten = rewrite_env(content, EnvironmentType.TEST)

        assert rewritten == "WEB_PORT=9080\r\nDOTNET_ENVIRONMENT=Test\r\nOTHER=1\r\n"

    def test_development_leaves_ports(self):
        content = "WEB_PORT=8080\n"
        assert rewrite_env(content, EnvironmentType.DEVELOPMENT) == content

    def test_unrelated_comments_untouched(self):
        content = "# WEB_PORT is public\nWEB_PORT=8080\n"
        assert rewrite_env(content, EnvironmentType.PRODUCTION).startswith("# WEB_PORT is public\n")

    def test_quoted_port_keeps_its_quotes(self):
        content = "DEV_PORT=\"3000\"\nWEB_PORT='8080'\n"

        assert rewrite_env(content, EnvironmentType.TEST) == "DEV_PORT=\"4000\"\nWEB_PORT='9080'\n"

    def test_non_numeric_port_is_reported(self):
        content = "WEB_PORT=${HOST_WEB_PORT}\n"

        with patch("deck.environment.logger") as logger:
            assert rewrite_env(content, EnvironmentType.TEST) == content

        logger.warning.assert_called_once()
        assert "WEB_PORT" in logger.warning.call_args[0][0]


def test_apply_environment(tmp_path):
    directory = make_resource(tmp_path, "img")

    apply_environment(directory, EnvironmentType.PRODUCTION, "img")

    assert "app-prod:" in (directory / "compose.yaml").read_text()
    assert "WEB_PORT=10080" in (directory / ".env").read_text()
    assert "DEV_PORT=7000" in (directory / ".env").read_text()
