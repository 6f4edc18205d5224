"""Terminal implementation of the launch workflow's interactive UI."""

import questionary
from prompt_toolkit.key_binding import merge_key_bindings
from questionary import Choice, Question
from rich.table import Table

from deck.cli import styles
from deck.cli.styles import Messages, Styles
from deck.launch.collaborators import MenuOption
from deck.ports.env_file import PortPlan


def escape_cancels(question: Question) -> Question:
    """Let ESC abort ``question`` the way Ctrl+C does."""
    app = question.application
    app.key_bindings = merge_key_bindings([app.key_bindings, styles.get_key_bindings()])
    return question


class QuestionaryUI:
    """Menus and confirmations rendered with questionary; tables with rich."""

    async def select(self, message: str, options: list[MenuOption]):
        choices = [Choice(option.label, value=option.value, disabled=option.disabled) for option in options]
        question = questionary.select(message, choices=choices, style=styles.custom_style)
        return await escape_cancels(question).ask_async()

    async def confirm(self, message: str, default: bool = False) -> bool:
        question = questionary.confirm(message, default=default, style=styles.custom_style)
        answer = await escape_cancels(question).ask_async()
        return bool(answer)

    def show_port_plan(self, plan: PortPlan) -> None:
        console = styles.console
        console.print(Messages.warning(f"Port conflicts in {plan.env_path}"))

        by_port = {change.old_port: change for change in plan.changes}
        keys = {port: key for key, port in plan.ports.items()}

        table = Table(border_style=Styles.BORDER_DIM)
        table.add_column("Key", style=Styles.LABEL)
        table.add_column("Port")
        table.add_column("Used by")
        table.add_column("Severity")
        table.add_column("Proposed", style=Styles.SUCCESS)

        for conflict in plan.conflicts:
            owner = conflict.occupying_process
            used_by = f"{owner.process_name} (PID {owner.process_id})" if owner else "unknown"
            if conflict.service_type_guess:
                used_by += f", likely {conflict.service_type_guess}"
            change = by_port.get(conflict.port)
            table.add_row(
                keys.get(conflict.port, "?"),
                str(conflict.port),
                used_by,
                conflict.severity.name.lower(),
                str(change.new_port) if change else "none available",
            )
        console.print(table)

        for port, suggestions in plan.suggestions.items():
            for suggestion in suggestions[:3]:
                line = f"  {port}: {suggestion.description}"
                if suggestion.command:
                    line += f"  {Messages.command(suggestion.command)}"
                console.print(line, style=Styles.DIM)
