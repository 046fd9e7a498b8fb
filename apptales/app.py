# ==============================================================================
# Apptales CLI
# ==============================================================================
"""
Command-line interface for the apptales transition engine.

Usage:
    apptales --help
    apptales config show
    apptales db init
    apptales db reset -y
    apptales transitions compute [--project-id ID]
    apptales transitions recent --hours 6
    apptales transitions top -p PROJECT -e EVENT
    apptales transitions graph -p PROJECT -e EVENT --depth 3
    apptales transitions schedule
"""

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
import os

import typer

if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="apptales",
    help="Apptales user-flow transition engine CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

transitions_app = typer.Typer(
    help="Transition compute and query operations",
    no_args_is_help=True,
)
app.add_typer(transitions_app, name="transitions")

# Register transition commands from cli.transitions module
from apptales.cli.transitions import (
    transitions_compute,
    transitions_graph,
    transitions_recent,
    transitions_schedule,
    transitions_top,
)

transitions_app.command("compute")(transitions_compute)
transitions_app.command("recent")(transitions_recent)
transitions_app.command("top")(transitions_top)
transitions_app.command("graph")(transitions_graph)
transitions_app.command("schedule")(transitions_schedule)

db_app = typer.Typer(
    help="Database schema operations",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

# Register db commands from cli.db module
from apptales.cli.db import db_init, db_reset

db_app.command("init")(db_init)
db_app.command("reset")(db_reset)

config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Register config commands from cli.config module
from apptales.cli.config import config_show

config_app.command("show")(config_show)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
