# ==============================================================================
# Database Commands
# ==============================================================================
"""
Database commands for the apptales CLI.

Commands for creating and resetting the PostgreSQL schema rendered from
schema/init.sql.
"""

from typing import Annotated

import typer

from apptales.cli.shared import C, I, fail, ok
from apptales.utils.config import get_settings
from apptales.utils.db import check_db_connection, ensure_schema, reset_schema


# ==============================================================================
# Commands
# ==============================================================================


def db_init() -> None:
    """Create the database and schema if they do not exist.

    Examples:
        apptales db init
    """
    settings = get_settings()
    schema_name = settings.postgres.schema_name

    print()
    print(f"  Initializing PostgreSQL schema '{C.WHITE}{schema_name}{C.RESET}'...")
    try:
        created = ensure_schema(settings)
    except Exception as e:
        fail(f"Failed to initialize PostgreSQL: {e}")

    if created:
        ok("Schema created")
    else:
        print(f"{C.BRIGHT_YELLOW}{I.WARN} Schema already exists{C.RESET}")
    print()


def db_reset(
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Drop and recreate the schema. Deletes all events and transitions.

    Examples:
        apptales db reset       # With confirmation prompt
        apptales db reset -y    # Skip confirmation
    """
    settings = get_settings()
    schema_name = settings.postgres.schema_name

    print()
    if not check_db_connection(settings):
        fail("Cannot connect to PostgreSQL")

    if not confirm:
        typer.confirm(
            f"This will DELETE all data in schema '{schema_name}'. Are you sure?",
            abort=True,
        )
        print()

    print(f"  Resetting PostgreSQL schema '{C.WHITE}{schema_name}{C.RESET}'...")
    try:
        reset_schema(settings)
    except Exception as e:
        fail(f"Failed to reset PostgreSQL: {e}")
    ok("PostgreSQL reset")
    print()
