# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration commands for the apptales CLI.
"""

import json
from typing import Annotated

import typer

from apptales.cli.shared import C
from apptales.utils.config import get_settings


# ==============================================================================
# Commands
# ==============================================================================


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()
    pg = settings.postgres
    tr = settings.transitions

    if json_output:
        config = {
            "postgresql": {
                "host": pg.host,
                "port": pg.port,
                "database": pg.database,
                "schema": pg.schema_name,
                "user": pg.user,
                "password": pg.password,
                "sslmode": pg.sslmode,
                "pool_min_connections": pg.pool_min_connections,
                "pool_max_connections": pg.pool_max_connections,
            },
            "transitions": tr.model_dump(),
            "log_level": settings.log_level,
        }
        print(json.dumps(config, indent=2))
        return

    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    print(f"{C.CYAN}PostgreSQL{C.RESET}")
    print(f"  Host:       {C.WHITE}{pg.host}{C.RESET}")
    print(f"  Port:       {C.WHITE}{pg.port}{C.RESET}")
    print(f"  Database:   {C.WHITE}{pg.database}{C.RESET}")
    print(f"  Schema:     {C.WHITE}{pg.schema_name}{C.RESET}")
    print(f"  User:       {C.WHITE}{pg.user}{C.RESET}")
    print(f"  SSL:        {C.WHITE}{pg.sslmode}{C.RESET}")
    print(f"  Pool:       {C.WHITE}{pg.pool_min_connections}-{pg.pool_max_connections}{C.RESET}")
    print()

    print(f"{C.CYAN}Transitions{C.RESET}")
    print(f"  Top N:      {C.WHITE}{tr.default_top_n} (max {tr.max_top_n}){C.RESET}")
    print(f"  Depth:      {C.WHITE}{tr.default_depth} (max {tr.max_depth}){C.RESET}")
    print(f"  Timeout:    {C.WHITE}{tr.compute_timeout_seconds:g}s{C.RESET}")
    avg_mode = "weighted" if tr.incremental_weighted_avg else "replace"
    print(f"  Avg mode:   {C.WHITE}{avg_mode}{C.RESET}")
    print(f"  Workers:    {C.WHITE}{tr.job_max_workers} jobs, {tr.graph_query_workers} graph{C.RESET}")
    print(
        f"  Schedule:   {C.WHITE}every {tr.job_interval_minutes}m "
        f"(last {tr.recent_hours_threshold}h), full every {tr.full_sweep_hours}h{C.RESET}"
    )
    print()
