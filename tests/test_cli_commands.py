# ==============================================================================
# Tests for CLI Commands
# ==============================================================================
"""
Tests for CLI command behavior.

The PostgreSQL service factory is patched with one yielding the in-memory
service and job, so commands run end to end without a database.
"""

import json
from contextlib import contextmanager
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from apptales.app import app

runner = CliRunner()


@pytest.fixture()
def cli_service(service, job):
    """Route `apptales transitions ...` to the in-memory service."""

    @contextmanager
    def fake_factory(settings=None):
        yield service, job

    with patch("apptales.cli.transitions.postgresql_transition_service", fake_factory):
        yield service


@pytest.fixture()
def seeded(cli_service, identities, seed_session):
    """Three A->B sessions and one A->C session in project p1."""
    for offset in (1, 2, 3):
        seed_session("p1", [("A", 0), ("B", offset)])
    seed_session("p1", [("A", 0), ("C", 4)])
    return cli_service


# ==============================================================================
# transitions compute / recent
# ==============================================================================


class TestTransitionsCompute:
    """Tests for `apptales transitions compute`."""

    def test_single_project_json(self, seeded):
        result = runner.invoke(app, ["transitions", "compute", "--project-id", "p1", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["project_id"] == "p1"
        assert data["sessions"] == 4
        assert data["transitions"] == 2

    def test_single_project_text(self, seeded):
        result = runner.invoke(app, ["transitions", "compute", "-p", "p1"])

        assert result.exit_code == 0
        assert "Transitions computed for" in result.output

    def test_unknown_project(self, cli_service):
        result = runner.invoke(app, ["transitions", "compute", "-p", "missing", "--json"])

        assert result.exit_code == 1
        assert "Project not found: missing" in json.loads(result.output)["error"]

    def test_all_projects(self, seeded, store):
        store.add_project("p2")

        result = runner.invoke(app, ["transitions", "compute", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["succeeded"] == ["p1", "p2"]
        assert data["failed"] == {}

    def test_all_projects_reports_failures(self, seeded, service):
        with patch.object(service, "compute_transitions_for_project", side_effect=RuntimeError("boom")):
            result = runner.invoke(app, ["transitions", "compute"])

        assert result.exit_code == 1
        assert "p1: boom" in result.output


class TestTransitionsRecent:
    """Tests for `apptales transitions recent`."""

    def test_no_active_projects(self, seeded):
        result = runner.invoke(app, ["transitions", "recent", "--hours", "1"])

        assert result.exit_code == 0
        assert "No active projects to process" in result.output


# ==============================================================================
# transitions top
# ==============================================================================


class TestTransitionsTop:
    """Tests for `apptales transitions top`."""

    def test_forward_json(self, seeded):
        seeded.compute_transitions_for_project("p1")

        result = runner.invoke(
            app, ["transitions", "top", "-p", "p1", "-e", "A", "--limit", "1", "--json"]
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {
                "toEvent": {"id": "B", "key": "page_view:/b"},
                "count": 3,
                "percentage": 75.0,
                "avgDurationMs": 2000,
            }
        ]

    def test_backward_json(self, seeded):
        seeded.compute_transitions_for_project("p1")

        result = runner.invoke(
            app, ["transitions", "top", "-p", "p1", "-e", "C", "--direction", "backward", "--json"]
        )

        assert result.exit_code == 0
        rows = json.loads(result.output)
        assert rows[0]["fromEvent"]["id"] == "A"

    def test_table(self, seeded):
        seeded.compute_transitions_for_project("p1")

        result = runner.invoke(app, ["transitions", "top", "-p", "p1", "-e", "A"])

        assert result.exit_code == 0
        assert "page_view:/b" in result.output
        assert "75.0%" in result.output

    def test_empty(self, seeded):
        result = runner.invoke(app, ["transitions", "top", "-p", "p1", "-e", "A"])

        assert result.exit_code == 0
        assert "No transitions found" in result.output

    def test_rejects_zero_limit(self, seeded):
        result = runner.invoke(app, ["transitions", "top", "-p", "p1", "-e", "A", "--limit", "0"])
        assert result.exit_code != 0


# ==============================================================================
# transitions graph
# ==============================================================================


class TestTransitionsGraph:
    """Tests for `apptales transitions graph`."""

    def test_json_computes_lazily(self, seeded):
        result = runner.invoke(
            app, ["transitions", "graph", "-p", "p1", "-e", "A", "--depth", "1", "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["anchor"]["id"] == "A"
        assert data["direction"] == "forward"
        assert {n["id"] for n in data["nodes"]} == {"A", "B", "C"}
        assert {(e["from"], e["to"], e["count"]) for e in data["edges"]} == {
            ("A", "B", 3),
            ("A", "C", 1),
        }

    def test_text(self, seeded):
        result = runner.invoke(app, ["transitions", "graph", "-p", "p1", "-e", "A", "--depth", "1"])

        assert result.exit_code == 0
        assert "Step 1" in result.output
        assert "page_view:/c" in result.output

    def test_out_of_bounds(self, seeded):
        result = runner.invoke(
            app, ["transitions", "graph", "-p", "p1", "-e", "A", "--depth", "9", "--json"]
        )

        assert result.exit_code == 1
        assert "depth" in json.loads(result.output)["error"]

    def test_unknown_anchor(self, seeded):
        result = runner.invoke(app, ["transitions", "graph", "-p", "p1", "-e", "nope"])

        assert result.exit_code == 1
        assert "Event identity not found: nope" in result.output


# ==============================================================================
# db / config
# ==============================================================================


class TestDbCommands:
    """Tests for `apptales db init` and `apptales db reset`."""

    def test_init_creates_schema(self):
        with patch("apptales.cli.db.ensure_schema", return_value=True) as ensure:
            result = runner.invoke(app, ["db", "init"])

        assert result.exit_code == 0
        assert "Schema created" in result.output
        ensure.assert_called_once()

    def test_init_existing_schema(self):
        with patch("apptales.cli.db.ensure_schema", return_value=False):
            result = runner.invoke(app, ["db", "init"])

        assert result.exit_code == 0
        assert "already exists" in result.output

    def test_init_failure(self):
        with patch("apptales.cli.db.ensure_schema", side_effect=RuntimeError("no schema file")):
            result = runner.invoke(app, ["db", "init"])

        assert result.exit_code == 1
        assert "no schema file" in result.output

    def test_reset_requires_connection(self):
        with patch("apptales.cli.db.check_db_connection", return_value=False), patch(
            "apptales.cli.db.reset_schema"
        ) as reset:
            result = runner.invoke(app, ["db", "reset", "-y"])

        assert result.exit_code == 1
        reset.assert_not_called()

    def test_reset_confirmed(self):
        with patch("apptales.cli.db.check_db_connection", return_value=True), patch(
            "apptales.cli.db.reset_schema"
        ) as reset:
            result = runner.invoke(app, ["db", "reset", "-y"])

        assert result.exit_code == 0
        reset.assert_called_once()

    def test_reset_aborted(self):
        with patch("apptales.cli.db.check_db_connection", return_value=True), patch(
            "apptales.cli.db.reset_schema"
        ) as reset:
            result = runner.invoke(app, ["db", "reset"], input="n\n")

        assert result.exit_code != 0
        reset.assert_not_called()


class TestConfigShow:
    """Tests for `apptales config show`."""

    def test_json(self):
        result = runner.invoke(app, ["config", "show", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert set(data) == {"postgresql", "transitions", "log_level"}
        assert data["transitions"]["max_depth"] >= 1

    def test_text(self):
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "PostgreSQL" in result.output
        assert "Transitions" in result.output
