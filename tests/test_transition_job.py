# ==============================================================================
# Tests for TransitionJob and TransitionJobRunner
# ==============================================================================
"""
Tests for multi-project sweeps.

Verifies that:
- A failing project is recorded and does not stop the sweep
- The recent sweep only picks projects with events inside the window
- The runner alternates full and recent sweeps and survives sweep errors
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from apptales.core.exceptions import ProjectNotFoundError
from apptales.job_runner import TransitionJobRunner
from apptales.services.transition_job import JobSummary, TransitionJob
from apptales.utils.config import PostgresSettings, Settings, TransitionSettings


@pytest.fixture()
def mock_service():
    service = MagicMock()
    service.settings = TransitionSettings(recent_hours_threshold=24, job_max_workers=2)
    return service


# ==============================================================================
# TransitionJob
# ==============================================================================


class TestComputeAllProjectTransitions:
    """Tests for compute_all_project_transitions()."""

    def test_failure_does_not_stop_sweep(self, mock_service):
        sessions = MagicMock()
        sessions.list_project_ids.return_value = ["p1", "p2", "p3"]

        def compute(project_id):
            if project_id == "p2":
                raise RuntimeError("boom")

        mock_service.compute_transitions_for_project.side_effect = compute
        job = TransitionJob(mock_service, sessions)

        summary = job.compute_all_project_transitions()

        assert summary.succeeded == ["p1", "p3"]
        assert summary.failed == {"p2": "boom"}
        assert summary.total == 3
        assert not summary.ok
        assert mock_service.compute_transitions_for_project.call_count == 3

    def test_no_projects(self, mock_service):
        sessions = MagicMock()
        sessions.list_project_ids.return_value = []

        summary = TransitionJob(mock_service, sessions).compute_all_project_transitions()

        assert summary.total == 0
        assert summary.ok
        mock_service.compute_transitions_for_project.assert_not_called()

    def test_listing_failure_propagates(self, mock_service):
        sessions = MagicMock()
        sessions.list_project_ids.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            TransitionJob(mock_service, sessions).compute_all_project_transitions()

    def test_real_service(self, job, store, service, transition_repo, identities, seed_session):
        store.add_project("p2")
        seed_session("p1", [("A", 0), ("B", 1)])
        seed_session("p2", [("B", 0), ("C", 1)])

        summary = job.compute_all_project_transitions()

        assert summary.succeeded == ["p1", "p2"]
        assert len(transition_repo.list_for_project("p1")) == 1
        assert len(transition_repo.list_for_project("p2")) == 1

    def test_summary_dict(self):
        summary = JobSummary(succeeded=["p1"], failed={"p2": "Project not found: p2"}, elapsed_ms=12.345)
        assert summary.to_dict() == {
            "succeeded": ["p1"],
            "failed": {"p2": "Project not found: p2"},
            "total": 2,
            "elapsed_ms": 12.3,
        }


class TestComputeRecentProjectTransitions:
    """Tests for compute_recent_project_transitions()."""

    def test_only_active_projects(self, job, store, transition_repo, identities, seed_session):
        store.add_project("p2")
        old = datetime.now(UTC) - timedelta(days=3)
        seed_session("p1", [("A", 0), ("B", 1)], start=old)
        seed_session("p2", [("A", 0), ("B", 1)], start=datetime.now(UTC) - timedelta(minutes=5))

        summary = job.compute_recent_project_transitions(24)

        assert summary.succeeded == ["p2"]
        assert transition_repo.list_for_project("p1") == []

    def test_default_window(self, mock_service):
        sessions = MagicMock()
        sessions.list_active_project_ids.return_value = []

        TransitionJob(mock_service, sessions).compute_recent_project_transitions()

        (since,) = sessions.list_active_project_ids.call_args.args
        expected = datetime.now(UTC) - timedelta(hours=24)
        assert abs((since - expected).total_seconds()) < 60

    def test_zero_hours_is_not_the_default(self, mock_service):
        sessions = MagicMock()
        sessions.list_active_project_ids.return_value = []

        TransitionJob(mock_service, sessions).compute_recent_project_transitions(0)

        (since,) = sessions.list_active_project_ids.call_args.args
        assert abs((datetime.now(UTC) - since).total_seconds()) < 60

    def test_records_not_found(self, mock_service):
        sessions = MagicMock()
        sessions.list_active_project_ids.return_value = ["gone"]
        mock_service.compute_transitions_for_project.side_effect = ProjectNotFoundError("gone")

        summary = TransitionJob(mock_service, sessions).compute_recent_project_transitions(1)

        assert summary.failed == {"gone": "Project not found: gone"}


# ==============================================================================
# TransitionJobRunner
# ==============================================================================


class TestTransitionJobRunner:
    """Tests for the scheduling loop."""

    def runner(self, **transition_overrides):
        settings = Settings(
            postgres=PostgresSettings(),
            transitions=TransitionSettings(**transition_overrides),
        )
        return TransitionJobRunner(settings)

    def test_first_sweep_is_full_then_recent(self):
        runner = self.runner(job_interval_minutes=1, full_sweep_hours=24, recent_hours_threshold=6)
        job = MagicMock()
        runner.wait = MagicMock(side_effect=[False, True])

        runner.run_loop(job)

        job.compute_all_project_transitions.assert_called_once()
        job.compute_recent_project_transitions.assert_called_once_with(6)
        runner.wait.assert_called_with(60)

    def test_sweep_error_is_logged_and_loop_continues(self):
        runner = self.runner()
        job = MagicMock()
        job.compute_all_project_transitions.side_effect = RuntimeError("db down")
        runner.wait = MagicMock(side_effect=[False, True])

        runner.run_loop(job)

        assert job.compute_all_project_transitions.call_count == 2

    def test_stops_when_shutdown_requested(self):
        runner = self.runner()
        runner.request_shutdown()
        job = MagicMock()

        runner.run_loop(job)

        job.compute_all_project_transitions.assert_not_called()
