# ==============================================================================
# Transition Job - Multi-Project Sweeps
# ==============================================================================
"""
Background sweeps that recompute transitions for many projects.

- compute_all_project_transitions(): every project
- compute_recent_project_transitions(hours): projects with events in the window

Projects are independent, so they are recomputed in parallel on a bounded
thread pool. A failing project is logged and recorded in the summary; the
sweep always continues with the remaining projects. Only a failure to list
the projects themselves aborts the sweep.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from apptales.base.repositories import SessionEventRepository
from apptales.services.transition_service import TransitionService

logger = logging.getLogger(__name__)


@dataclass
class JobSummary:
    """Outcome of one sweep.

    Attributes:
        succeeded: Project ids recomputed successfully
        failed: Project id -> error message for projects that failed
        elapsed_ms: Wall time of the sweep
    """

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total": self.total,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


class TransitionJob:
    """
    Sweeps projects through TransitionService.compute_transitions_for_project().

    Args:
        service: Transition engine
        session_events: Used to enumerate projects
        max_workers: Projects recomputed concurrently. Defaults to settings.
    """

    def __init__(
        self,
        service: TransitionService,
        session_events: SessionEventRepository,
        max_workers: int | None = None,
    ):
        self._service = service
        self._sessions = session_events
        self._max_workers = max(1, max_workers or service.settings.job_max_workers)

    def compute_all_project_transitions(self) -> JobSummary:
        """Recompute transitions for every project."""
        logger.info("Starting transition computation for all projects")
        project_ids = self._sessions.list_project_ids()
        logger.info("Found %d projects to process", len(project_ids))
        summary = self._run(project_ids)
        logger.info(
            "Completed transition computation for all projects: %d ok, %d failed (%.0fms)",
            len(summary.succeeded),
            len(summary.failed),
            summary.elapsed_ms,
        )
        return summary

    def compute_recent_project_transitions(self, hours_threshold: int | None = None) -> JobSummary:
        """Recompute transitions for projects with events in the last ``hours_threshold`` hours."""
        hours = hours_threshold
        if hours is None:
            hours = self._service.settings.recent_hours_threshold
        logger.info("Computing transitions for projects active in last %d hours", hours)
        cutoff = datetime.now(UTC) - timedelta(hours=hours)
        project_ids = self._sessions.list_active_project_ids(cutoff)
        logger.info("Found %d active projects", len(project_ids))
        summary = self._run(project_ids)
        logger.info(
            "Completed transition computation for active projects: %d ok, %d failed (%.0fms)",
            len(summary.succeeded),
            len(summary.failed),
            summary.elapsed_ms,
        )
        return summary

    def _run(self, project_ids: list[str]) -> JobSummary:
        start = time.monotonic()
        summary = JobSummary()
        if not project_ids:
            return summary

        workers = min(self._max_workers, len(project_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transitions") as executor:
            futures = {
                executor.submit(self._service.compute_transitions_for_project, pid): pid
                for pid in project_ids
            }
            for future in as_completed(futures):
                project_id = futures[future]
                try:
                    future.result()
                except Exception as e:
                    logger.exception("Failed to compute transitions for project %s", project_id)
                    summary.failed[project_id] = str(e)
                else:
                    summary.succeeded.append(project_id)

        summary.succeeded.sort()
        summary.elapsed_ms = (time.monotonic() - start) * 1000
        return summary
