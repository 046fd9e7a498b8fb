#!/usr/bin/env python3
"""
Scheduled transition job runner.

Runs the recent-projects sweep every ``TRANSITIONS_JOB_INTERVAL_MINUTES`` and
a full sweep every ``TRANSITIONS_FULL_SWEEP_HOURS`` until SIGTERM/SIGINT.
Started by 'apptales transitions schedule'.

Usage:
    python -m apptales.job_runner
"""

import logging
import time

from apptales.base.runner import BaseRunner
from apptales.services.factory import postgresql_transition_service
from apptales.services.transition_job import TransitionJob
from apptales.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)


class TransitionJobRunner(BaseRunner):
    """Periodic transition sweeps with graceful shutdown."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        super().__init__(log_level=self._settings.log_level)
        self._last_full_sweep: float | None = None

    def _run(self) -> None:
        with postgresql_transition_service(self._settings) as (_, job):
            self.run_loop(job)

    def run_loop(self, job: TransitionJob) -> None:
        """Sweep until shutdown is requested."""
        cfg = self._settings.transitions
        interval = cfg.job_interval_minutes * 60
        full_sweep_every = cfg.full_sweep_hours * 3600

        logger.info(
            "Transition job runner started (interval=%dm, full sweep every %dh)",
            cfg.job_interval_minutes,
            cfg.full_sweep_hours,
        )
        while not self.shutdown_requested:
            now = time.monotonic()
            try:
                if self._last_full_sweep is None or now - self._last_full_sweep >= full_sweep_every:
                    job.compute_all_project_transitions()
                    self._last_full_sweep = now
                else:
                    job.compute_recent_project_transitions(cfg.recent_hours_threshold)
            except Exception:
                # Listing projects failed; per-project failures never reach here
                logger.exception("Transition sweep failed, retrying next interval")

            if self.wait(interval):
                break
        logger.info("Transition job runner stopped")


def main() -> None:
    TransitionJobRunner().run()


if __name__ == "__main__":
    main()
