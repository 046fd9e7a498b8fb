# ==============================================================================
# Services
# ==============================================================================
"""
Orchestration on top of the core logic and the repository interfaces.

- transition_service.py: The transition engine (compute, top-K, graph)
- transition_job.py: Multi-project sweeps with per-project failure isolation
- factory.py: PostgreSQL wiring for the CLI and job runner
"""

from apptales.services.transition_job import JobSummary, TransitionJob
from apptales.services.transition_service import ComputeStats, TransitionService

__all__ = [
    "ComputeStats",
    "JobSummary",
    "TransitionJob",
    "TransitionService",
]
