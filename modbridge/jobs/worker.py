"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the appropriate scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from modbridge.config import settings
from modbridge.infrastructure.observability.logging import (
    bind_job_context,
    get_logger,
    setup_logging,
)
from modbridge.jobs.mod_queue_check_job import (
    run_mod_queue_check_job,
    start_mod_queue_check_scheduler,
)
from modbridge.jobs.modmail_sync_job import run_modmail_sync_job, start_modmail_sync_scheduler
from modbridge.jobs.prune_job import run_prune_job, start_prune_scheduler
from modbridge.jobs.queue_worker_job import run_queue_worker_job, start_queue_worker_scheduler
from modbridge.jobs.spam_queue_check_job import (
    run_spam_queue_check_job,
    start_spam_queue_check_scheduler,
)

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[object]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "queue_worker": start_queue_worker_scheduler,
    "queue_worker_once": run_queue_worker_job,
    "prune": start_prune_scheduler,
    "prune_once": run_prune_job,
    "spam_queue_check": start_spam_queue_check_scheduler,
    "spam_queue_check_once": run_spam_queue_check_job,
    "mod_queue_check": start_mod_queue_check_scheduler,
    "mod_queue_check_once": run_mod_queue_check_job,
    "modmail_sync": start_modmail_sync_scheduler,
    "modmail_sync_once": run_modmail_sync_job,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "queue_worker").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    bind_job_context(name)
    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
