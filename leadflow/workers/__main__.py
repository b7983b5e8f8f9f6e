"""
Entry point for workers.

    python -m leadflow.workers scheduler
    python -m leadflow.workers enroll <email|whatsapp>
    python -m leadflow.workers dispatch <email|whatsapp>
"""
import asyncio
import logging
import sys

from leadflow.core.logging import setup_logging

setup_logging()

logger = logging.getLogger(__name__)

PASSES = {
    "enroll": "enrollment",
    "dispatch": "dispatch",
}


def main():
    """Run the worker named on the command line."""
    if len(sys.argv) < 2:
        print("Usage: python -m leadflow.workers <worker_name> [channel]")
        print("Workers: scheduler, enroll <channel>, dispatch <channel>")
        sys.exit(1)

    worker_name = sys.argv[1]

    if worker_name == "scheduler":
        from leadflow.workers.scheduler import scheduler_loop
        logger.info("Starting scheduler...")
        asyncio.run(scheduler_loop())
    elif worker_name in PASSES:
        from leadflow.services.automations.types import Channel
        from leadflow.workers.passes import run_pass

        if len(sys.argv) < 3:
            logger.error(f"Worker {worker_name} needs a channel: email or whatsapp")
            sys.exit(1)
        try:
            channel = Channel(sys.argv[2])
        except ValueError:
            logger.error(f"Unknown channel: {sys.argv[2]}")
            sys.exit(1)

        asyncio.run(run_pass(PASSES[worker_name], channel))
    else:
        logger.error(f"Unknown worker: {worker_name}")
        sys.exit(1)


if __name__ == "__main__":
    main()
