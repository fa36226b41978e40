"""Worker for Odoo user provisioning.

Connects to Temporal, listens on the provisioning task queue and executes
membership workflows and provisioning activities.

Run with --queue <name> to poll a different queue than the configured one.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from core.observability.logging import configure_logging
from workflows.membership_workflow import (
    MemberJoinedWorkflow,
    MemberRemovedWorkflow,
    TASK_QUEUE,
)
from activities.provisioning import (
    check_member_provisioned,
    deactivate_member,
    get_provisioner,
    provision_member,
)


logger = logging.getLogger(__name__)

WORKFLOWS = [MemberJoinedWorkflow, MemberRemovedWorkflow]

ACTIVITIES = [
    check_member_provisioned,
    provision_member,
    deactivate_member,
]


async def run_worker(queue: str = None):
    """Start worker listening on the provisioning task queue.

    Args:
        queue: Task queue to poll (defaults to TEMPORAL_TASK_QUEUE or odoo-provisioning)

    Raises:
        Exception: If connection to Temporal fails
    """
    provisioner = None
    task_queue = queue or os.getenv("TEMPORAL_TASK_QUEUE", TASK_QUEUE)

    try:
        client = await get_temporal_client()
        logger.info(f"Connected to Temporal: {client.namespace}")

        # Fail fast on missing encryption key or bad policy file
        provisioner = get_provisioner()

        worker = Worker(
            client,
            task_queue=task_queue,
            workflows=WORKFLOWS,
            activities=ACTIVITIES,
        )

        logger.info(f"Worker created for queue '{task_queue}':")
        logger.info(f"  - Workflows: {len(WORKFLOWS)}")
        logger.info(f"  - Activities: {len(ACTIVITIES)}")
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise
    finally:
        if provisioner is not None:
            await provisioner.transport.close()


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Odoo Provisioning Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=None,
        help=f"Task queue to poll (default: {TASK_QUEUE})"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines"
    )

    args = parser.parse_args()
    configure_logging(level=logging.INFO, json_format=args.json_logs or None)
    asyncio.run(run_worker(queue=args.queue))


if __name__ == "__main__":
    main()
