"""
Order Workflow Jobs

- Auto-completion: approved orders whose latest delivery date has passed
  are moved to COMPLETED by the system actor.
"""

import logging
from typing import Dict, Any
from datetime import datetime, timezone

from orderflow.database import get_db_session
from orderflow.services.workflow_service import WorkflowService

logger = logging.getLogger(__name__)


async def auto_complete_orders() -> Dict[str, Any]:
    """
    Daily sweep over APPROVED orders.

    Opens its own session; the workflow service commits and sends the
    AutoCompleted notifications. Running it twice on the same day completes
    nothing the second time.
    """
    logger.info("Starting order auto-completion...")
    start_time = datetime.now(timezone.utc)

    try:
        async with get_db_session() as session:
            completed = await WorkflowService(session).run_auto_completion()
    except Exception as e:
        logger.error(f"Order auto-completion failed: {e}", exc_info=True)
        raise

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Order auto-completion finished: {completed} completed in {duration:.2f}s")

    return {
        "completed": completed,
        "run_at": start_time.isoformat(),
        "duration_seconds": duration,
    }
