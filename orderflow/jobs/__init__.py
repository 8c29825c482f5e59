"""
Background Jobs Module

Handles scheduled tasks for:
- Auto-completion of delivered orders
"""

from orderflow.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from orderflow.jobs.order_jobs import auto_complete_orders

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "auto_complete_orders",
]
