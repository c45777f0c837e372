"""
Scheduled tasks for the order workflow
Cancels orders that have waited for admin approval longer than the configured window
"""
import logging
from datetime import datetime, timezone, timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import PENDING_APPROVAL_EXPIRY_HOURS

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

EXPIRY_REASON = "Approval window expired"


async def expire_stale_orders(max_age_hours: int = PENDING_APPROVAL_EXPIRY_HOURS):
    """Cancel orders still pending admin approval after max_age_hours"""
    from database import db
    from models.order import OrderStatus
    from services import order_workflow
    from services.order_state import OrderStateError

    cutoff = (datetime.now(timezone.utc) - timedelta(hours=max_age_hours)).isoformat()
    stale = await db.orders.find(
        {"status": OrderStatus.PENDING_ADMIN_APPROVAL.value, "created_at": {"$lt": cutoff}},
        {"_id": 0}
    ).to_list(500)

    expired = []
    for order in stale:
        try:
            await order_workflow.cancel(order, order_workflow.SYSTEM_ACTOR, EXPIRY_REASON)
            expired.append(order["order_number"])
        except OrderStateError as e:
            # Approved or cancelled since it was read
            logger.info(f"Skipped expiry of {order['order_number']}: {e.message}")

    if expired:
        logger.info(f"Expired {len(expired)} orders pending approval: {', '.join(expired)}")
    return expired


def start_scheduler():
    """Start the APScheduler with the hourly expiry job, if an expiry window is configured"""
    if PENDING_APPROVAL_EXPIRY_HOURS <= 0:
        logger.info("Pending approval expiry disabled")
        return

    scheduler.add_job(
        expire_stale_orders,
        IntervalTrigger(hours=1),
        id="expire_pending_orders",
        name=f"Expire orders pending approval > {PENDING_APPROVAL_EXPIRY_HOURS}h",
        replace_existing=True
    )

    scheduler.start()
    logger.info(f"Scheduler started - pending orders expire after {PENDING_APPROVAL_EXPIRY_HOURS}h")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")


def get_scheduler_status():
    """Get status of scheduled jobs"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })
    return {
        "running": scheduler.running,
        "jobs": jobs
    }
