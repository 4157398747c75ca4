"""
APScheduler Configuration for Pending-Order Expiry

A pending order must not outlive its payment intent. Successful and failed
payments remove it through the webhook; this periodic sweep handles
abandoned checkouts by canceling the intent at the gateway and then
deleting the pending order.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.executors.asyncio import AsyncIOExecutor
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db.models import PendingOrderModel
from .order_materializer import discard_pending_order
from .payment_gateway import StripeGateway, get_payment_gateway

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "pending_order_sweep"


# ============================================================================
# Sweep Job
# ============================================================================

async def sweep_expired_pending_orders(
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    gateway: Optional[StripeGateway] = None,
    now: Optional[datetime] = None
) -> int:
    """
    Cancel and delete pending orders older than the configured TTL.

    A pending order whose intent already succeeded is left alone: the
    success webhook is on its way and will materialize it.

    Returns:
        Number of pending orders deleted
    """
    if session_factory is None:
        from ..db.init_db import AsyncSessionLocal
        session_factory = AsyncSessionLocal
    gateway = gateway or get_payment_gateway()
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=settings.pending_order_ttl_minutes)

    removed = 0
    async with session_factory() as db:
        result = await db.execute(
            select(PendingOrderModel.id).where(PendingOrderModel.created_at < cutoff)
        )
        expired_ids = list(result.scalars().all())

        for intent_id in expired_ids:
            if not await gateway.cancel_payment_intent(intent_id):
                logger.info(f"Pending order {intent_id} kept: intent not cancelable, waiting for webhook")
                continue
            if await discard_pending_order(db, intent_id):
                removed += 1

    if expired_ids:
        logger.info(f"Pending-order sweep: {removed}/{len(expired_ids)} expired records removed")

    return removed


# ============================================================================
# Scheduler
# ============================================================================

class PendingOrderScheduler:
    """
    Singleton scheduler for the pending-order sweep.

    The sweep is re-registered on every startup, so an in-memory job store
    is enough.
    """

    _instance: Optional["PendingOrderScheduler"] = None
    _scheduler: Optional[AsyncIOScheduler] = None

    def __new__(cls):
        """Singleton pattern to ensure only one scheduler instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize scheduler if not already initialized."""
        if self._scheduler is None:
            self._initialize_scheduler()

    def _initialize_scheduler(self):
        """
        Configure APScheduler.

        - AsyncIOExecutor so the sweep runs on the app's event loop
        - Coalesce: True (skip missed runs)
        - Max instances: 1 (sweeps never overlap)
        """
        executors = {
            'default': AsyncIOExecutor()
        }

        job_defaults = {
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 300  # 5 minutes grace period for misfires
        }

        self._scheduler = AsyncIOScheduler(
            executors=executors,
            job_defaults=job_defaults,
            timezone='UTC'
        )

        logger.info("APScheduler initialized for pending-order sweep")

    def start(self):
        """
        Start the scheduler and register the sweep.

        Should be called during FastAPI app startup.
        """
        if self._scheduler.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler.add_job(
            sweep_expired_pending_orders,
            trigger=IntervalTrigger(minutes=settings.pending_order_sweep_interval_minutes),
            id=SWEEP_JOB_ID,
            name="Sweep expired pending orders",
            replace_existing=True
        )
        self._scheduler.start()

        job = self._scheduler.get_job(SWEEP_JOB_ID)
        logger.info(f"Scheduler started. Sweep next_run={job.next_run_time}")

    def shutdown(self, wait: bool = True):
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: Wait for running jobs to complete before shutdown
        """
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info(f"Scheduler shutdown (wait={wait})")


# ============================================================================
# Scheduler Lifecycle Functions (for FastAPI integration)
# ============================================================================

def start_scheduler():
    """Start the sweep scheduler (FastAPI lifespan startup)."""
    PendingOrderScheduler().start()


def shutdown_scheduler(wait: bool = True):
    """Stop the sweep scheduler (FastAPI lifespan shutdown)."""
    PendingOrderScheduler().shutdown(wait=wait)
