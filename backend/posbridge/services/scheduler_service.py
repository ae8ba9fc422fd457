# Overview: Wall-clock scheduler for token refresh, the daily sync sweep and price-table rendering.

from __future__ import annotations

import atexit
import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

import requests
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import Flask, current_app

from .category_sync_service import sync_categories
from .customer_sync_service import sync_customers
from .invoice_sync_service import sync_invoices_by_day
from .pricebook_sync_service import sync_pricebooks
from .product_sync_service import sync_products
from .purchase_order_sync_service import sync_recent_purchase_orders
from .sync_service import SyncSummary
from .upstream_client import UpstreamClient, build_client
from ..time_utils import today_in

logger = logging.getLogger(__name__)

JOB_REFRESH_TOKEN = "refresh-token"
JOB_DAILY_SWEEP = "daily-sweep"
JOB_PRICE_TABLES = "price-tables"

PRICE_TABLE_TIMEOUT_SECONDS = 60


@dataclass
class SweepResult:
    steps: list[tuple[str, SyncSummary]] = field(default_factory=list)
    stopped_at: str | None = None

    @property
    def ok(self) -> bool:
        return self.stopped_at is None and all(summary.ok for _, summary in self.steps)

    def to_dict(self) -> dict:
        return {
            "success": self.ok,
            "stopped_at": self.stopped_at,
            "steps": {name: summary.to_dict() for name, summary in self.steps},
        }


def sweep_steps(today: date) -> list[tuple[str, Callable[[UpstreamClient], SyncSummary]]]:
    """Products first so invoice and pricebook rows can resolve product ids."""
    return [
        ("products", sync_products),
        ("categories", sync_categories),
        ("pricebooks", sync_pricebooks),
        ("customers", sync_customers),
        ("invoices", lambda client: sync_invoices_by_day(today.year, today.month, today.day, client)),
        ("purchase_orders", sync_recent_purchase_orders),
    ]


def run_sweep(client: UpstreamClient | None = None, today: date | None = None) -> SweepResult:
    """
    One daily sweep, strictly sequential.

    A step that fails fatally stops the remaining steps; the next
    scheduled sweep starts over from products.
    """
    client = client or build_client()
    if today is None:
        today = today_in(current_app.config.get("SCHEDULER_TIMEZONE", "Asia/Ho_Chi_Minh"))

    result = SweepResult()
    for name, step in sweep_steps(today):
        if client.cancelled:
            result.stopped_at = name
            logger.warning("Sweep cancelled before %s", name)
            break
        logger.info("Sweep step %s started", name)
        summary = step(client)
        result.steps.append((name, summary))
        if summary.fatal:
            result.stopped_at = name
            logger.error("Sweep stopped at %s: %s", name, summary.message)
            break
    else:
        logger.info("Sweep finished")
    return result


def trigger_price_tables(url: str | None, timeout: float = PRICE_TABLE_TIMEOUT_SECONDS) -> bool:
    """Ask the renderer to regenerate price table images; False when not configured."""
    if not url:
        logger.info("PRICE_TABLE_TRIGGER_URL not set; skipping price table rendering")
        return False
    response = requests.post(url, timeout=timeout)
    response.raise_for_status()
    logger.info("Price table rendering triggered (HTTP %s)", response.status_code)
    return True


class SyncScheduler:
    """
    APScheduler wrapper bound to one Flask app.

    Each job runs in a fresh app context. max_instances=1 with coalesce
    keeps a slow sweep from overlapping the next tick.
    """

    def __init__(self, app: Flask, scheduler: BackgroundScheduler | None = None, client_factory: Callable[[], UpstreamClient] | None = None):
        self.app = app
        self.timezone = app.config.get("SCHEDULER_TIMEZONE", "Asia/Ho_Chi_Minh")
        self.scheduler = scheduler or BackgroundScheduler(timezone=self.timezone)
        self._client_factory = client_factory or build_client
        self._client: UpstreamClient | None = None
        self._client_lock = threading.Lock()
        self._registered = False

    def _trigger(self, hour: int) -> CronTrigger:
        return CronTrigger(hour=hour, minute=0, timezone=self.timezone)

    def register_jobs(self) -> None:
        if self._registered:
            return
        options = {"max_instances": 1, "coalesce": True, "misfire_grace_time": 3600, "replace_existing": True}
        self.scheduler.add_job(self.refresh_token, self._trigger(1), id=JOB_REFRESH_TOKEN, **options)
        self.scheduler.add_job(self.daily_sweep, self._trigger(2), id=JOB_DAILY_SWEEP, **options)
        self.scheduler.add_job(self.price_tables, self._trigger(3), id=JOB_PRICE_TABLES, **options)
        self._registered = True

    def _new_client(self) -> UpstreamClient:
        client = self._client_factory()
        with self._client_lock:
            self._client = client
        return client

    def refresh_token(self) -> None:
        with self.app.app_context():
            self._new_client().refresh()

    def daily_sweep(self) -> SweepResult:
        with self.app.app_context():
            result = run_sweep(self._new_client())
            logger.info("Daily sweep result: %s", "ok" if result.ok else f"stopped at {result.stopped_at}")
            return result

    def price_tables(self) -> None:
        with self.app.app_context():
            trigger_price_tables(self.app.config.get("PRICE_TABLE_TRIGGER_URL"))

    def start(self) -> None:
        self.register_jobs()
        self.scheduler.start()
        atexit.register(self.shutdown)
        logger.info("Scheduler started (timezone=%s)", self.timezone)

    def shutdown(self) -> None:
        """Stop scheduling and abort the running sweep at its next request boundary."""
        with self._client_lock:
            if self._client is not None:
                self._client.cancel()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
