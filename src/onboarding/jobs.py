"""
Background job lifecycle for the onboarding wizard.

A BackgroundJob is an ordered list of items (one per website page) that each
move pending -> completed (or failed) on their own timer. Single-owner
module: all item mutations go through BackgroundJob methods, and only the
JobTracker of the step that started the job calls them.

Aggregate completion is derived from the items themselves after every
transition ("all items terminal"), never from a separate counter, and a
terminal item can't transition again, so completion is observed exactly
once whatever order the items finish in.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from .scraping import DataChunk, PageScraper
from .timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class ItemStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {ItemStatus.COMPLETED, ItemStatus.FAILED}


@dataclass
class ItemSpec:
    """What to run and when: item id, display label, delay in seconds."""

    id: str
    label: str
    delay: float


@dataclass
class JobItem:
    id: str
    label: str
    status: ItemStatus = ItemStatus.PENDING
    result: list[DataChunk] | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "status": self.status.value,
            "result": [{"type": c.type, "content": c.content} for c in self.result or []],
            "error": self.error,
        }


def build_page_specs(pages: Sequence[str], delay_seconds: float) -> list[ItemSpec]:
    """Page i finishes at (i + 1) * delay_seconds."""
    return [
        ItemSpec(id=page, label=page, delay=(index + 1) * delay_seconds)
        for index, page in enumerate(pages)
    ]


class BackgroundJob:
    """Ordered collection of independently completing items."""

    def __init__(self, specs: Sequence[ItemSpec]):
        if not specs:
            raise ValueError("A job needs at least one item")
        ids = [spec.id for spec in specs]
        if len(set(ids)) != len(ids):
            raise ValueError("Job item ids must be unique")
        self.items: list[JobItem] = [JobItem(id=spec.id, label=spec.label) for spec in specs]
        self._by_id = {item.id: item for item in self.items}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def is_complete(self) -> bool:
        return all(item.is_terminal for item in self.items)

    @property
    def completed_count(self) -> int:
        return sum(1 for item in self.items if item.status == ItemStatus.COMPLETED)

    @property
    def terminal_count(self) -> int:
        return sum(1 for item in self.items if item.is_terminal)

    def completed_ids(self) -> list[str]:
        return [item.id for item in self.items if item.status == ItemStatus.COMPLETED]

    def pending_ids(self) -> list[str]:
        return [item.id for item in self.items if not item.is_terminal]

    def select(self, item_id: str) -> JobItem | None:
        """Copy of the item in whatever state it is in right now."""
        item = self._by_id.get(item_id)
        if item is None:
            return None
        return replace(item, result=list(item.result) if item.result is not None else None)

    def to_list(self) -> list[dict]:
        return [item.to_dict() for item in self.items]

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def complete_item(self, item_id: str, result: list[DataChunk]) -> bool:
        """Mark an item completed. Returns True if this finished the job."""
        return self._transition(item_id, ItemStatus.COMPLETED, result=result)

    def fail_item(self, item_id: str, error: str) -> bool:
        """Mark an item failed. Returns True if this finished the job."""
        return self._transition(item_id, ItemStatus.FAILED, error=error)

    def _transition(
        self,
        item_id: str,
        status: ItemStatus,
        result: list[DataChunk] | None = None,
        error: str | None = None,
    ) -> bool:
        item = self._by_id[item_id]
        if item.is_terminal:
            logger.debug(f"Item {item_id} already {item.status.value}, ignoring")
            return False
        item.status = status
        item.result = result
        item.error = error
        return self.is_complete


class JobTracker:
    """
    Runs at most one BackgroundJob at a time for a step.

    Each item gets its own timer; items never wait on each other. The
    tracker keeps running after its step is left, only close() stops it.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        scraper: PageScraper,
        on_item_done: Callable[[JobItem], None] | None = None,
        on_complete: Callable[[BackgroundJob], None] | None = None,
    ):
        self.scheduler = scheduler
        self.scraper = scraper
        self.on_item_done = on_item_done
        self.on_complete = on_complete

        self.job: BackgroundJob | None = None
        self._handles: list[TimerHandle] = []
        self._context: dict[str, Any] = {}

    @property
    def is_running(self) -> bool:
        return self.job is not None and not self.job.is_complete

    @property
    def is_complete(self) -> bool:
        return self.job is not None and self.job.is_complete

    def start(self, specs: Sequence[ItemSpec], context: dict[str, Any] | None = None) -> bool:
        """Start a job. Ignored (returns False) while one is running."""
        if self.is_running:
            logger.debug("Job already running, start ignored")
            return False

        job = BackgroundJob(specs)
        self.job = job
        self._context = dict(context or {})
        self._handles = [
            self.scheduler.call_later(spec.delay, self._make_runner(job, spec.id))
            for spec in specs
        ]
        logger.info(f"Started background job with {len(specs)} items")
        return True

    def select(self, item_id: str) -> JobItem | None:
        if self.job is None:
            return None
        return self.job.select(item_id)

    def close(self) -> None:
        """Cancel every item still waiting for its timer."""
        for handle in self._handles:
            handle.cancel()
        self._handles = []

    def _make_runner(self, job: BackgroundJob, item_id: str) -> Callable[[], None]:
        return lambda: self._run_item(job, item_id)

    def _run_item(self, job: BackgroundJob, item_id: str) -> None:
        item = job.select(item_id)
        try:
            chunks = self.scraper.scrape(item.label, self._context)
        except Exception as e:
            logger.warning(f"Scraping {item.label} failed: {e}")
            finished = job.fail_item(item_id, str(e))
        else:
            finished = job.complete_item(item_id, chunks)

        if self.on_item_done:
            self.on_item_done(job.select(item_id))

        if finished:
            logger.info(
                f"Background job complete: {job.completed_count}/{len(job.items)} items succeeded"
            )
            if self.on_complete:
                self.on_complete(job)
