"""Tests for background jobs and the job tracker."""

import pytest

from onboarding.jobs import (
    BackgroundJob,
    ItemSpec,
    ItemStatus,
    JobTracker,
    build_page_specs,
)
from onboarding.scraping import DataChunk, PageScraper, SimulatedPageScraper


class FlakyScraper(PageScraper):
    """Fails for the pages it is told to."""

    def __init__(self, failing: set[str]):
        self.failing = failing

    def scrape(self, page, context):
        if page in self.failing:
            raise RuntimeError(f"{page} unreachable")
        return [DataChunk(type="Main Content", content=page)]


def _specs():
    return [ItemSpec("A", "A", 3.0), ItemSpec("B", "B", 1.0), ItemSpec("C", "C", 5.0)]


class TestBackgroundJob:

    def test_requires_items(self):
        with pytest.raises(ValueError):
            BackgroundJob([])

    def test_rejects_duplicate_ids(self):
        with pytest.raises(ValueError):
            BackgroundJob([ItemSpec("A", "A", 1), ItemSpec("A", "A2", 2)])

    def test_completion_reported_once(self):
        job = BackgroundJob(_specs())
        assert not job.complete_item("B", [])
        assert not job.complete_item("A", [])
        assert job.complete_item("C", [])
        assert job.is_complete
        assert not job.complete_item("C", [])

    def test_terminal_item_is_not_overwritten(self):
        job = BackgroundJob(_specs())
        job.complete_item("A", [DataChunk("x", "y")])
        job.fail_item("A", "late failure")
        item = job.select("A")
        assert item.status == ItemStatus.COMPLETED
        assert item.error is None

    def test_failed_items_count_toward_completion(self):
        job = BackgroundJob(_specs())
        job.complete_item("A", [])
        job.fail_item("B", "timeout")
        assert job.fail_item("C", "timeout")
        assert job.is_complete
        assert job.completed_count == 1
        assert job.terminal_count == 3

    def test_select_returns_copy_in_current_state(self):
        job = BackgroundJob(_specs())
        pending = job.select("C")
        assert pending.status == ItemStatus.PENDING
        assert pending.result is None

        job.complete_item("C", [DataChunk("x", "y")])
        assert pending.status == ItemStatus.PENDING
        assert job.select("C").status == ItemStatus.COMPLETED

    def test_select_unknown_item(self):
        assert BackgroundJob(_specs()).select("Z") is None

    def test_to_list_keeps_declared_order(self):
        job = BackgroundJob(_specs())
        job.complete_item("B", [])
        assert [item["id"] for item in job.to_list()] == ["A", "B", "C"]


class TestBuildPageSpecs:

    def test_delays_are_staggered(self):
        specs = build_page_specs(["Home", "About Us", "Contact"], 2.0)
        assert [spec.delay for spec in specs] == [2.0, 4.0, 6.0]
        assert [spec.id for spec in specs] == ["Home", "About Us", "Contact"]


class TestJobTracker:

    def test_items_complete_independently(self, clock):
        done = []
        completed = []
        tracker = JobTracker(
            clock,
            SimulatedPageScraper(),
            on_item_done=lambda item: done.append(item.id),
            on_complete=completed.append,
        )
        assert tracker.start(_specs(), context={"company_name": "Acme"})

        clock.advance(1)
        assert done == ["B"]
        assert tracker.is_running
        assert tracker.select("A").status == ItemStatus.PENDING

        clock.advance(2)
        assert done == ["B", "A"]
        assert completed == []
        first = tracker.select("A")
        assert first.status == ItemStatus.COMPLETED
        assert len(first.result) == 4
        last = tracker.select("C")
        assert last.status == ItemStatus.PENDING
        assert last.result is None

        clock.advance(2)
        assert done == ["B", "A", "C"]
        assert len(completed) == 1
        assert tracker.is_complete
        assert not tracker.is_running

    def test_scraped_chunks(self, clock):
        tracker = JobTracker(clock, SimulatedPageScraper())
        tracker.start(build_page_specs(["Home"], 2.0), context={"company_name": "Acme"})
        clock.advance(2)

        item = tracker.select("Home")
        assert item.status == ItemStatus.COMPLETED
        assert [chunk.type for chunk in item.result] == [
            "Meta Information",
            "Main Content",
            "SEO Data",
            "Navigation Links",
        ]
        assert "Acme" in item.result[0].content

    def test_start_ignored_while_running(self, clock):
        tracker = JobTracker(clock, SimulatedPageScraper())
        assert tracker.start(_specs())
        first = tracker.job
        assert not tracker.start(_specs())
        assert tracker.job is first

    def test_restart_after_completion(self, clock):
        tracker = JobTracker(clock, SimulatedPageScraper())
        tracker.start(_specs())
        clock.advance(5)
        assert tracker.start(_specs())
        assert tracker.is_running

    def test_scraper_failure_marks_item_failed(self, clock):
        completed = []
        tracker = JobTracker(clock, FlakyScraper({"A"}), on_complete=completed.append)
        tracker.start(_specs())
        clock.advance(5)

        item = tracker.select("A")
        assert item.status == ItemStatus.FAILED
        assert "unreachable" in item.error
        assert len(completed) == 1

    def test_close_cancels_remaining_items(self, clock):
        tracker = JobTracker(clock, SimulatedPageScraper())
        tracker.start(_specs())
        clock.advance(1)
        tracker.close()
        clock.advance(10)

        assert tracker.job.pending_ids() == ["A", "C"]
        assert clock.pending == 0
