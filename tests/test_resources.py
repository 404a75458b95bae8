"""Tests for transient resource naming and cleanup."""

import logging
import re

import pytest

from cmsprobe.errors import BackendUnreachable
from cmsprobe.evaluator.models import ResourceKind
from cmsprobe.evaluator.resources import TransientResourceTracker, unique_name


class TestUniqueName:
    def test_timestamp_suffix(self):
        assert re.fullmatch(r"test-branch-seq-1-\d{13}", unique_name("test-branch-seq-1"))

    def test_file_suffix(self):
        assert re.fullmatch(r"test-cache-\d{13}\.md", unique_name("test-cache", suffix=".md"))

    def test_unsafe_characters_replaced(self):
        assert unique_name("workflow test/branch").startswith("workflow-test-branch-")


class TestTransientResourceTracker:
    async def test_cleanup_runs_once_even_when_steps_raise(self):
        deleted = []

        async def deleter(resource):
            deleted.append(resource.identifier)

        tracker = TransientResourceTracker(deleter)
        with pytest.raises(RuntimeError):
            async with tracker:
                tracker.track_branch("a")
                tracker.track_branch("b")
                raise RuntimeError("step exploded")

        assert deleted == ["b", "a"]
        await tracker.cleanup()
        assert deleted == ["b", "a"]
        assert all(record.succeeded for record in tracker.records)

    async def test_failed_deletion_is_recorded_not_raised(self, caplog):
        async def deleter(resource):
            raise BackendUnreachable("Reference does not exist", status_code=422)

        tracker = TransientResourceTracker(deleter)
        tracker.track_commit("abc123", "content/pages/test.md", "main")

        with caplog.at_level(logging.WARNING):
            records = await tracker.cleanup()

        assert len(records) == 1
        assert records[0].succeeded is False
        assert records[0].resource.kind == ResourceKind.COMMIT
        assert "Reference does not exist" in records[0].error
        assert "Could not delete" in caplog.text

    async def test_empty_tracker(self, caplog):
        async def deleter(resource):
            raise AssertionError("nothing to delete")

        tracker = TransientResourceTracker(deleter)
        with caplog.at_level(logging.INFO):
            assert await tracker.cleanup() == []
        assert "No transient resources" in caplog.text

    async def test_tracking_after_cleanup_rejected(self):
        async def deleter(resource):
            return None

        tracker = TransientResourceTracker(deleter)
        await tracker.cleanup()
        with pytest.raises(RuntimeError):
            tracker.track_branch("late")
