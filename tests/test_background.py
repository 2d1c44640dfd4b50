"""Tests for detached side effects."""

from fam_calendar.core.background import DetachedTask


def explode():
    raise RuntimeError("boom")


class TestDetachedTask:
    def test_runs_function(self):
        calls = []
        task = DetachedTask("record", calls.append, "hit")
        task()
        assert calls == ["hit"]
        assert task.failed is False

    def test_failure_is_swallowed_and_reported(self):
        errors = []
        task = DetachedTask("explode", explode, on_error=errors.append)
        task()
        assert task.failed is True
        assert isinstance(task.error, RuntimeError)
        assert errors == [task.error]

    def test_failing_callback_is_swallowed(self):
        def bad_callback(error):
            raise ValueError("callback failed")

        task = DetachedTask("explode", explode, on_error=bad_callback)
        task()
        assert task.failed is True
