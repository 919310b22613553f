"""
Unit tests for the background scratch sweeper.

Uses an injected clock and explicit file mtimes instead of sleeping.
"""

import asyncio
import os
from unittest.mock import patch

import pytest

from raster_service.sweeper import TempSweeper

NOW = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _touch(path, mtime: float):
    path.write_bytes(b"x")
    os.utime(path, (mtime, mtime))
    return path


class TestSweepOnce:
    """Tests for TempSweeper.sweep_once."""

    def test_removes_only_files_older_than_retention(self, scratch_dir):
        old = _touch(scratch_dir / "old.pdf", NOW - 7200)
        fresh = _touch(scratch_dir / "fresh.pdf", NOW - 60)
        sweeper = TempSweeper(scratch_dir, retention_seconds=3600, clock=FakeClock())

        assert sweeper.sweep_once() == 1
        assert not old.exists()
        assert fresh.exists()

    def test_advancing_clock_expires_files(self, scratch_dir):
        path = _touch(scratch_dir / "page-1.jpg", NOW)
        clock = FakeClock()
        sweeper = TempSweeper(scratch_dir, retention_seconds=3600, clock=clock)

        assert sweeper.sweep_once() == 0
        clock.now += 3601
        assert sweeper.sweep_once() == 1
        assert not path.exists()

    def test_max_age_zero_removes_everything(self, scratch_dir):
        _touch(scratch_dir / "a.pdf", NOW - 1)
        _touch(scratch_dir / "b.jpg", NOW)
        sweeper = TempSweeper(scratch_dir, retention_seconds=3600, clock=FakeClock())

        assert sweeper.sweep_once(max_age=0) == 2
        assert list(scratch_dir.iterdir()) == []

    def test_skips_directories(self, scratch_dir):
        (scratch_dir / "subdir").mkdir()
        sweeper = TempSweeper(scratch_dir, retention_seconds=0, clock=FakeClock(NOW + 10**9))
        assert sweeper.sweep_once() == 0
        assert (scratch_dir / "subdir").is_dir()

    def test_missing_directory(self, tmp_path):
        sweeper = TempSweeper(tmp_path / "absent", clock=FakeClock())
        assert sweeper.sweep_once() == 0

    def test_tolerates_file_deleted_concurrently(self, scratch_dir):
        """A request may delete its own file between listing and unlink."""
        _touch(scratch_dir / "racing.pdf", NOW - 7200)
        survivor = _touch(scratch_dir / "old.pdf", NOW - 7200)
        sweeper = TempSweeper(scratch_dir, retention_seconds=3600, clock=FakeClock())

        real_unlink = type(survivor).unlink

        def racing_unlink(self, *args, **kwargs):
            if self.name == "racing.pdf":
                real_unlink(self)
                raise FileNotFoundError(self)
            return real_unlink(self, *args, **kwargs)

        with patch.object(type(survivor), "unlink", racing_unlink):
            removed = sweeper.sweep_once()

        assert removed == 1
        assert list(scratch_dir.iterdir()) == []

    @pytest.mark.parametrize(
        "kwargs",
        [{"interval_seconds": 0}, {"interval_seconds": -1}, {"retention_seconds": -1}],
    )
    def test_rejects_invalid_configuration(self, scratch_dir, kwargs):
        with pytest.raises(ValueError):
            TempSweeper(scratch_dir, **kwargs)


class TestSweeperTask:
    """Tests for the periodic asyncio task."""

    @pytest.mark.asyncio
    async def test_periodic_sweep_runs_and_stops(self, scratch_dir):
        clock = FakeClock()
        sweeper = TempSweeper(scratch_dir, interval_seconds=0.01, retention_seconds=3600, clock=clock)
        stale = _touch(scratch_dir / "stale.pdf", NOW - 7200)

        sweeper.start()
        assert sweeper.running
        for _ in range(100):
            if not stale.exists():
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert not stale.exists()
        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, scratch_dir):
        sweeper = TempSweeper(scratch_dir, interval_seconds=60)
        sweeper.start()
        task = sweeper._task
        sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_sweep_errors_do_not_kill_task(self, scratch_dir):
        sweeper = TempSweeper(scratch_dir, interval_seconds=0.01)
        calls = []

        def failing_sweep(max_age=None):
            calls.append(max_age)
            raise OSError("disk gone")

        sweeper.sweep_once = failing_sweep
        sweeper.start()
        for _ in range(100):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)

        assert len(calls) >= 2
        assert sweeper.running
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, scratch_dir):
        await TempSweeper(scratch_dir).stop()
