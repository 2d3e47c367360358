"""Tests for the background event loop and stale directory cleanup."""

import asyncio
import os
import time

from securecode.runtime import AnalysisRuntime
from securecode.temp_cleanup import cleanup_job_temp_dirs


class TestAnalysisRuntime:
    def test_call_returns_result(self):
        runtime = AnalysisRuntime().start()
        try:
            async def add(a, b):
                await asyncio.sleep(0)
                return a + b

            assert runtime.running
            assert runtime.call(add(2, 3), 5) == 5
        finally:
            runtime.stop()

        assert not runtime.running

    def test_stop_runs_drain_then_cancels_leftovers(self):
        runtime = AnalysisRuntime().start()
        drained = []
        cancelled = []

        async def forever():
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        async def spawn():
            asyncio.get_running_loop().create_task(forever())
            await asyncio.sleep(0)

        async def drain():
            drained.append(True)

        runtime.call(spawn(), 5)
        runtime.stop(drain())

        assert drained == [True]
        assert cancelled == [True]
        assert not runtime.running

    def test_stop_is_idempotent(self):
        runtime = AnalysisRuntime().start()
        runtime.stop()
        runtime.stop()

        assert not runtime.running


def _age(path, seconds):
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


class TestCleanupJobTempDirs:
    def test_removes_only_old_job_dirs(self, tmp_path):
        (tmp_path / "securecode_job_abc").mkdir()
        (tmp_path / "securecode_job_abc" / "a.py").write_text("x")
        (tmp_path / "securecode_job_def").mkdir()
        (tmp_path / "other_dir").mkdir()
        for name in ("securecode_job_abc", "securecode_job_def", "other_dir"):
            _age(tmp_path / name, 7200)

        removed = cleanup_job_temp_dirs(str(tmp_path), max_age=3600)

        assert removed == 2
        assert sorted(os.listdir(tmp_path)) == ["other_dir"]

    def test_keeps_recent_job_dirs(self, tmp_path):
        (tmp_path / "securecode_job_old").mkdir()
        _age(tmp_path / "securecode_job_old", 7200)
        (tmp_path / "securecode_job_live").mkdir()
        (tmp_path / "securecode_job_live" / "a.py").write_text("x")

        removed = cleanup_job_temp_dirs(str(tmp_path), max_age=3600)

        assert removed == 1
        assert sorted(os.listdir(tmp_path)) == ["securecode_job_live"]
        assert (tmp_path / "securecode_job_live" / "a.py").exists()

    def test_missing_base_dir(self, tmp_path):
        assert cleanup_job_temp_dirs(str(tmp_path / "missing")) == 0
