"""Tests for the keysync daemon."""

from __future__ import annotations

import threading
import time
from unittest.mock import patch

import pytest

from conftest import RSA_A, RSA_C
from keysync import MARKER
from keysync.daemon import DaemonState, SyncService, TriggerQueue, run_once
from keysync.errors import RemoteError
from keysync.models import ReconcileResult


class TestTriggerQueue:
    """Tests for the single-slot trigger queue."""

    def test_trigger_then_wait(self):
        q = TriggerQueue()
        assert q.trigger("startup") is True
        assert q.pending() is True
        assert q.wait(timeout=0.1) == "startup"
        assert q.pending() is False

    def test_burst_collapses(self):
        q = TriggerQueue()
        assert q.trigger("interval") is True
        assert q.trigger("reload") is False
        assert q.trigger("interval") is False
        assert q.wait(timeout=0.1) == "interval"
        assert q.wait(timeout=0.1) is None

    def test_wait_times_out(self):
        assert TriggerQueue().wait(timeout=0.05) is None

    def test_trigger_never_blocks(self):
        q = TriggerQueue()
        q.trigger("a")
        start = time.monotonic()
        for _ in range(100):
            q.trigger("b")
        assert time.monotonic() - start < 1


class TestDaemonState:
    """Tests for thread-safe DaemonState."""

    def test_initial_state(self):
        state = DaemonState()
        assert state.running is False
        assert state.cycles_completed == 0
        assert state.cycles_failed == 0

    def test_snapshot(self):
        snap = DaemonState().snapshot()
        assert snap["running"] is False
        assert snap["last_sync"] is None
        assert snap["recent_errors"] == []

    def test_record_sync(self):
        state = DaemonState()
        state.record_sync(ReconcileResult(added=[RSA_A, RSA_C], removed=[RSA_A]))
        state.record_sync(ReconcileResult())
        assert state.cycles_completed == 2
        assert state.keys_added == 2
        assert state.keys_removed == 1
        assert state.last_sync is not None

    def test_error_limit(self):
        state = DaemonState()
        for i in range(60):
            state.record_error(f"error-{i}")
        assert len(state.errors) == 50
        assert state.cycles_failed == 60
        assert len(state.snapshot()["recent_errors"]) == 10


class TestSyncService:
    """Tests for SyncService scheduling and cycles."""

    def test_run_cycle_success(self, sync_config, fake_fetcher):
        svc = SyncService(sync_config, fetcher=fake_fetcher)
        assert svc.run_cycle("manual") is True
        assert svc.state.cycles_completed == 1
        assert svc.state.keys_added == 2
        assert sync_config.authorized_keys_path.read_text() == (
            f"{RSA_A} {MARKER}\n{RSA_C} {MARKER}\n"
        )

    def test_run_cycle_failure_is_recorded_not_raised(self, sync_config, fake_fetcher):
        fake_fetcher.fetch.side_effect = RemoteError("invalid status code: 502", status_code=502)
        svc = SyncService(sync_config, fetcher=fake_fetcher)

        assert svc.run_cycle("interval") is False
        assert svc.state.cycles_failed == 1
        assert "could not get public keys" in svc.state.errors[0]

    def test_malformed_file_recorded(self, sync_config, fake_fetcher):
        sync_config.authorized_keys_path.write_text("\n")
        svc = SyncService(sync_config, fetcher=fake_fetcher)

        assert svc.run_cycle() is False
        assert "line 1" in svc.state.errors[0]
        assert sync_config.authorized_keys_path.read_text() == "\n"

    def test_start_queues_startup_cycle(self, sync_config, fake_fetcher):
        svc = SyncService(sync_config, fetcher=fake_fetcher)
        svc.start(install_signals=False)
        try:
            assert svc.state.running is True
            assert svc.queue.wait(timeout=1) == "startup"
        finally:
            svc.stop()
        assert svc.state.running is False

    def test_timer_triggers_interval(self, sync_config, fake_fetcher):
        config = sync_config.model_copy(update={"sync_interval": 0.1})
        svc = SyncService(config, fetcher=fake_fetcher)
        svc.start(install_signals=False)
        try:
            assert svc.queue.wait(timeout=1) == "startup"
            assert svc.queue.wait(timeout=2) == "interval"
        finally:
            svc.stop()

    def test_reload_request_triggers_cycle(self, sync_config, fake_fetcher):
        svc = SyncService(sync_config, fetcher=fake_fetcher)
        svc.start(install_signals=False)
        try:
            assert svc.queue.wait(timeout=1) == "startup"
            svc.request_reload()
            assert svc.queue.wait(timeout=2) == "reload"
        finally:
            svc.stop()

    def test_run_forever_runs_startup_cycle_then_stops(self, sync_config, fake_fetcher):
        svc = SyncService(sync_config, fetcher=fake_fetcher)
        svc.start(install_signals=False)

        worker = threading.Thread(target=svc.run_forever, daemon=True)
        worker.start()
        deadline = time.monotonic() + 5
        while svc.state.cycles_completed == 0 and time.monotonic() < deadline:
            time.sleep(0.05)
        svc.request_stop()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert svc.state.cycles_completed == 1
        assert fake_fetcher.fetch.call_count == 1

    def test_cycles_never_overlap(self, sync_config, fake_fetcher):
        active = []
        overlaps = []

        def slow_fetch(identity):
            active.append(identity)
            if len(active) > 1:
                overlaps.append(len(active))
            time.sleep(0.05)
            active.pop()
            return [RSA_A]

        fake_fetcher.fetch.side_effect = slow_fetch
        config = sync_config.model_copy(update={"sync_interval": 0.01})
        svc = SyncService(config, fetcher=fake_fetcher)
        svc.start(install_signals=False)

        worker = threading.Thread(target=svc.run_forever, daemon=True)
        worker.start()
        for _ in range(10):
            svc.request_reload()
            time.sleep(0.02)
        svc.request_stop()
        worker.join(timeout=5)

        assert overlaps == []
        assert svc.state.cycles_completed >= 1

    def test_signal_handlers_installed(self, sync_config, fake_fetcher):
        svc = SyncService(sync_config, fetcher=fake_fetcher)
        with patch("keysync.daemon.signal.signal") as mock_signal:
            svc._setup_signals()
        handlers = {call.args[1] for call in mock_signal.call_args_list}
        assert svc._handle_reload in handlers
        assert svc._handle_stop in handlers


class TestRunOnce:
    """Tests for one-shot mode."""

    def test_success(self, sync_config, fake_fetcher):
        status, result = run_once(sync_config, fake_fetcher)
        assert status == 0
        assert result.added == [RSA_A, RSA_C]

    def test_remote_failure_exit_code(self, sync_config, fake_fetcher):
        fake_fetcher.fetch.side_effect = RemoteError("invalid status code: 404", status_code=404)
        status, result = run_once(sync_config, fake_fetcher)
        assert status == 69
        assert result is None

    @pytest.mark.parametrize("content", ["x\n", "ssh-rsa\n"])
    def test_malformed_exit_code(self, sync_config, fake_fetcher, content):
        sync_config.authorized_keys_path.write_text(content)
        status, _ = run_once(sync_config, fake_fetcher)
        assert status == 65
        assert sync_config.authorized_keys_path.read_text() == content

    def test_missing_file_exit_code(self, sync_config, fake_fetcher):
        sync_config.authorized_keys_path.unlink()
        status, _ = run_once(sync_config, fake_fetcher)
        assert status == 74
