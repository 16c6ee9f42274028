import asyncio
import json
import unittest

from tutor_portal.autosave import (
    AutosaveOrchestrator,
    ConnectivityMonitor,
    LocalFallbackStore,
    fallback_key,
)
from tutor_portal.tests.testing_utils import (
    BrokenKeyValueStore,
    CountingKeyValueStore,
    ManualScheduler,
    RecordingRemote,
)
from tutor_portal.types import SaveState

USER_ID = "u1"
APPLICATION_ID = "app1"
KEY = fallback_key(USER_ID, APPLICATION_ID)


class AutosaveOrchestratorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.scheduler = ManualScheduler()
        self.remote = RecordingRemote()
        self.kv = CountingKeyValueStore()
        self.fallback = LocalFallbackStore(self.kv, clock=self.scheduler.now_ms)
        self.connectivity = ConnectivityMonitor(online=True)

    def _make(self, **kwargs) -> AutosaveOrchestrator:
        options = {
            "user_id": USER_ID,
            "application_id": APPLICATION_ID,
            "scheduler": self.scheduler,
        }
        options.update(kwargs)
        orchestrator = AutosaveOrchestrator(
            self.remote, self.fallback, self.connectivity, **options
        )
        orchestrator.start()
        self.addAsyncCleanup(orchestrator.aclose)
        return orchestrator

    async def test_burst_of_edits_saves_once_with_final_snapshot(self):
        autosave = self._make()
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(100)
        autosave.update({"full_name": "B"})
        await self.scheduler.advance_to(200)
        autosave.update({"full_name": "C"})
        await self.scheduler.advance_to(850)
        autosave.update({"full_name": "D"})

        await self.scheduler.advance_to(1749)
        self.assertEqual(self.remote.calls, [])

        await self.scheduler.advance_to(1750)
        self.assertEqual(len(self.remote.calls), 1)
        self.assertEqual(self.remote.records[0]["full_name"], "D")
        self.assertEqual(autosave.status.status, SaveState.SAVED)
        self.assertEqual(autosave.status.timestamp, 1750)

    async def test_snapshot_equal_to_baseline_is_not_saved(self):
        autosave = self._make(initial_snapshot={"full_name": "A", "subjects": ["x"]})
        for t in (0, 100, 200, 850):
            await self.scheduler.advance_to(t)
            autosave.update({"full_name": "A", "subjects": ["x"]})

        await self.scheduler.advance_to(5000)
        self.assertEqual(self.remote.calls, [])
        self.assertEqual(self.kv.writes, [])
        self.assertEqual(autosave.status.status, SaveState.IDLE)

    async def test_debounce_and_throttle_timeline(self):
        autosave = self._make(initial_snapshot={"full_name": "A"})

        # No-op edits back to the baseline.
        for t in (0, 100, 200, 850):
            await self.scheduler.advance_to(t)
            autosave.update({"full_name": "A"})

        await self.scheduler.advance_to(950)
        autosave.update({"full_name": "B"})
        await self.scheduler.advance_to(1850)
        self.assertEqual(len(self.remote.calls), 1)
        self.assertEqual(self.remote.records[0]["full_name"], "B")
        self.assertEqual(autosave.last_saved_at, 1850)

        # Fires at 2800, only 950 ms after the last successful save.
        await self.scheduler.advance_to(1900)
        with self.assertLogs("tutor_portal.autosave.orchestrator", level="DEBUG") as logs:
            autosave.update({"full_name": "C"})
            await self.scheduler.advance_to(2800)
        self.assertEqual(len(self.remote.calls), 1)
        self.assertTrue(any("throttled" in line for line in logs.output))
        self.assertTrue(autosave.has_unsaved_changes)

        await self.scheduler.advance_to(3000)
        autosave.update({"full_name": "D"})
        await self.scheduler.advance_to(3900)
        self.assertEqual(len(self.remote.calls), 2)
        self.assertEqual(self.remote.records[1]["full_name"], "D")
        self.assertGreaterEqual(autosave.last_saved_at - 1850, 2000)

    async def test_offline_writes_fallback_without_calling_remote(self):
        autosave = self._make()
        self.connectivity.mark_offline()
        autosave.update({"full_name": "A", "email": "a@example.com"})

        await self.scheduler.advance_to(900)
        self.assertEqual(self.remote.calls, [])
        self.assertEqual(len(self.kv.writes), 1)
        key, raw = self.kv.writes[0]
        self.assertEqual(key, KEY)
        stored = json.loads(raw)
        self.assertEqual(stored["data"], {"full_name": "A", "email": "a@example.com"})
        self.assertEqual(stored["timestamp"], 900)
        self.assertEqual(autosave.status.status, SaveState.OFFLINE)
        self.assertFalse(autosave.is_online)
        self.assertFalse(autosave.is_saving)

        # Offline status stays until the next attempt.
        await self.scheduler.advance_to(10000)
        self.assertEqual(autosave.status.status, SaveState.OFFLINE)
        self.assertEqual(len(self.kv.writes), 1)

    async def test_remote_failure_reports_error_and_falls_back(self):
        self.remote.fail = True
        autosave = self._make()
        with self.assertLogs("tutor_portal.autosave.orchestrator", level="ERROR"):
            autosave.update({"full_name": "A"})
            await self.scheduler.advance_to(900)

        self.assertEqual(len(self.remote.calls), 1)
        self.assertEqual(autosave.status.status, SaveState.ERROR)
        self.assertEqual(autosave.status.message, "Failed to save")
        self.assertEqual(len(self.kv.writes), 1)
        self.assertIsNone(autosave.last_saved_at)
        self.assertTrue(autosave.has_unsaved_changes)

        await self.scheduler.advance_to(3899)
        self.assertEqual(autosave.status.status, SaveState.ERROR)
        await self.scheduler.advance_to(3900)
        self.assertEqual(autosave.status.status, SaveState.IDLE)
        self.assertEqual(autosave.status.message, "")

    async def test_success_clears_fallback_and_resets_status(self):
        self.kv.set(KEY, json.dumps({"data": {"full_name": "old"}, "timestamp": 1}))
        autosave = self._make()
        autosave.update({"full_name": "A", "degree_program": "BSc"})

        await self.scheduler.advance_to(900)
        record, on_conflict = self.remote.calls[0]
        self.assertEqual(on_conflict, "id")
        self.assertEqual(record["id"], APPLICATION_ID)
        self.assertEqual(record["user_id"], USER_ID)
        self.assertEqual(record["status"], "draft")
        self.assertEqual(record["degree"], "BSc")
        self.assertNotIn(KEY, self.kv.items)
        self.assertEqual(self.kv.removals, [KEY])
        self.assertEqual(autosave.status.status, SaveState.SAVED)
        self.assertEqual(autosave.status.message, "All changes saved")
        self.assertEqual(autosave.status.timestamp, 900)

        await self.scheduler.advance_to(3900)
        self.assertEqual(autosave.status.status, SaveState.IDLE)

    async def test_close_cancels_pending_save(self):
        autosave = self._make()
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(500)

        autosave.close()
        autosave.update({"full_name": "B"})
        await self.scheduler.advance_to(5000)

        self.assertEqual(self.remote.calls, [])
        self.assertEqual(self.kv.writes, [])
        self.assertEqual(self.scheduler.pending(), 0)

    async def test_edit_during_inflight_save_waits_for_next_cycle(self):
        self.remote.gate = asyncio.Event()
        autosave = self._make()
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(900)
        self.assertEqual(len(self.remote.calls), 1)
        self.assertTrue(autosave.is_saving)

        await self.scheduler.advance_to(1000)
        autosave.update({"full_name": "B"})
        await self.scheduler.advance_to(1900)
        self.assertEqual(len(self.remote.calls), 1)

        self.remote.gate.set()
        await autosave.flush()
        self.assertEqual(autosave.status.status, SaveState.SAVED)
        self.assertEqual(autosave.status.timestamp, 900)
        self.assertTrue(autosave.has_unsaved_changes)

        await self.scheduler.advance_to(3000)
        autosave.update({"full_name": "B"})
        await self.scheduler.advance_to(3900)
        await autosave.flush()
        self.assertEqual(len(self.remote.calls), 2)
        self.assertEqual(self.remote.records[1]["full_name"], "B")
        self.assertFalse(autosave.has_unsaved_changes)

    async def test_missing_identifiers_disable_the_pipeline(self):
        autosave = self._make(application_id=None)
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(2000)
        self.assertEqual(self.remote.calls, [])
        self.assertEqual(self.scheduler.pending(), 0)

        autosave.identify(USER_ID, APPLICATION_ID)
        await self.scheduler.advance_to(2900)
        self.assertEqual(len(self.remote.calls), 1)

    async def test_disabled_pipeline_drops_pending_save(self):
        autosave = self._make()
        autosave.update({"full_name": "A"})
        autosave.set_enabled(False)
        await self.scheduler.advance_to(2000)
        self.assertEqual(self.remote.calls, [])

        autosave.set_enabled(True)
        await self.scheduler.advance_to(2900)
        self.assertEqual(len(self.remote.calls), 1)

    async def test_reconnect_pushes_offline_changes(self):
        autosave = self._make()
        self.connectivity.mark_offline()
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(900)
        self.assertIn(KEY, self.kv.items)

        await self.scheduler.advance_to(1000)
        self.connectivity.mark_online()
        self.assertTrue(autosave.is_online)
        await self.scheduler.advance_to(1900)

        self.assertEqual(len(self.remote.calls), 1)
        self.assertEqual(self.remote.records[0]["full_name"], "A")
        self.assertEqual(autosave.status.status, SaveState.SAVED)
        self.assertNotIn(KEY, self.kv.items)

    async def test_going_offline_does_not_start_a_save(self):
        autosave = self._make()
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(900)
        self.assertEqual(len(self.remote.calls), 1)

        self.connectivity.mark_offline()
        self.assertFalse(autosave.is_online)
        await self.scheduler.advance_to(5000)
        self.assertEqual(len(self.remote.calls), 1)
        self.assertEqual(self.kv.writes, [])
        self.assertEqual(autosave.status.status, SaveState.IDLE)

    async def test_failing_reachability_check_stays_offline(self):
        async def check():
            raise RuntimeError("resolver unavailable")

        autosave = self._make(reachability_check=check)
        self.connectivity.mark_offline()
        with self.assertLogs("tutor_portal.autosave.orchestrator", level="ERROR"):
            autosave.update({"full_name": "A"})
            await self.scheduler.advance_to(900)

        self.assertEqual(self.remote.calls, [])
        self.assertEqual(len(self.kv.writes), 1)
        self.assertEqual(autosave.status.status, SaveState.OFFLINE)
        self.assertFalse(autosave.is_online)

    async def test_broken_fallback_store_while_offline(self):
        self.fallback = LocalFallbackStore(
            BrokenKeyValueStore(), clock=self.scheduler.now_ms
        )
        autosave = self._make()
        self.connectivity.mark_offline()
        with self.assertLogs("tutor_portal.autosave.fallback", level="ERROR"):
            autosave.update({"full_name": "A"})
            await self.scheduler.advance_to(900)

        self.assertEqual(self.remote.calls, [])
        self.assertEqual(autosave.status.status, SaveState.OFFLINE)
        self.assertFalse(autosave.is_saving)
        self.assertTrue(autosave.has_unsaved_changes)

    async def test_broken_fallback_store_after_remote_failure(self):
        self.remote.fail = True
        self.fallback = LocalFallbackStore(
            BrokenKeyValueStore(), clock=self.scheduler.now_ms
        )
        autosave = self._make()
        with self.assertLogs("tutor_portal.autosave", level="ERROR") as logs:
            autosave.update({"full_name": "A"})
            await self.scheduler.advance_to(900)

        self.assertEqual(
            {record.name for record in logs.records},
            {"tutor_portal.autosave.orchestrator", "tutor_portal.autosave.fallback"},
        )
        self.assertEqual(autosave.status.status, SaveState.ERROR)
        self.assertFalse(autosave.is_saving)
        await self.scheduler.advance_to(3900)
        self.assertEqual(autosave.status.status, SaveState.IDLE)

    async def test_broken_fallback_store_does_not_undo_a_save(self):
        self.fallback = LocalFallbackStore(
            BrokenKeyValueStore(), clock=self.scheduler.now_ms
        )
        autosave = self._make()
        with self.assertLogs("tutor_portal.autosave.fallback", level="ERROR"):
            autosave.update({"full_name": "A"})
            await self.scheduler.advance_to(900)

        self.assertEqual(len(self.remote.calls), 1)
        self.assertEqual(autosave.status.status, SaveState.SAVED)
        self.assertFalse(autosave.has_unsaved_changes)

    async def test_save_after_throttle_window(self):
        autosave = self._make()
        self.assertEqual(autosave.throttle_remaining_ms(), 0)
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(900)

        await self.scheduler.advance_to(1500)
        self.assertEqual(autosave.throttle_remaining_ms(), 1400)
        autosave.update({"full_name": "B"})
        await self.scheduler.advance_to(2400)
        self.assertEqual(len(self.remote.calls), 1)
        self.assertTrue(autosave.has_unsaved_changes)

        self.assertEqual(autosave.throttle_remaining_ms(), 500)
        self.assertFalse(await autosave.perform_save())
        await self.scheduler.advance(autosave.throttle_remaining_ms())
        self.assertEqual(autosave.throttle_remaining_ms(), 0)
        self.assertTrue(await autosave.perform_save())
        self.assertEqual(len(self.remote.calls), 2)
        self.assertEqual(self.remote.records[1]["full_name"], "B")
        self.assertFalse(autosave.has_unsaved_changes)

    async def test_status_listeners_follow_transitions(self):
        autosave = self._make()
        seen = []
        autosave.on_status_change(lambda status: seen.append(status.status))
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(900)
        await self.scheduler.advance_to(3900)
        self.assertEqual(seen, [SaveState.SAVING, SaveState.SAVED, SaveState.IDLE])

    async def test_new_status_replaces_pending_reset(self):
        autosave = self._make()
        autosave.update({"full_name": "A"})
        await self.scheduler.advance_to(900)

        await self.scheduler.advance_to(2500)
        autosave.update({"full_name": "B"})
        await self.scheduler.advance_to(3400)
        self.assertEqual(autosave.status.timestamp, 3400)

        # The reset scheduled by the first save would have fired here.
        await self.scheduler.advance_to(3900)
        self.assertEqual(autosave.status.status, SaveState.SAVED)
        await self.scheduler.advance_to(6400)
        self.assertEqual(autosave.status.status, SaveState.IDLE)

    async def test_runs_on_event_loop_timers(self):
        autosave = AutosaveOrchestrator(
            self.remote,
            self.fallback,
            self.connectivity,
            user_id=USER_ID,
            application_id=APPLICATION_ID,
            debounce_ms=20,
        )
        async with autosave:
            autosave.update({"full_name": "A"})
            autosave.update({"full_name": "AB"})
            autosave.update({"full_name": "ABC"})
            await asyncio.sleep(0.2)
            await autosave.flush()
        self.assertEqual(len(self.remote.calls), 1)
        self.assertEqual(self.remote.records[0]["full_name"], "ABC")


if __name__ == "__main__":
    unittest.main()
