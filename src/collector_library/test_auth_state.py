# SPDX-License-Identifier: LGPL-3.0-only

import asyncio
import json
import stat
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from collector_library import auth_state as auth_state_module
from collector_library.auth_state import SingleFileAuthState, use_single_file_auth_state
from collector_library.buffer_json import buffer_object_hook, dumps, loads
from collector_library.config import CollectorSettings
from collector_library.config.defaults import DEFAULT_AUTH_STATE_RELPATH


class SingleFileAuthStateTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "auth" / "session.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_async(self, coro):
        return asyncio.run(coro)

    def test_missing_file_starts_fresh(self) -> None:
        state = SingleFileAuthState(self.path)
        creds, keys = self.run_async(state.load())
        self.assertEqual(keys, {})
        self.assertIsInstance(creds["noiseKey"]["private"], bytes)
        self.assertFalse(creds["registered"])

    def test_corrupt_file_starts_fresh(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{truncated", encoding="utf-8")
        creds, keys = self.run_async(SingleFileAuthState(self.path).load())
        self.assertEqual(keys, {})
        self.assertIn("registrationId", creds)

    def test_set_and_get_keys_with_composite_addresses(self) -> None:
        async def scenario():
            state = SingleFileAuthState(self.path, debounce_seconds=10)
            await state.load()
            await state.set_keys(
                {"pre-key": {"1": b"\x01\x02", "2": b"\x03"}, "session": {"abc": {"v": 1}}}
            )
            self.assertIn("pre-key-1", state.keys)
            self.assertEqual(
                await state.get_keys("pre-key", ["1", "2", "missing"]),
                {"1": b"\x01\x02", "2": b"\x03"},
            )
            await state.set_keys({"pre-key": {"1": None}})
            self.assertEqual(await state.get_keys("pre-key", ["1", "2"]), {"2": b"\x03"})
            self.assertNotIn("pre-key-1", state.keys)
            await state.close()

        self.run_async(scenario())

    def test_burst_of_updates_is_flushed_once_after_quiet_period(self) -> None:
        real_write = auth_state_module.atomic_write_text
        calls = []

        async def counting_write(path, content, **kwargs):
            calls.append(content)
            await real_write(path, content, **kwargs)

        async def scenario():
            state = SingleFileAuthState(self.path, debounce_seconds=0.1)
            await state.load()
            for i in range(10):
                await state.set_keys({"session": {str(i): {"n": i}}})
                await asyncio.sleep(0.005)
            self.assertFalse(self.path.exists())
            await asyncio.sleep(0.5)

        with patch.object(auth_state_module, "atomic_write_text", counting_write):
            self.run_async(scenario())

        self.assertEqual(len(calls), 1)
        saved = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(len(saved["keys"]), 10)

    def test_binary_material_round_trips_through_file(self) -> None:
        async def scenario():
            state = await use_single_file_auth_state(self.path)
            await state.set_keys({"app-state-sync-key": {"k": b"\x00\xffbinary"}})
            await state.save_now()
            noise_before = state.creds["noiseKey"]["public"]

            reloaded = SingleFileAuthState(self.path)
            creds, _ = await reloaded.load()
            self.assertEqual(creds["noiseKey"]["public"], noise_before)
            found = await reloaded.get_keys("app-state-sync-key", ["k"])
            self.assertEqual(found, {"k": b"\x00\xffbinary"})
            await state.close()

        self.run_async(scenario())

    def test_failed_flush_leaves_previous_file_intact(self) -> None:
        async def scenario():
            state = await use_single_file_auth_state(self.path)
            await state.set_keys({"session": {"a": {"v": 1}}})
            await state.save_now()
            before = self.path.read_text(encoding="utf-8")

            await state.set_keys({"session": {"b": {"v": 2}}})
            with patch("aiofiles.os.replace", side_effect=OSError("crash before rename")):
                with self.assertRaises(OSError):
                    await state.save_now()

            self.assertEqual(self.path.read_text(encoding="utf-8"), before)
            self.assertEqual(loads(before)["keys"], {"session-a": {"v": 1}})
            self.assertEqual([p.name for p in self.path.parent.iterdir()], ["session.json"])
            await state.close()

        self.run_async(scenario())

    def test_flushes_never_overlap(self) -> None:
        real_write = auth_state_module.atomic_write_text
        active = []
        peak = []

        async def slow_write(path, content, **kwargs):
            active.append(1)
            peak.append(len(active))
            await asyncio.sleep(0.02)
            await real_write(path, content, **kwargs)
            active.pop()

        async def scenario():
            state = await use_single_file_auth_state(self.path)
            await asyncio.gather(*(state.save_now() for _ in range(5)))
            await state.set_keys({"session": {"last": {"v": 9}}})
            await state.save_now()
            await state.close()

        with patch.object(auth_state_module, "atomic_write_text", slow_write):
            self.run_async(scenario())

        self.assertEqual(max(peak), 1)
        self.assertIn("session-last", loads(self.path.read_text(encoding="utf-8"))["keys"])

    def test_settings_supply_path_and_debounce(self) -> None:
        settings = CollectorSettings.from_env(
            {"AUTH_SAVE_DEBOUNCE": "0.25"}, root=Path(self._tmp.name)
        )

        async def scenario():
            state = await use_single_file_auth_state(settings)
            self.assertEqual(state.path, Path(self._tmp.name) / DEFAULT_AUTH_STATE_RELPATH)
            self.assertEqual(state.debounce_seconds, 0.25)
            await state.close()

        self.run_async(scenario())
        self.assertTrue(settings.auth_state_file.exists())

    def test_state_file_is_private(self) -> None:
        async def scenario():
            state = await use_single_file_auth_state(self.path)
            await state.close()

        self.run_async(scenario())
        self.assertEqual(stat.S_IMODE(self.path.stat().st_mode), 0o600)

    def test_close_flushes_pending_updates(self) -> None:
        async def scenario():
            state = await use_single_file_auth_state(self.path, debounce_seconds=60)
            await state.set_keys({"sender-key": {"g1": b"\x09"}})
            await state.close()

        self.run_async(scenario())
        saved = loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(saved["keys"]["sender-key-g1"], b"\x09")


class BufferJsonTest(unittest.TestCase):
    def test_bytes_use_tagged_base64(self) -> None:
        encoded = json.loads(dumps({"k": b"\x01\x02\x03"}))
        self.assertEqual(encoded["k"], {"type": "Buffer", "data": "AQID"})

    def test_legacy_byte_list_is_accepted(self) -> None:
        self.assertEqual(buffer_object_hook({"type": "Buffer", "data": [1, 2, 3]}), b"\x01\x02\x03")

    def test_unrelated_objects_pass_through(self) -> None:
        value = {"type": "Buffer", "data": "AQID", "extra": True}
        self.assertEqual(buffer_object_hook(value), value)
        self.assertEqual(loads('{"type": "text"}'), {"type": "text"})


if __name__ == "__main__":
    unittest.main()
