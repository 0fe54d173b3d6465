# SPDX-License-Identifier: LGPL-3.0-only

import logging
import tempfile
import unittest
from pathlib import Path

from collector_library.run_log import run_logged


class RunLoggedTest(unittest.TestCase):
    def test_success_writes_log_and_returns_zero(self) -> None:
        async def job():
            logging.getLogger("collector_library").info("collected 3 items")

        with tempfile.TemporaryDirectory() as temp_dir:
            code = run_logged("chrome-process", temp_dir, job)
            self.assertEqual(code, 0)
            logs = list(Path(temp_dir).glob("chrome-process-*.log"))
            self.assertEqual(len(logs), 1)
            text = logs[0].read_text(encoding="utf-8")
            self.assertIn("collected 3 items", text)
            self.assertIn("Completed in", text)
            self.assertRegex(text, r"\[\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")

    def test_failure_is_logged_and_returns_one(self) -> None:
        async def job():
            raise RuntimeError("session logged out")

        with tempfile.TemporaryDirectory() as temp_dir:
            code = run_logged("whatsapp-get", temp_dir, job)
            self.assertEqual(code, 1)
            text = next(Path(temp_dir).glob("whatsapp-get-*.log")).read_text(encoding="utf-8")
            self.assertIn("session logged out", text)

    def test_handler_is_removed_after_run(self) -> None:
        async def job():
            return None

        root_logger = logging.getLogger()
        handlers_before = list(root_logger.handlers)
        with tempfile.TemporaryDirectory() as temp_dir:
            run_logged("noop", temp_dir, job)
        self.assertEqual(root_logger.handlers, handlers_before)


if __name__ == "__main__":
    unittest.main()
