# SPDX-License-Identifier: MIT

import json
import logging
import tempfile
import unittest
from datetime import date, timedelta
from pathlib import Path

from collector_library.config.defaults import DEFAULT_DAYS_TO_SYNC
from receiver_app.process import main


class ProcessCommandTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        root_logger = logging.getLogger()
        self._handlers = list(root_logger.handlers)
        self._level = root_logger.level

    def tearDown(self) -> None:
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            if handler not in self._handlers:
                root_logger.removeHandler(handler)
        root_logger.setLevel(self._level)
        self._tmp.cleanup()

    def test_generates_digest_and_run_log(self) -> None:
        dumps = self.root / "raw-dumps" / "chrome-history"
        dumps.mkdir(parents=True)
        (dumps / "2024-01-01.json").write_text(
            json.dumps(
                [{"url": "https://a.example/", "title": "A", "timestamp": "2024-01-01T10:00:00Z"}]
            ),
            encoding="utf-8",
        )

        code = main(["--root", str(self.root), "--source", "chrome"])

        self.assertEqual(code, 0)
        digest = self.root / "connector_data" / "chrome" / "chrome-2024-01-01.md"
        self.assertIn("[A](https://a.example/)", digest.read_text(encoding="utf-8"))
        run_logs = list((self.root / "logs").glob("chrome-process-*.log"))
        self.assertEqual(len(run_logs), 1)
        self.assertIn("1 days written", run_logs[0].read_text(encoding="utf-8"))

    def test_default_window_is_most_recent_thirty_days(self) -> None:
        dumps = self.root / "raw-dumps" / "chrome-history"
        dumps.mkdir(parents=True)
        start = date(2024, 1, 1)
        for offset in range(DEFAULT_DAYS_TO_SYNC + 2):
            day = (start + timedelta(days=offset)).isoformat()
            (dumps / f"{day}.json").write_text(
                json.dumps([{"url": "https://a.example/", "timestamp": f"{day}T10:00:00Z"}]),
                encoding="utf-8",
            )
        output = self.root / "connector_data" / "chrome"

        self.assertEqual(main(["--root", str(self.root)]), 0)
        written = sorted(path.name for path in output.glob("*.md"))
        self.assertEqual(len(written), DEFAULT_DAYS_TO_SYNC)
        self.assertNotIn("chrome-2024-01-01.md", written)

        self.assertEqual(main(["--root", str(self.root), "--days", "0"]), 0)
        self.assertEqual(len(list(output.glob("*.md"))), DEFAULT_DAYS_TO_SYNC + 2)

    def test_missing_dumps_is_not_a_failure(self) -> None:
        self.assertEqual(main(["--root", str(self.root), "--source", "chrome"]), 0)

    def test_invalid_source_exits_with_usage_error(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            main(["--root", str(self.root), "--source", "../etc"])
        self.assertEqual(ctx.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
