import json
import tempfile
import unittest
from pathlib import Path

from stackcheck.persistence import SPOOL_FILENAME, SampleSpool, run_workspace
from stackcheck.sampler import Sample


class SampleSpoolTests(unittest.TestCase):
    def test_samples_filtered_in_insert_order(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            spool = SampleSpool(str(Path(td) / "s.sqlite3"))
            spool.insert_sample("health", "single", Sample(1, 10, 200, True))
            spool.insert_sample("health", "concurrent", Sample(1, 12, 503, False, None))
            spool.insert_sample("live", "single", Sample(1, 3, None, False, "refused"))

            self.assertEqual(spool.count(), 3)
            rows = spool.load_samples(target="health")
            self.assertEqual([r["mode"] for r in rows], ["single", "concurrent"])
            self.assertEqual(rows[1]["ok"], False)

            refused = spool.load_samples(target="live", mode="single")[0]
            self.assertIsNone(refused["status_code"])
            self.assertEqual(refused["error"], "refused")
            spool.close()

    def test_export_jsonl(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            spool = SampleSpool(str(Path(td) / "s.sqlite3"))
            spool.insert_sample("health", "single", Sample(1, 10, 200, True))
            spool.insert_sample("health", "single", Sample(2, 11, 200, True))

            out = Path(td) / "out" / "samples.jsonl"
            written = spool.export_jsonl(str(out))
            spool.close()

            lines = out.read_text().splitlines()
        self.assertEqual(written, 2)
        self.assertEqual(json.loads(lines[1])["ordinal"], 2)


class RunWorkspaceTests(unittest.TestCase):
    def test_removed_after_use(self) -> None:
        with run_workspace() as ws:
            root = ws.root
            ws.spool.insert_sample("health", "single", Sample(1, 10, 200, True))
            self.assertTrue((root / SPOOL_FILENAME).exists())
        self.assertFalse(root.exists())

    def test_removed_when_run_fails(self) -> None:
        with self.assertRaises(RuntimeError):
            with run_workspace() as ws:
                root = ws.root
                raise RuntimeError("probe blew up")
        self.assertFalse(root.exists())


if __name__ == "__main__":
    unittest.main()
