"""Tests for the storage backends."""

import json
import os
import tempfile
import unittest

from scrapestudio.storage import JsonlStorage, MemoryStorage


class TestMemoryStorage(unittest.TestCase):
    """Verify id assignment and copy semantics."""

    def test_save_assigns_id_and_timestamp(self):
        """save() should assign an id and a timestamp."""
        storage = MemoryStorage()
        record_id = storage.save({"type": "scrape_result", "data": {"a": 1}})
        stored = storage.get(record_id)
        self.assertEqual(stored["id"], record_id)
        self.assertIn("timestamp", stored)
        self.assertEqual(stored["data"], {"a": 1})

    def test_get_returns_copy(self):
        """get() should return a copy."""
        storage = MemoryStorage()
        record_id = storage.save({"data": {"a": 1}})
        storage.get(record_id)["data"]["a"] = 2
        self.assertEqual(storage.get(record_id)["data"], {"a": 1})

    def test_non_serializable_payload_rejected(self):
        """A payload that is not JSON-serialisable should be rejected."""
        with self.assertRaises(TypeError):
            MemoryStorage().save({"data": object()})

    def test_missing_id(self):
        """A missing id should give None."""
        self.assertIsNone(MemoryStorage().get("nope"))


class TestJsonlStorage(unittest.TestCase):
    """Verify the JSONL writer thread and reload on start."""

    def setUp(self):
        fd, self.path = tempfile.mkstemp(suffix=".jsonl")
        os.close(fd)

    def tearDown(self):
        os.remove(self.path)

    def test_writes_one_line_per_record(self):
        """Each record should be one JSON line."""
        storage = JsonlStorage(self.path)
        storage.save({"type": "scrape_result", "url": "https://a.com"})
        storage.save({"type": "job_failure", "url": "https://b.com"})
        storage.close()

        with open(self.path, "r", encoding="utf-8") as f:
            lines = [json.loads(line) for line in f if line.strip()]
        self.assertEqual([r["url"] for r in lines], ["https://a.com", "https://b.com"])

    def test_existing_lines_are_loaded(self):
        """Existing lines should be loaded on start."""
        first = JsonlStorage(self.path)
        record_id = first.save({"url": "https://a.com"})
        first.close()

        second = JsonlStorage(self.path)
        try:
            self.assertEqual(second.get(record_id)["url"], "https://a.com")
            self.assertEqual(len(second.list()), 1)
        finally:
            second.close()

    def test_corrupt_lines_are_skipped(self):
        """Corrupt lines should be skipped with a warning."""
        with open(self.path, "w", encoding="utf-8") as f:
            f.write('{"id": "ok", "url": "https://a.com"}\nnot json\n')
        with self.assertLogs("scrapestudio.storage", level="WARNING"):
            storage = JsonlStorage(self.path)
        try:
            self.assertEqual([r["id"] for r in storage.list()], ["ok"])
        finally:
            storage.close()

    def test_flush_waits_for_writer(self):
        """flush() should wait for the writer thread."""
        storage = JsonlStorage(self.path)
        try:
            storage.save({"url": "https://a.com"})
            storage.flush()
            with open(self.path, "r", encoding="utf-8") as f:
                self.assertEqual(len([line for line in f if line.strip()]), 1)
        finally:
            storage.close()


if __name__ == "__main__":
    unittest.main()
