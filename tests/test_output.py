"""Unit tests for ui.output -- JSON export, text and CSV formatting."""

import json
import os
import tempfile
import unittest
from dataclasses import replace

from fakes import make_record

from ui.output import (
    append_csv,
    format_csv_header,
    format_csv_row,
    format_text_result,
    record_to_json,
    save_json,
)


class TestRecordToJson(unittest.TestCase):
    def test_basic_structure(self):
        r = record_to_json(make_record())
        for key in ("id", "timestamp", "server", "device", "network", "summary"):
            self.assertIn(key, r)

    def test_summary(self):
        r = record_to_json(make_record(packet_loss_pct=10.0))
        self.assertEqual(r["summary"]["download_mbps"], 95.5)
        self.assertEqual(r["summary"]["packet_loss"], 10.0)
        self.assertEqual(r["summary"]["ping"], 15.0)

    def test_serialisable(self):
        json.dumps(record_to_json(make_record()))


class TestSaveJson(unittest.TestCase):
    def test_roundtrip(self):
        data = {"key": "value", "number": 42}
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            path = f.name
        try:
            save_json(data, path)
            with open(path) as fh:
                loaded = json.load(fh)
            self.assertEqual(loaded, data)
        finally:
            os.unlink(path)

    def test_atomic_no_partial(self):
        with self.assertRaises(IOError):
            save_json({"a": 1}, "/nonexistent/dir/file.json")


class TestFormatTextResult(unittest.TestCase):
    def test_contains_values(self):
        text = format_text_result(make_record())
        self.assertIn("15 ms", text)
        self.assertIn("95.50 Mbps", text)
        self.assertIn("20.25 Mbps", text)
        self.assertIn("Cloudflare", text)
        self.assertNotIn("Packet Loss", text)

    def test_packet_loss_shown(self):
        text = format_text_result(make_record(packet_loss_pct=30.0))
        self.assertIn("Packet Loss: 30.0%", text)


class TestCsvHelpers(unittest.TestCase):
    def test_header(self):
        h = format_csv_header()
        self.assertTrue(h.startswith("id,timestamp"))
        self.assertIn("download_mbps", h)

    def test_row_matches_header(self):
        row = format_csv_row(make_record())
        self.assertEqual(len(row.split(",")), len(format_csv_header().split(",")))
        self.assertIn("95.50", row)

    def test_escaping(self):
        record = make_record()
        record = replace(record, server=replace(record.server, name='Acme, "Edge"'))
        row = format_csv_row(record)
        self.assertIn('"Acme, ""Edge"""', row)

    def test_append_writes_header_once(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "log.csv")
            for _ in range(3):
                append_csv(path, make_record())
            with open(path) as fh:
                lines = fh.readlines()
            self.assertEqual(len(lines), 4)
            self.assertEqual(sum(1 for l in lines if l.startswith("id,")), 1)


if __name__ == "__main__":
    unittest.main()
