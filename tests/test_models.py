"""Tests for meter.models, meter.errors and meter.cancel."""

import asyncio
import re
import unittest
from datetime import timezone

from fakes import make_record

from meter.cancel import CancelToken
from meter.errors import ErrorType, SpeedTestError
from meter.models import (
    MeasurementRecord,
    NetworkInfo,
    ServerInfo,
    generate_test_id,
    map_connection_type,
)


class TestServerInfo(unittest.TestCase):
    def test_default(self):
        server = ServerInfo.default()
        self.assertEqual(server.id, "cloudflare-1")
        self.assertEqual(server.name, "Cloudflare")
        self.assertTrue(server.download_url.startswith("https://"))

    def test_from_dict_defaults(self):
        server = ServerInfo.from_dict({"id": 7, "name": "Local"})
        self.assertEqual(server.id, "7")
        self.assertEqual(server.ping, 0.0)
        self.assertEqual(server.ping_url, ServerInfo.default().ping_url)


class TestNetworkInfo(unittest.TestCase):
    def test_connection_type_mapping(self):
        self.assertEqual(map_connection_type("wifi"), "wifi")
        self.assertEqual(map_connection_type("CELLULAR"), "cellular")
        self.assertEqual(map_connection_type("ethernet"), "unknown")
        self.assertEqual(map_connection_type(None), "unknown")

    def test_is_available(self):
        self.assertTrue(NetworkInfo(is_connected=True, is_internet_reachable=True).is_available)
        self.assertFalse(NetworkInfo(is_connected=True).is_available)

    def test_from_dict_maps_type(self):
        info = NetworkInfo.from_dict({"connection_type": "bluetooth", "is_connected": True})
        self.assertEqual(info.connection_type, "unknown")
        self.assertTrue(info.is_connected)


class TestMeasurementRecord(unittest.TestCase):
    def test_to_dict(self):
        d = make_record().to_dict()
        self.assertEqual(d["timestamp"], "2024-03-01T12:30:00+00:00")
        self.assertEqual(d["server"]["id"], "cloudflare-1")
        self.assertEqual(d["network"]["connection_type"], "wifi")
        self.assertEqual(d["device"]["platform"], "Linux")

    def test_from_dict_roundtrip(self):
        record = make_record(packet_loss_pct=10.0)
        self.assertEqual(MeasurementRecord.from_dict(record.to_dict()), record)

    def test_naive_timestamp_assumed_utc(self):
        d = make_record().to_dict()
        d["timestamp"] = "2024-03-01T12:30:00"
        record = MeasurementRecord.from_dict(d)
        self.assertEqual(record.timestamp.tzinfo, timezone.utc)

    def test_missing_timestamp_raises(self):
        d = make_record().to_dict()
        del d["timestamp"]
        with self.assertRaises(KeyError):
            MeasurementRecord.from_dict(d)

    def test_immutable(self):
        record = make_record()
        with self.assertRaises(AttributeError):
            record.download_mbps = 1.0


class TestGenerateTestId(unittest.TestCase):
    def test_format(self):
        self.assertRegex(generate_test_id(), r"^test_\d{13}_[0-9a-z]{9}$")

    def test_unique(self):
        ids = {generate_test_id() for _ in range(100)}
        self.assertEqual(len(ids), 100)


class TestSpeedTestError(unittest.TestCase):
    def test_details_carry_timestamp(self):
        err = SpeedTestError(ErrorType.SERVER_UNREACHABLE, "down", {"url": "https://x"})
        self.assertIn("timestamp", err.details)
        self.assertEqual(err.details["url"], "https://x")
        self.assertRegex(err.details["timestamp"], r"^\d{4}-\d{2}-\d{2}T")

    def test_to_dict(self):
        d = SpeedTestError(ErrorType.UNKNOWN, "boom").to_dict()
        self.assertEqual(d["type"], "unknown-error")
        self.assertEqual(d["message"], "boom")

    def test_retryable(self):
        self.assertTrue(SpeedTestError(ErrorType.NETWORK_UNAVAILABLE, "x").retryable)
        self.assertFalse(SpeedTestError(ErrorType.TIMEOUT, "x").retryable)

    def test_str_is_message(self):
        self.assertEqual(str(SpeedTestError(ErrorType.CANCELLED, "stopped")), "stopped")


class TestCancelToken(unittest.IsolatedAsyncioTestCase):
    async def test_raise_if_cancelled(self):
        token = CancelToken()
        token.raise_if_cancelled()
        token.cancel()
        token.cancel()
        with self.assertRaises(SpeedTestError) as ctx:
            token.raise_if_cancelled()
        self.assertEqual(ctx.exception.type, ErrorType.CANCELLED)

    async def test_sleep_wakes_on_cancel(self):
        token = CancelToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)
        t0 = loop.time()
        await token.sleep(5)
        self.assertLess(loop.time() - t0, 1.0)

    async def test_sleep_when_cancelled_returns_immediately(self):
        token = CancelToken()
        token.cancel()
        await asyncio.wait_for(token.sleep(5), timeout=0.5)


if __name__ == "__main__":
    unittest.main()
