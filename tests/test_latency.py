"""Tests for meter.latency -- the ping sampler."""

import asyncio
import unittest

from fakes import FakeTransport, client_error

from meter.cancel import CancelToken
from meter.errors import ErrorType, SpeedTestError
from meter.latency import PingResult, PingSampler
from meter.models import ServerInfo


class TestPingResult(unittest.TestCase):
    def test_single_ping(self):
        r = PingResult(pings=[42.0], attempted=1)
        r.calculate()
        self.assertEqual(r.latency_ms, 42.0)
        self.assertEqual(r.jitter_ms, 0.0)
        self.assertEqual(r.packet_loss, 0.0)

    def test_jitter_law(self):
        r = PingResult(pings=[100.0, 120.0, 110.0], attempted=3)
        r.calculate()
        self.assertEqual(r.latency_ms, 110.0)
        self.assertEqual(r.jitter_ms, 15.0)

    def test_rounding(self):
        r = PingResult(pings=[10.4, 11.2, 10.1], attempted=7)
        r.calculate()
        self.assertEqual(r.latency_ms, 11.0)   # mean 10.566...
        self.assertEqual(r.jitter_ms, 1.0)     # (0.8 + 1.1) / 2 = 0.95
        self.assertEqual(r.packet_loss, 57.1)  # 4/7

    def test_to_dict(self):
        r = PingResult(pings=[10.0], attempted=2)
        r.calculate()
        d = r.to_dict()
        self.assertEqual(d["attempted"], 2)
        self.assertAlmostEqual(d["packet_loss"], 50.0)


class TestPingSampler(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.server = ServerInfo.default()

    async def _sample(self, transport, count=10, token=None):
        sampler = PingSampler(transport, interval=0)
        return await sampler.sample(self.server, token or CancelToken(), count)

    async def test_all_successful(self):
        transport = FakeTransport(pings=[20.0] * 10)
        result = await self._sample(transport)
        self.assertEqual(result.attempted, 10)
        self.assertEqual(result.latency_ms, 20.0)
        self.assertEqual(result.jitter_ms, 0.0)
        self.assertEqual(result.packet_loss, 0.0)

    async def test_packet_loss_law(self):
        pings = [30.0, None, 30.0, 30.0, None, 30.0, 30.0, None, 30.0, 30.0]
        result = await self._sample(FakeTransport(pings=pings))
        self.assertEqual(result.attempted, 10)
        self.assertEqual(result.successful, 7)
        self.assertEqual(result.packet_loss, 30.0)

    async def test_errors_count_as_loss_and_do_not_abort(self):
        pings = [100.0, client_error(), 120.0, asyncio.TimeoutError(), 110.0]
        transport = FakeTransport(pings=pings)
        result = await self._sample(transport, count=5)
        self.assertEqual(transport.probe_calls, 5)
        self.assertEqual(result.pings, [100.0, 120.0, 110.0])
        self.assertEqual(result.jitter_ms, 15.0)
        self.assertEqual(result.packet_loss, 40.0)

    async def test_zero_successes_is_unreachable(self):
        transport = FakeTransport(pings=[None] * 10)
        with self.assertRaises(SpeedTestError) as ctx:
            await self._sample(transport)
        self.assertEqual(ctx.exception.type, ErrorType.SERVER_UNREACHABLE)
        self.assertEqual(transport.probe_calls, 10)

    async def test_single_success_is_enough(self):
        result = await self._sample(FakeTransport(pings=[None] * 9 + [50.0]))
        self.assertEqual(result.latency_ms, 50.0)
        self.assertEqual(result.jitter_ms, 0.0)
        self.assertEqual(result.packet_loss, 90.0)

    async def test_prober_connect_failure_is_unreachable(self):
        transport = FakeTransport(prober_error=OSError("refused"))
        with self.assertRaises(SpeedTestError) as ctx:
            await self._sample(transport)
        self.assertEqual(ctx.exception.type, ErrorType.SERVER_UNREACHABLE)
        self.assertIn("error", ctx.exception.details)

    async def test_cancelled_before_first_probe(self):
        token = CancelToken()
        token.cancel()
        transport = FakeTransport()
        with self.assertRaises(SpeedTestError) as ctx:
            await self._sample(transport, token=token)
        self.assertEqual(ctx.exception.type, ErrorType.CANCELLED)
        self.assertEqual(transport.probe_calls, 0)

    async def test_inter_probe_delay(self):
        transport = FakeTransport(pings=[10.0] * 3)
        sampler = PingSampler(transport, interval=0.01)
        loop = asyncio.get_running_loop()
        t0 = loop.time()
        await sampler.sample(self.server, CancelToken(), 3)
        self.assertGreaterEqual(loop.time() - t0, 0.025)


if __name__ == "__main__":
    unittest.main()
