"""Tests for meter.transport against a local aiohttp server."""

import unittest

import aiohttp
from aiohttp import test_utils, web

from meter.transport import HttpTransport


async def _blob(request):
    return web.Response(body=b"x" * 200_000)


async def _missing(request):
    return web.Response(status=404)


async def _broken(request):
    return web.Response(status=500)


async def _moved(request):
    raise web.HTTPMovedPermanently("/blob")


class TestHttpTransport(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        app = web.Application()
        self.received = []
        app.router.add_get("/blob", _blob)
        app.router.add_get("/missing", _missing)
        app.router.add_get("/broken", _broken)
        app.router.add_get("/moved", _moved)
        app.router.add_post("/upload", self._sink)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()

    async def asyncTearDown(self):
        await self.server.close()

    async def _sink(self, request):
        body = await request.read()
        self.received.append(len(body))
        return web.Response(text="ok")

    def _url(self, path):
        return str(self.server.make_url(path))

    async def test_requires_context_manager(self):
        with self.assertRaises(RuntimeError):
            await HttpTransport().head(self._url("/blob"))

    async def test_head_ping(self):
        async with HttpTransport(timeout_ms=5000) as transport:
            async with transport.open_prober(self._url("/blob")) as probe:
                ok = await probe()
            async with transport.open_prober(self._url("/missing")) as probe:
                missing = await probe()
        self.assertTrue(ok.ok)
        self.assertGreaterEqual(ok.elapsed_ms, 0)
        self.assertFalse(missing.ok)
        self.assertEqual(missing.status, 404)

    async def test_head_ping_follows_redirect(self):
        async with HttpTransport(timeout_ms=5000) as transport:
            async with transport.open_prober(self._url("/moved")) as probe:
                result = await probe()
        self.assertTrue(result.ok)
        self.assertEqual(result.status, 200)

    async def test_stream_reads_body(self):
        total = 0
        async with HttpTransport(timeout_ms=5000) as transport:
            async with transport.stream(self._url("/blob")) as chunks:
                async for chunk in chunks:
                    total += len(chunk)
        self.assertEqual(total, 200_000)

    async def test_stream_error_status_raises(self):
        async with HttpTransport(timeout_ms=5000) as transport:
            with self.assertRaises(aiohttp.ClientResponseError):
                async with transport.stream(self._url("/broken")):
                    pass

    async def test_post(self):
        async with HttpTransport(timeout_ms=5000) as transport:
            result = await transport.post(self._url("/upload"), b"A" * 1024)
        self.assertTrue(result.ok)
        self.assertEqual(self.received, [1024])


if __name__ == "__main__":
    unittest.main()
