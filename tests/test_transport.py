"""Tests for meter.transport -- HTTP transport against a local aiohttp server."""

import unittest

from aiohttp import test_utils, web

from meter.errors import TransientTransferError
from meter.transport import CLOUDFLARE, Endpoint, HttpTransport, _add_query


def _make_app(received, status=200):
    async def down(request):
        if status != 200:
            return web.Response(status=status)
        size = int(request.query.get("bytes", "0"))
        received.append(("down", request.headers.get("Cache-Control", "")))
        return web.Response(body=b"\0" * size, content_type="application/octet-stream")

    async def up(request):
        body = await request.read()
        received.append(("up", len(body)))
        if status != 200:
            return web.Response(status=status)
        return web.Response(text="ok")

    app = web.Application()
    app.router.add_get("/__down", down)
    app.router.add_post("/__up", up)
    return app


class TestEndpoint(unittest.TestCase):
    def test_from_base_url(self):
        e = Endpoint.from_base_url("https://speed.example.net/")
        self.assertEqual(e.name, "https://speed.example.net")
        self.assertEqual(e.download_url, "https://speed.example.net/__down")
        self.assertEqual(e.upload_url, "https://speed.example.net/__up")
        self.assertEqual(e.ping_url, "https://speed.example.net/__down?bytes=0")

    def test_cloudflare_default(self):
        self.assertEqual(CLOUDFLARE.name, "Cloudflare")
        self.assertTrue(CLOUDFLARE.download_url.startswith("https://speed.cloudflare.com"))

    def test_add_query(self):
        self.assertEqual(_add_query("http://x/a", bytes=5), "http://x/a?bytes=5")
        self.assertEqual(_add_query("http://x/a?bytes=0", r=1), "http://x/a?bytes=0&r=1")


class TestHttpTransport(unittest.IsolatedAsyncioTestCase):
    async def _serve(self, status=200):
        self.received = []
        server = test_utils.TestServer(_make_app(self.received, status))
        await server.start_server()
        self.addAsyncCleanup(server.close)
        return Endpoint.from_base_url(f"http://{server.host}:{server.port}", name="local")

    async def test_request_chunk(self):
        endpoint = await self._serve()
        async with HttpTransport(endpoint, connections=2) as transport:
            self.assertEqual(await transport.request_chunk(300_000), 300_000)
        self.assertIn("no-store", self.received[0][1])

    async def test_send_chunk(self):
        endpoint = await self._serve()
        async with HttpTransport(endpoint) as transport:
            self.assertTrue(await transport.send_chunk(memoryview(b"x" * 50_000)))
        self.assertEqual(self.received, [("up", 50_000)])

    async def test_probe(self):
        endpoint = await self._serve()
        async with HttpTransport(endpoint) as transport:
            rtt = await transport.probe()
        self.assertGreater(rtt, 0)

    async def test_empty_download_is_transient(self):
        endpoint = await self._serve()
        async with HttpTransport(endpoint) as transport:
            with self.assertRaises(TransientTransferError):
                await transport.request_chunk(0)

    async def test_http_error_is_transient(self):
        endpoint = await self._serve(status=503)
        async with HttpTransport(endpoint) as transport:
            with self.assertRaises(TransientTransferError):
                await transport.request_chunk(1000)
            with self.assertRaises(TransientTransferError):
                await transport.send_chunk(b"abc")
            with self.assertRaises(TransientTransferError):
                await transport.probe()

    async def test_connection_refused_is_transient(self):
        endpoint = Endpoint.from_base_url("http://127.0.0.1:9")
        async with HttpTransport(endpoint) as transport:
            with self.assertRaises(TransientTransferError):
                await transport.probe()

    async def test_requires_context_manager(self):
        with self.assertRaises(RuntimeError):
            await HttpTransport().request_chunk(10)


if __name__ == "__main__":
    unittest.main()
