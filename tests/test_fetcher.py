import socket
from unittest.mock import AsyncMock, MagicMock, Mock

import aiohttp
import pytest
from aiohttp import test_utils, web

from market_wire.config import Settings, parse_resolver_pairs
from market_wire.errors import FetchError, OriginRejectedError, TransientNetworkError
from market_wire.fetcher import FetchResult, NetworkPath, ResilientFetcher

URL = "https://feeds.example.com/rss.xml"


def _transient(name):
    return TransientNetworkError(URL, f"transient_network err=dns path={name}", OSError(name))


class TestFailover:
    @pytest.mark.asyncio
    async def test_first_path_success(self, fake_path):
        a = fake_path("a", ["<rss/>"])
        b = fake_path("b", ["<rss/>"])
        result = await ResilientFetcher([a, b]).fetch(URL)
        assert result == FetchResult(body="<rss/>", final_url=URL)
        assert a.calls == [URL]
        assert b.calls == []

    @pytest.mark.asyncio
    async def test_transient_failure_moves_to_next_path(self, fake_path):
        a = fake_path("a", [_transient("a")])
        b = fake_path("b", ["<rss>ok</rss>"])
        result = await ResilientFetcher([a, b]).fetch(URL)
        assert result.body == "<rss>ok</rss>"
        assert len(a.calls) == 1
        assert len(b.calls) == 1

    @pytest.mark.asyncio
    async def test_origin_rejection_is_not_retried(self, fake_path):
        a = fake_path("a", [OriginRejectedError(URL, 403)])
        b = fake_path("b", ["<rss/>"])
        with pytest.raises(OriginRejectedError) as exc:
            await ResilientFetcher([a, b]).fetch(URL)
        assert exc.value.status == 403
        assert b.calls == []

    @pytest.mark.asyncio
    async def test_all_paths_failing_raises_last_error(self, fake_path):
        errors = [_transient(n) for n in ("a", "b", "c")]
        paths = [fake_path(n, [e]) for n, e in zip("abc", errors)]
        with pytest.raises(TransientNetworkError) as exc:
            await ResilientFetcher(paths).fetch(URL)
        assert exc.value is errors[-1]
        assert all(len(p.calls) == 1 for p in paths)

    @pytest.mark.asyncio
    async def test_attempts_capped_by_max_retries(self, fake_path):
        paths = [fake_path(n, [_transient(n)]) for n in "abc"]
        with pytest.raises(TransientNetworkError):
            await ResilientFetcher(paths, max_retries=2).fetch(URL)
        assert [len(p.calls) for p in paths] == [1, 1, 0]

    @pytest.mark.asyncio
    async def test_no_paths(self):
        with pytest.raises(FetchError):
            await ResilientFetcher([]).fetch(URL)

    @pytest.mark.asyncio
    async def test_context_manager_closes_paths(self, fake_path):
        paths = [fake_path("a", ["x"]), fake_path("b", ["y"])]
        async with ResilientFetcher(paths) as fetcher:
            await fetcher.fetch(URL)
        assert all(p.closed for p in paths)


def test_resolver_pairs_parsing():
    assert parse_resolver_pairs("8.8.8.8, 8.8.4.4;1.1.1.1;;") == [
        ["8.8.8.8", "8.8.4.4"],
        ["1.1.1.1"],
    ]
    assert parse_resolver_pairs("") == []


def test_from_settings_builds_one_path_per_resolver_pair():
    settings = Settings(dns_resolvers="1.1.1.1,1.0.0.1;9.9.9.9", fetch_max_retries=2)
    fetcher = ResilientFetcher.from_settings(settings)
    assert [p.name for p in fetcher.paths] == ["1.1.1.1,1.0.0.1", "9.9.9.9"]
    assert fetcher.max_retries == 2
    assert all(p.session is None for p in fetcher.paths)


class TestNetworkPath:
    @pytest.fixture
    def app(self):
        async def feed(request):
            return web.Response(text="<rss version='2.0'></rss>", content_type="application/rss+xml")

        async def missing(request):
            return web.Response(status=404, text="gone")

        app = web.Application()
        app.router.add_get("/feed", feed)
        app.router.add_get("/missing", missing)
        return app

    @pytest.mark.asyncio
    async def test_get_returns_body(self, app):
        async with test_utils.TestServer(app) as server:
            path = NetworkPath(["8.8.8.8"], timeout=5)
            try:
                result = await path.get(str(server.make_url("/feed")))
            finally:
                await path.close()
        assert result.status == 200
        assert "rss" in result.body

    @pytest.mark.asyncio
    async def test_non_2xx_is_origin_rejection(self, app):
        async with test_utils.TestServer(app) as server:
            path = NetworkPath(["8.8.8.8"], timeout=5)
            try:
                with pytest.raises(OriginRejectedError) as exc:
                    await path.get(str(server.make_url("/missing")))
            finally:
                await path.close()
        assert exc.value.status == 404

    @pytest.mark.asyncio
    async def test_refused_connection_is_transient(self):
        with socket.socket() as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
        path = NetworkPath(["8.8.8.8"], timeout=5)
        try:
            with pytest.raises(TransientNetworkError):
                await path.get(f"http://127.0.0.1:{port}/feed")
        finally:
            await path.close()

    @pytest.mark.asyncio
    async def test_body_cut_off_mid_stream_is_transient(self):
        resp = Mock(status=200, url=URL)
        resp.text = AsyncMock(side_effect=aiohttp.ClientPayloadError("payload is not completed"))
        request = MagicMock()
        request.__aenter__ = AsyncMock(return_value=resp)
        request.__aexit__ = AsyncMock(return_value=False)
        path = NetworkPath(["8.8.8.8"], timeout=5)
        path.session = Mock(closed=False, close=AsyncMock())
        path.session.get.return_value = request

        with pytest.raises(TransientNetworkError) as exc:
            await path.get(URL)
        assert isinstance(exc.value.cause, aiohttp.ClientPayloadError)
