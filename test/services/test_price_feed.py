import sys
import unittest
from decimal import Decimal
from pathlib import Path

import httpx

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from services.price_feed import JupiterPriceFeed

SOL = "So11111111111111111111111111111111111111112"


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            request = httpx.Request("GET", "https://lite-api.jup.ag/price/v3")
            response = httpx.Response(self.status_code, request=request)
            raise httpx.HTTPStatusError("error", request=request, response=response)

    def json(self):
        return self._payload


class _FakeHttp:
    is_closed = False

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def get(self, path, params=None):
        self.calls.append((path, params))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _feed(responses, clock=None):
    feed = JupiterPriceFeed(cache_ttl_sec=60, clock=clock or _Clock())
    feed._client = _FakeHttp(responses)
    return feed


class JupiterPriceFeedTests(unittest.IsolatedAsyncioTestCase):
    async def test_parses_usd_price_for_mint(self):
        feed = _feed([_FakeResponse({SOL: {"usdPrice": 187.42, "decimals": 9}})])

        price = await feed.get_price(SOL)

        self.assertEqual(price, Decimal("187.42"))
        self.assertEqual(feed._client.calls, [("/price/v3", {"ids": SOL})])

    async def test_cached_price_is_reused_within_ttl(self):
        clock = _Clock()
        feed = _feed(
            [
                _FakeResponse({SOL: {"usdPrice": 100}}),
                _FakeResponse({SOL: {"usdPrice": 120}}),
            ],
            clock=clock,
        )

        self.assertEqual(await feed.get_price(SOL), Decimal("100"))
        clock.now = 30
        self.assertEqual(await feed.get_price(SOL), Decimal("100"))
        clock.now = 61
        self.assertEqual(await feed.get_price(SOL), Decimal("120"))
        self.assertEqual(len(feed._client.calls), 2)

    async def test_unknown_mint_returns_none(self):
        feed = _feed([_FakeResponse({})])
        self.assertIsNone(await feed.get_price(SOL))

    async def test_http_error_returns_none(self):
        feed = _feed([_FakeResponse({}, status_code=503)])
        self.assertIsNone(await feed.get_price(SOL))

    async def test_transport_error_returns_none(self):
        feed = _feed([httpx.ConnectError("unreachable")])
        self.assertIsNone(await feed.get_price(SOL))

    async def test_non_positive_price_returns_none(self):
        feed = _feed([_FakeResponse({SOL: {"usdPrice": 0}})])
        self.assertIsNone(await feed.get_price(SOL))


if __name__ == "__main__":
    unittest.main()
