"""Tests for the Polymarket price feed adapter."""

import asyncio
from datetime import timezone

import httpx
import pytest

from arena.clock import FakeClock
from arena.services.polymarket import (
    GammaMarket,
    PolymarketNotFoundError,
    PriceFeed,
    extract_prices,
    normalize_price,
)

from factories import gamma_client, gamma_payload, gamma_transport


def _odds(payload: dict) -> tuple[float, float, bool]:
    async def run():
        feed = PriceFeed(gamma_client(gamma_transport({"m1": payload})), FakeClock())
        async with feed.client:
            odds = await feed.get_market_odds("m1")
        return odds.yes_price, odds.no_price, odds.is_fallback

    return asyncio.run(run())


def test_outcome_prices_as_json_string() -> None:
    yes, no, fallback = _odds({"id": "m1", "outcomePrices": '["0.65", "0.35"]'})
    assert (yes, no, fallback) == (pytest.approx(0.65), pytest.approx(0.35), False)


def test_percent_quotes_are_normalized() -> None:
    yes, no, _ = _odds({"id": "m1", "outcomePrices": [65, 35]})
    assert yes == pytest.approx(0.65)
    assert no == pytest.approx(0.35)


def test_prices_rescaled_to_sum_to_one() -> None:
    yes, no, _ = _odds({"id": "m1", "outcomePrices": ["0.6", "0.6"]})
    assert yes == pytest.approx(0.5)
    assert no == pytest.approx(0.5)


def test_tokens_fallback() -> None:
    yes, no, _ = _odds({
        "id": "m1",
        "tokens": [{"outcome": "Yes", "price": 0.3}, {"outcome": "No", "price": 0.7}],
    })
    assert yes == pytest.approx(0.3)
    assert no == pytest.approx(0.7)


def test_missing_prices_fall_back_to_neutral() -> None:
    yes, no, fallback = _odds({"id": "m1", "question": "No prices here"})
    assert (yes, no, fallback) == (0.5, 0.5, True)


def test_not_found_falls_back_to_neutral() -> None:
    async def run() -> None:
        feed = PriceFeed(gamma_client(gamma_transport({})), FakeClock())
        async with feed.client:
            odds = await feed.get_market_odds("gone")
        assert odds.is_fallback
        assert (odds.yes_price, odds.no_price) == (0.5, 0.5)

    asyncio.run(run())


def test_timeout_falls_back_to_neutral() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    async def run() -> None:
        feed = PriceFeed(gamma_client(httpx.MockTransport(handler)), FakeClock())
        async with feed.client:
            odds = await feed.get_market_odds("m1")
        assert odds.is_fallback

    asyncio.run(run())


def test_fetch_market_raises_not_found() -> None:
    async def run() -> None:
        feed = PriceFeed(gamma_client(gamma_transport({})), FakeClock())
        async with feed.client:
            with pytest.raises(PolymarketNotFoundError):
                await feed.fetch_market("gone")

    asyncio.run(run())


def test_listing_requests_open_markets_only() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[gamma_payload("m1"), gamma_payload("m2")])

    async def run() -> list[GammaMarket]:
        feed = PriceFeed(gamma_client(httpx.MockTransport(handler)), FakeClock())
        async with feed.client:
            return await feed.fetch_markets()

    markets = asyncio.run(run())

    assert [m.id for m in markets] == ["m1", "m2"]
    assert seen[0].url.params["closed"] == "false"
    assert seen[0].url.params["limit"] == "1000"


def test_gamma_market_from_api() -> None:
    market = GammaMarket.from_api({
        "id": 12,
        "question": "Q?",
        "outcomePrices": '["0.8", "0.2"]',
        "volume": "1234.5",
        "endDate": "2025-03-01T12:00:00",
        "closed": True,
    })
    assert market.id == "12"
    assert market.volume == pytest.approx(1234.5)
    assert market.resolved is True
    assert market.end_date.tzinfo == timezone.utc


def test_price_helpers() -> None:
    assert normalize_price("45") == pytest.approx(0.45)
    assert normalize_price(None) is None
    assert normalize_price("abc") is None
    assert extract_prices({"bestBid": 0.4, "bestAsk": 0.5}) == pytest.approx((0.45, 0.55))
    assert extract_prices({"lastTradePrice": "0.7"}) == pytest.approx((0.7, 0.3))
    assert extract_prices({}) is None
