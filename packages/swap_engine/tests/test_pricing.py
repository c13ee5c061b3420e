"""
Tests for PriceService.
"""
import asyncio
from decimal import Decimal

import pytest

from swap_engine.models import PairMetrics, TokenMeta
from swap_engine.pricing import PriceService
from swap_engine.quoter import RouteQuoter

from conftest import ONE, ROUTER_A, STABLE, TOKEN, WPLS, PriceBook, v2_route


@pytest.fixture
def prices(chain, feed):
    chain.v2_quotes[ROUTER_A] = PriceBook(Decimal("0.002"))
    quoter = RouteQuoter(chain, [v2_route("A", ROUTER_A)])
    return PriceService(chain, quoter, feed, WPLS)


class TestNativePrice:

    def test_one_whole_token(self, prices):
        assert asyncio.run(prices.native_price(TOKEN)) == Decimal("0.002")

    def test_uses_token_decimals(self, chain, prices):
        chain.metas[TOKEN.lower()] = TokenMeta(address=TOKEN, decimals=6)
        chain.v2_quotes[ROUTER_A] = PriceBook(Decimal("0.25"), decimals=6)

        assert asyncio.run(prices.native_price(TOKEN)) == Decimal("0.25")

    def test_no_route(self, chain, prices):
        chain.v2_quotes.clear()

        assert asyncio.run(prices.native_price(TOKEN)) is None


class TestUsd:

    def test_feed_price_first(self, feed, prices):
        feed.metrics[TOKEN.lower()] = PairMetrics(price_usd=Decimal("0.7"))

        assert asyncio.run(prices.usd_price(TOKEN)) == Decimal("0.7")

    def test_via_feed_native_price(self, feed, prices):
        feed.metrics[WPLS.lower()] = PairMetrics(price_usd=Decimal("0.00005"))

        assert asyncio.run(prices.usd_price(TOKEN)) == Decimal("0.002") * Decimal("0.00005")

    def test_via_stable_route(self, chain, feed):
        """1 native buys 0.00004 of a 6-decimal stable."""
        chain.v2_quotes[ROUTER_A] = lambda amount_in, path: (
            40 if path[-1].lower() == STABLE.lower() else amount_in * 2 // 1000
        )
        chain.metas[STABLE.lower()] = TokenMeta(address=STABLE, decimals=6)
        quoter = RouteQuoter(chain, [v2_route("A", ROUTER_A)])
        prices = PriceService(chain, quoter, feed, WPLS, STABLE)

        assert asyncio.run(prices.native_usd()) == Decimal("0.00004")
        assert WPLS not in feed.calls

    def test_unresolved(self, prices):
        assert asyncio.run(prices.usd_price(TOKEN)) is None


class TestMarketCap:

    def test_feed_market_cap(self, feed, prices):
        feed.metrics[TOKEN.lower()] = PairMetrics(market_cap_usd=Decimal("123456"))

        assert asyncio.run(prices.market_cap(TOKEN)) == Decimal("123456")

    def test_supply_times_feed_price(self, chain, feed, prices):
        chain.supplies[TOKEN.lower()] = 2_000_000 * ONE
        feed.metrics[TOKEN.lower()] = PairMetrics(price_usd=Decimal("0.01"))

        assert asyncio.run(prices.market_cap(TOKEN)) == Decimal("20000")

    def test_no_supply(self, feed, prices):
        feed.metrics[TOKEN.lower()] = PairMetrics(price_usd=Decimal("0.01"))

        assert asyncio.run(prices.market_cap(TOKEN)) is None
