"""
Price Resolution - Native, USD and market cap figures for a token

On-chain quotes give the native price; USD figures come from the market
feed first and fall back to native price x native/USD.
"""
import logging
from decimal import Decimal
from typing import Optional

from .models import Direction, NATIVE_DECIMALS

logger = logging.getLogger(__name__)

ONE_NATIVE = 10**NATIVE_DECIMALS


class PriceService:
    """
    Usage:
        prices = PriceService(chain, quoter, feed, wrapped_native, stable_address)
        native = await prices.native_price(token)
        usd = await prices.usd_price(token, native)
    """

    def __init__(self, chain, quoter, feed, wrapped_native: str, stable_address: Optional[str] = None):
        self.chain = chain
        self.quoter = quoter
        self.feed = feed
        self.wrapped_native = wrapped_native
        self.stable_address = stable_address

    async def decimals(self, token: str) -> int:
        meta = await self.chain.token_meta(token)
        return meta.decimals

    async def native_price(self, token: str, decimals: Optional[int] = None) -> Optional[Decimal]:
        """Native received for selling one whole token; None without a route"""
        if decimals is None:
            decimals = await self.decimals(token)

        quote = await self.quoter.quote(Direction.TOKEN_TO_NATIVE, 10**decimals, token)
        if quote is None:
            return None
        return Decimal(quote.amount_out) / Decimal(ONE_NATIVE)

    async def native_usd(self) -> Optional[Decimal]:
        """USD per native coin: stable route first, then the feed's wrapped-native price"""
        if self.stable_address:
            quote = await self.quoter.quote(Direction.NATIVE_TO_TOKEN, ONE_NATIVE, self.stable_address)
            if quote is not None:
                stable_decimals = await self.decimals(self.stable_address)
                return Decimal(quote.amount_out) / (Decimal(10) ** stable_decimals)

        metrics = await self.feed.best_pair_metrics(self.wrapped_native)
        return metrics.price_usd

    async def usd_price(self, token: str, native_price: Optional[Decimal] = None) -> Optional[Decimal]:
        """USD per whole token"""
        metrics = await self.feed.best_pair_metrics(token)
        if metrics.price_usd is not None:
            return metrics.price_usd
        return await self._usd_via_native(token, native_price)

    async def _usd_via_native(self, token: str, native_price: Optional[Decimal]) -> Optional[Decimal]:
        if native_price is None:
            native_price = await self.native_price(token)
        if native_price is None:
            return None

        native_usd = await self.native_usd()
        if native_usd is None:
            return None
        return native_price * native_usd

    async def market_cap(self, token: str, native_price: Optional[Decimal] = None) -> Optional[Decimal]:
        """USD market cap: feed first, else totalSupply x USD price"""
        metrics = await self.feed.best_pair_metrics(token)
        if metrics.market_cap_usd is not None:
            return metrics.market_cap_usd

        supply = await self.chain.total_supply(token)
        if not supply:
            return None

        price = metrics.price_usd
        if price is None:
            price = await self._usd_via_native(token, native_price)
        if price is None:
            return None

        decimals = await self.decimals(token)
        return Decimal(supply) / (Decimal(10) ** decimals) * price
