"""
Market Data Feed - DexScreener token metrics (no API key needed)

Best effort only: any HTTP or payload problem yields an empty PairMetrics.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from .models import PairMetrics

logger = logging.getLogger(__name__)


def _dec(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def _liquidity(pair: Dict[str, Any]) -> Decimal:
    liquidity = pair.get("liquidity") or {}
    return _dec(liquidity.get("usd")) or Decimal(0)


def best_pair(pairs: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Highest USD liquidity pair; the first one wins ties"""
    best = None
    for pair in pairs:
        if best is None or _liquidity(pair) > _liquidity(best):
            best = pair
    return best


def metrics_from_pair(pair: Optional[Dict[str, Any]]) -> PairMetrics:
    """Price, liquidity and market cap (FDV when market cap is unknown)"""
    if not pair:
        return PairMetrics()

    liquidity = pair.get("liquidity") or {}
    market_cap = _dec(pair.get("marketCap"))
    if market_cap is None:
        market_cap = _dec(pair.get("fdv"))

    return PairMetrics(
        price_usd=_dec(pair.get("priceUsd")),
        liquidity_usd=_dec(liquidity.get("usd")),
        market_cap_usd=market_cap,
    )


class DexScreenerFeed:
    """
    Usage:
        async with DexScreenerFeed() as feed:
            metrics = await feed.best_pair_metrics("0x...")
    """

    BASE_URL = "https://api.dexscreener.com"

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    async def __aenter__(self):
        await self._init_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_client(self):
        """Initialize HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.timeout),
            )

    async def close(self):
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def token_pairs(self, token: str) -> List[Dict[str, Any]]:
        """All pairs DexScreener knows for ``token``"""
        await self._init_client()
        try:
            response = await self._client.get(f"/latest/dex/tokens/{token}")
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.warning(f"DexScreener timeout for {token}")
            return []
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"DexScreener request failed for {token}: {e}")
            return []

        pairs = data.get("pairs") if isinstance(data, dict) else None
        return pairs if isinstance(pairs, list) else []

    async def best_pair_metrics(self, token: str) -> PairMetrics:
        return metrics_from_pair(best_pair(await self.token_pairs(token)))
