"""
Route Quoter - Best output across every configured router

Each candidate route is quoted concurrently. A route that reverts, raises,
times out or returns nothing is dropped; it never counts as a zero quote.
"""
import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from .exceptions import NoLiquidityError
from .models import Direction, Quote, Route, RouteKind

logger = logging.getLogger(__name__)


class RouteQuoter:
    """
    Multi-router quote aggregation

    Usage:
        quoter = RouteQuoter(chain, config.routes)
        quote = await quoter.quote(Direction.NATIVE_TO_TOKEN, 10**18, token)
        if quote:
            print(quote.route_key, quote.amount_out)
    """

    def __init__(self, chain, routes: Sequence[Route], timeout: float = 10.0):
        """
        Args:
            chain: ChainClient (or anything exposing amounts_out / quote_exact_input_single)
            routes: Candidate routes in configured order (ties go to the first)
            timeout: Per-route time limit in seconds
        """
        self.chain = chain
        self.routes = list(routes)
        self.timeout = timeout

    async def _quote_route(self, route: Route, direction: Direction, amount_in: int, token: str) -> Optional[int]:
        if not route.serves(token):
            return None

        path = route.path(direction, token)
        if route.kind == RouteKind.V3:
            call = self.chain.quote_exact_input_single(route.quoter, path[0], path[-1], route.fee, amount_in)
        else:
            call = self.chain.amounts_out(route.router, amount_in, path)

        try:
            result = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Quote timeout on {route.label}")
            return None
        except Exception as e:
            logger.debug(f"Quote failed on {route.label}: {e}")
            return None

        if route.kind == RouteKind.V2:
            if not result:
                return None
            result = result[-1]

        amount_out = int(result or 0)
        return amount_out if amount_out > 0 else None

    async def quote_all(
        self, direction: Direction, amount_in: int, token: str
    ) -> List[Tuple[Route, Optional[int]]]:
        """Per-route results in configured order (None = route failed)"""
        if amount_in <= 0 or not self.routes:
            return [(route, None) for route in self.routes]

        results = await asyncio.gather(
            *(self._quote_route(route, direction, amount_in, token) for route in self.routes)
        )
        return list(zip(self.routes, results))

    async def quote(self, direction: Direction, amount_in: int, token: str) -> Optional[Quote]:
        """
        Best quote for swapping ``amount_in`` in ``direction``

        Returns:
            Quote with the greatest amount_out, or None when no route quotes
        """
        best: Optional[Quote] = None
        for route, amount_out in await self.quote_all(direction, amount_in, token):
            if amount_out is None:
                continue
            if best is None or amount_out > best.amount_out:
                best = Quote(amount_out=amount_out, route_key=route.key, route=route)

        if best is None:
            logger.debug(f"No route quoted {direction.value} {amount_in} for {token}")
        return best

    async def best_route_or_raise(self, direction: Direction, amount_in: int, token: str) -> Quote:
        quote = await self.quote(direction, amount_in, token)
        if quote is None:
            raise NoLiquidityError(f"No route available for {token}")
        return quote
