"""
Trade Executor - Swaps against the best quoted route

Submission returns as soon as the node accepts the transaction. Receipts
are awaited separately (``wait_for_confirmation``), usually from a task
owned by the TaskSupervisor.
"""
import time
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .chain import ERC20_ABI, V2_ROUTER_ABI, V3_ROUTER_ABI
from .config import routers_by_key
from .exceptions import (
    ApprovalRequiredError,
    InsufficientBalanceError,
    NoLiquidityError,
    RevertedError,
    SubmissionFailedError,
    concise_error,
)
from .models import (
    AUTO_SLIPPAGE_BPS,
    MAX_SLIPPAGE_BPS,
    MAX_UINT256,
    SLIPPAGE_AUTO,
    Direction,
    GasEnvelope,
    Quote,
    RouteKind,
    Side,
    SwapSubmission,
)
from .quoter import RouteQuoter
from .state import EngineState
from .supervisor import TaskSupervisor

logger = logging.getLogger(__name__)

DEFAULT_DEADLINE_SECONDS = 600


def min_out_from_quote(quoted_out: int, slippage_bps: int) -> int:
    """Minimum accepted output: ``quoted_out`` less the slippage (Auto = 1%)"""
    if quoted_out <= 0:
        return 0
    bps = AUTO_SLIPPAGE_BPS if slippage_bps == SLIPPAGE_AUTO else max(0, min(MAX_SLIPPAGE_BPS, slippage_bps))
    return quoted_out * (10000 - bps) // 10000


class TradeExecutor:
    """
    Swap submission and approval management

    Usage:
        executor = TradeExecutor(chain, quoter, state=state, supervisor=supervisor)
        sub = await executor.swap(Side.BUY, pk, token, 10**18, 0, gas)
        receipt = await executor.wait_for_confirmation(sub.tx_hash)
    """

    def __init__(
        self,
        chain,
        quoter: RouteQuoter,
        state: Optional[EngineState] = None,
        supervisor: Optional[TaskSupervisor] = None,
        deadline_seconds: int = DEFAULT_DEADLINE_SECONDS,
        confirmation_timeout: float = 600,
        clock: Callable[[], float] = time.time,
    ):
        self.chain = chain
        self.quoter = quoter
        self.state = state or EngineState()
        self.supervisor = supervisor or TaskSupervisor()
        self.deadline_seconds = deadline_seconds
        self.confirmation_timeout = confirmation_timeout
        self._clock = clock

    def _deadline(self) -> int:
        return int(self._clock()) + self.deadline_seconds

    # =========================================================================
    # Swap
    # =========================================================================

    async def _check_balance(self, side: Side, owner: str, token: str, amount_in: int, gas: GasEnvelope) -> None:
        gas_cost = gas.gas_limit * gas.max_fee_per_gas
        native = await self.chain.get_balance(owner)

        if side == Side.BUY:
            if native < amount_in + gas_cost:
                raise InsufficientBalanceError(
                    f"Insufficient native balance: {native} < {amount_in} + {gas_cost} gas wei"
                )
            return

        balance = await self.chain.token_balance(token, owner)
        if balance < amount_in:
            raise InsufficientBalanceError(f"Insufficient token balance: {balance} < {amount_in} wei")
        if native < gas_cost:
            raise InsufficientBalanceError(f"Insufficient native balance for gas: {native} < {gas_cost} wei")

    def _swap_call(
        self, side: Side, quote: Quote, token: str, recipient: str, amount_in: int, min_amount_out: int
    ) -> Tuple[List[Dict[str, Any]], str, list, int]:
        """(abi, function name, args, value) for the winning route"""
        route = quote.route
        deadline = self._deadline()
        path = route.path(Direction.for_side(side), token)

        if route.kind == RouteKind.V3:
            params = (path[0], path[-1], route.fee, recipient, deadline, amount_in, min_amount_out, 0)
            value = amount_in if side == Side.BUY else 0
            return V3_ROUTER_ABI, "exactInputSingle", [params], value

        if side == Side.BUY:
            return (
                V2_ROUTER_ABI,
                "swapExactETHForTokensSupportingFeeOnTransferTokens",
                [min_amount_out, path, recipient, deadline],
                amount_in,
            )
        return (
            V2_ROUTER_ABI,
            "swapExactTokensForETHSupportingFeeOnTransferTokens",
            [amount_in, min_amount_out, path, recipient, deadline],
            0,
        )

    async def swap(
        self,
        side: Side,
        private_key: str,
        token: str,
        amount_in: int,
        min_amount_out: int,
        gas: GasEnvelope,
        slippage_bps: Optional[int] = None,
    ) -> SwapSubmission:
        """
        Swap ``amount_in`` (native for BUY, token for SELL) on the best route

        Args:
            min_amount_out: Absolute floor on the output
            slippage_bps: When set, the floor is raised to the execution-time
                quote less this slippage (SLIPPAGE_AUTO = 1%)

        Raises:
            InsufficientBalanceError: Balance below amount_in (plus gas for native)
            NoLiquidityError: No route quoted
            SubmissionFailedError: Node rejected the transaction
        """
        if amount_in <= 0:
            raise ValueError("amount_in must be positive")

        owner = self.chain.address_of(private_key)
        await self._check_balance(side, owner, token, amount_in, gas)

        quote = await self.quoter.quote(Direction.for_side(side), amount_in, token)
        if quote is None:
            raise NoLiquidityError(f"No route available for {side.value.lower()} of {token}")

        if slippage_bps is not None:
            min_amount_out = max(min_amount_out, min_out_from_quote(quote.amount_out, slippage_bps))

        abi, fn_name, args, value = self._swap_call(side, quote, token, owner, amount_in, min_amount_out)

        try:
            tx_hash = await self.chain.send_contract_transaction(
                private_key, quote.route.router, abi, fn_name, args, gas, value=value
            )
        except Exception as e:
            logger.error(f"{side.value} {token} via {quote.route.label} rejected: {e}")
            raise SubmissionFailedError(concise_error(e)) from e

        logger.info(f"{side.value} {token} via {quote.route.label} sent: {tx_hash}")

        if token.lower() != quote.route.base_token.lower():
            self.approve_async(private_key, token, gas)

        return SwapSubmission(
            tx_hash=tx_hash,
            side=side,
            token=token,
            amount_in=amount_in,
            expected_out=quote.amount_out,
            route_key=quote.route_key,
            min_amount_out=min_amount_out,
        )

    async def wait_for_confirmation(self, tx_hash: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Receipt of a mined transaction

        Raises:
            RevertedError: Receipt status is 0
        """
        receipt = await self.chain.wait_for_confirmation(tx_hash, timeout or self.confirmation_timeout)
        if receipt.get("status", 1) == 0:
            raise RevertedError(tx_hash)
        return receipt

    # =========================================================================
    # Approvals
    # =========================================================================

    async def require_approval(self, owner: str, token: str, spender: str, amount: int) -> None:
        """Synchronous allowance check for callers that want one before selling"""
        allowance = await self.chain.allowance(token, owner, spender)
        if allowance < amount:
            raise ApprovalRequiredError(f"Allowance {allowance} < {amount} for spender {spender}")

    async def ensure_approval(
        self,
        private_key: str,
        token: str,
        spender: str,
        gas: GasEnvelope,
        amount: int = MAX_UINT256,
    ) -> Optional[str]:
        """
        Approve ``spender`` for MAX_UINT256 unless at least half of ``amount`` is already allowed

        Returns:
            Approval tx hash, or None when skipped
        """
        owner = self.chain.address_of(private_key)
        current = await self.chain.allowance(token, owner, spender)
        if current >= amount // 2:
            logger.debug(f"Allowance for {spender} already set on {token}")
            return None

        try:
            tx_hash = await self.chain.send_contract_transaction(
                private_key, token, ERC20_ABI, "approve", [spender, MAX_UINT256], gas
            )
        except Exception as e:
            raise SubmissionFailedError(concise_error(e)) from e

        logger.info(f"Approve {token} for {spender}: {tx_hash}")
        return tx_hash

    async def approve_all(self, private_key: str, token: str, gas: GasEnvelope) -> List[str]:
        """
        Approve every configured router for ``token``, one after the other

        Returns:
            One line per router ("KEY: hash" or "skipped KEY")
        """
        results: List[str] = []
        for key, router in routers_by_key(self.quoter.routes).items():
            tx_hash = await self.ensure_approval(private_key, token, router, gas)
            if tx_hash is None:
                results.append(f"skipped {key}")
                continue
            await self.wait_for_confirmation(tx_hash)
            results.append(f"{key}: {tx_hash}")
        return results

    def approve_async(self, private_key: str, token: str, gas: GasEnvelope):
        """
        Fire-and-forget ``approve_all`` the first time a wallet meets a token

        Returns:
            The supervised task, or None when already dispatched
        """
        owner = self.chain.address_of(private_key)
        if not self.state.claim_approval(owner, token):
            return None

        async def _run():
            try:
                return await self.approve_all(private_key, token, gas)
            except Exception:
                # Allow a later swap to try again
                self.state.release_approval(owner, token)
                raise

        return self.supervisor.spawn(_run(), name=f"approve-{owner[:8]}-{token[:8]}")

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def pending_count(self, address: str) -> Tuple[int, int]:
        """(latest, pending) nonces; the difference is the stuck transaction count"""
        latest = await self.chain.get_transaction_count(address, "latest")
        pending = await self.chain.get_transaction_count(address, "pending")
        return latest, pending

    async def clear_pending(self, private_key: str, gas: GasEnvelope) -> int:
        """
        Replace every pending nonce with a zero-value self-transfer

        Returns:
            Number of replacement transactions sent
        """
        owner = self.chain.address_of(private_key)
        latest, pending = await self.pending_count(owner)

        cleared = 0
        for nonce in range(latest, pending):
            try:
                tx_hash = await self.chain.send_transaction(
                    private_key, {"to": owner, "value": 0}, gas, nonce=nonce
                )
            except Exception as e:
                raise SubmissionFailedError(f"nonce {nonce}: {concise_error(e)}") from e
            try:
                await self.chain.wait_for_confirmation(tx_hash, self.confirmation_timeout)
            except Exception as e:
                logger.warning(f"Replacement for nonce {nonce} not confirmed: {e}")
            cleared += 1

        logger.info(f"Cleared {cleared} pending transaction(s) for {owner}")
        return cleared
