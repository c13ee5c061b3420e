"""
Limit Order Engine - Periodic trigger evaluation and order firing

One scan walks the OPEN orders sequentially. A firing order is marked as
processing before its first suspension point and filled as soon as the
node accepts the swap; confirmation runs detached on the supervisor.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from .config import EngineConfig
from .exceptions import ConfigError, PriceDataUnavailableError, RevertedError, SwapEngineError, concise_error
from .executor import TradeExecutor
from .gas import GasEstimator
from .keystore import MasterKeyStore
from .ledger import CostBasisLedger, TradeLog
from .models import LimitOrder, NATIVE_DECIMALS, OrderStatus, Side, SwapSubmission, Trade, TradeOutcomeKind, TriggerType
from .notify import NotificationSink, safe_notify
from .orders import LimitOrderStore
from .pricing import PriceService
from .state import EngineState
from .supervisor import TaskSupervisor
from .wallets import WalletStore

logger = logging.getLogger(__name__)


def _human(amount_wei: int, decimals: int) -> str:
    value = Decimal(amount_wei) / (Decimal(10) ** decimals)
    return f"{value.normalize():f}"


class LimitOrderEngine:
    """
    Moteur d'ordres limites

    Usage:
        engine = build_engine(config, notifier)
        await engine.check_once()      # one scan
        await engine.start()           # until stop()
    """

    def __init__(
        self,
        config: EngineConfig,
        chain,
        store: LimitOrderStore,
        wallets: WalletStore,
        keystore: MasterKeyStore,
        executor: TradeExecutor,
        gas: GasEstimator,
        prices: PriceService,
        trade_log: TradeLog,
        ledger: CostBasisLedger,
        notifier: Optional[NotificationSink] = None,
        state: Optional[EngineState] = None,
        supervisor: Optional[TaskSupervisor] = None,
    ):
        self.config = config
        self.chain = chain
        self.store = store
        self.wallets = wallets
        self.keystore = keystore
        self.executor = executor
        self.gas = gas
        self.prices = prices
        self.trade_log = trade_log
        self.ledger = ledger
        self.notifier = notifier
        self.state = state or executor.state
        self.supervisor = supervisor or executor.supervisor

        self._decimals: Dict[str, int] = {}
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None

    # =========================================================================
    # Loop
    # =========================================================================

    async def start(self, interval_ms: Optional[int] = None):
        """Scan every ``interval_ms`` (default LIMIT_CHECK_MS) until stop()"""
        interval = (interval_ms or self.config.limit_check_ms) / 1000
        self._running = True
        self._stop_event = asyncio.Event()
        logger.info(f"Limit order engine started (every {interval:g}s)")

        try:
            while self._running:
                try:
                    await self.check_once()
                except Exception as e:
                    logger.exception(f"Limit scan failed: {e}")

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("Limit order engine stopped")

    def stop(self):
        self._running = False
        if self._stop_event:
            self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    async def check_once(self) -> int:
        """
        One sequential pass over OPEN orders

        Returns:
            Number of orders fired during this pass
        """
        self.state.processing.sweep()
        orders = self.store.list_open()
        logger.debug(f"Limit scan: {len(orders)} open order(s), {len(self.state.processing)} processing")

        fired = 0
        for order in orders:
            if self.state.processing.is_processing(order.id):
                continue

            try:
                should_fire = await self._should_fire(order)
            except Exception as e:
                logger.warning(f"Limit #{order.id} evaluation failed: {e}")
                continue
            if not should_fire:
                continue

            if not self.state.processing.try_mark(order.id):
                continue
            current = self.store.get(order.id)
            if current is None or current.status != OrderStatus.OPEN:
                self.state.processing.unmark(order.id)
                continue

            try:
                if await self._fire(order):
                    fired += 1
            except Exception as e:
                self._fail(order, str(e) if isinstance(e, SwapEngineError) else concise_error(e))
                logger.exception(f"Limit #{order.id} failed")

        return fired

    # =========================================================================
    # Triggers
    # =========================================================================

    async def _token_decimals(self, token: str) -> int:
        key = token.lower()
        if key not in self._decimals:
            meta = await self.chain.token_meta(token)
            self._decimals[key] = meta.decimals
        return self._decimals[key]

    async def _should_fire(self, order: LimitOrder) -> bool:
        token = order.token_address
        decimals = await self._token_decimals(token)
        native_price = await self.prices.native_price(token, decimals)
        if native_price is None:
            return False

        trigger = order.trigger_value

        if order.trigger_type == TriggerType.MULTIPLE:
            if order.side != Side.SELL:
                return False
            basis = self.ledger.average_entry(order.user_id, token, decimals)
            if basis is None:
                return False
            return native_price >= trigger * basis.avg_native_per_token

        try:
            value = await self._trigger_metric(order, native_price)
        except PriceDataUnavailableError as e:
            logger.debug(f"Limit #{order.id} skipped: {e}")
            if order.trigger_type == TriggerType.MARKET_CAP and self.state.should_notify_once(order.id):
                await safe_notify(
                    self.notifier,
                    order.user_id,
                    f"ℹ️ Limit #{order.id} (MCAP) skipped: could not resolve market cap.",
                )
            return False

        if order.side == Side.BUY:
            return value <= trigger
        return value >= trigger

    async def _trigger_metric(self, order: LimitOrder, native_price: Decimal) -> Decimal:
        if order.trigger_type == TriggerType.NATIVE_PRICE:
            return native_price

        if order.trigger_type == TriggerType.USD_PRICE:
            value = await self.prices.usd_price(order.token_address, native_price)
            what = "USD price"
        else:
            value = await self.prices.market_cap(order.token_address, native_price)
            what = "market cap"

        if value is None:
            raise PriceDataUnavailableError(f"{what} unavailable for {order.token_address}")
        return value

    # =========================================================================
    # Firing
    # =========================================================================

    def _fail(self, order: LimitOrder, message: str):
        self.state.processing.unmark(order.id)
        self.store.mark_error(order.id, message)

    async def _fire(self, order: LimitOrder) -> bool:
        wallet = self.wallets.get_wallet(order.user_id, order.wallet_id)
        if wallet is None:
            self._fail(order, "wallet missing")
            return False

        gas = await self.gas.compute_gas(order.user_id)

        if order.side == Side.BUY:
            amount = order.amount_native_wei or 0
            if amount <= 0:
                self._fail(order, "amount zero")
                return False
        else:
            balance = await self.chain.token_balance(order.token_address, wallet.address)
            pct = max(1, min(100, order.sell_percent or 100))
            amount = balance * pct // 100
            if amount <= 0:
                self._fail(order, "balance zero")
                return False

        private_key = self.keystore.private_key_for(wallet)
        slippage_bps = self.wallets.get_slippage_bps(order.user_id)
        submission = await self.executor.swap(
            order.side, private_key, order.token_address, amount, 0, gas, slippage_bps=slippage_bps
        )

        # Filled before confirmation: the order must never fire twice
        self.store.mark_filled(order.id, submission.tx_hash)
        logger.info(f"Limit #{order.id} fired: {order.side.value} {order.token_address} tx={submission.tx_hash}")

        if order.side == Side.BUY:
            native_wei, token_wei = amount, submission.expected_out
        else:
            native_wei, token_wei = submission.expected_out, amount

        trade = self.trade_log.record(
            user_id=order.user_id,
            wallet_address=wallet.address,
            token_address=order.token_address,
            side=order.side,
            native_amount_wei=native_wei,
            token_amount_wei=token_wei,
            route_key=submission.route_key,
            tx_hash=submission.tx_hash,
        )

        await safe_notify(
            self.notifier,
            order.user_id,
            f"Limit #{order.id}: transaction sent {self.config.tx_url(submission.tx_hash)}",
        )

        self.supervisor.spawn(
            self._confirm(order, trade, submission),
            name=f"confirm-limit-{order.id}",
        )
        return True

    async def _confirm(self, order: LimitOrder, trade: Trade, submission: SwapSubmission):
        """Detached continuation: receipt, outcome row, user notification"""
        try:
            try:
                await self.executor.wait_for_confirmation(submission.tx_hash)
            except RevertedError:
                self.trade_log.record_outcome(trade.id, TradeOutcomeKind.REVERTED)
                logger.error(f"Limit #{order.id} reverted: {submission.tx_hash}")
                await safe_notify(
                    self.notifier,
                    order.user_id,
                    f"❌ Limit #{order.id} transaction reverted {self.config.tx_url(submission.tx_hash)}",
                )
                return

            self.trade_log.record_outcome(trade.id, TradeOutcomeKind.CONFIRMED)
            await safe_notify(self.notifier, order.user_id, await self._success_text(order, trade, submission))
        finally:
            self.state.processing.unmark(order.id)

    async def _success_text(self, order: LimitOrder, trade: Trade, submission: SwapSubmission) -> str:
        decimals = await self._token_decimals(order.token_address)
        native = _human(trade.native_amount_wei, NATIVE_DECIMALS)
        tokens = _human(trade.token_amount_wei, decimals)
        url = self.config.tx_url(submission.tx_hash)

        if order.side == Side.BUY:
            return f"✅ Buy successful ✅\nSpend: {native} PLS\nReceived: ~{tokens} tokens\n{url}"
        return f"✅ Sell successful ✅\nSpend: {tokens} tokens\nReceived: ~{native} PLS\n{url}"

    # =========================================================================
    # Commands / accessors
    # =========================================================================

    def cancel(self, user_id: int, order_id: int) -> bool:
        """Cancel an OPEN order that is not being fired right now"""
        if self.state.processing.is_processing(order_id):
            return False
        ok = self.store.cancel(user_id, order_id)
        if ok:
            self.state.forget_notice(order_id)
        return ok

    def list_orders(self, user_id: int) -> List[LimitOrder]:
        return self.store.list_for_user(user_id)

    def open_orders(self) -> List[LimitOrder]:
        return self.store.list_open()


def build_engine(
    config: EngineConfig,
    notifier: Optional[NotificationSink] = None,
    chain=None,
    feed=None,
    db=None,
) -> LimitOrderEngine:
    """
    Wire every component from ``config``

    ``chain``, ``feed`` and ``db`` default to the JSON-RPC client, the
    DexScreener feed and the SQLite database named in the config.
    """
    from .chain import ChainClient
    from .database import Database
    from .market_data import DexScreenerFeed
    from .quoter import RouteQuoter

    if not config.master_key:
        raise ConfigError("MASTER_KEY is required to run the engine")

    chain = chain or ChainClient(config.rpc_url, config.chain_id)
    feed = feed or DexScreenerFeed()
    if db is None:
        db = Database(config.database_path)
        db.init_db()

    state = EngineState(config.processing_ttl_seconds)
    supervisor = TaskSupervisor()
    quoter = RouteQuoter(chain, config.routes)
    wallets = WalletStore(db)
    trade_log = TradeLog(db)

    executor = TradeExecutor(
        chain,
        quoter,
        state=state,
        supervisor=supervisor,
        deadline_seconds=config.swap_deadline_seconds,
        confirmation_timeout=config.confirmation_timeout_seconds,
    )

    return LimitOrderEngine(
        config=config,
        chain=chain,
        store=LimitOrderStore(db, config.error_max_length),
        wallets=wallets,
        keystore=MasterKeyStore(config.master_key),
        executor=executor,
        gas=GasEstimator(chain, wallets, config.default_gas_limit),
        prices=PriceService(chain, quoter, feed, config.wrapped_native, config.stable_address),
        trade_log=trade_log,
        ledger=CostBasisLedger(trade_log),
        notifier=notifier,
        state=state,
        supervisor=supervisor,
    )
