"""
Swap Engine CLI

    python -m swap_engine run
    python -m swap_engine quote 0xToken 1.5 [--sell]
    python -m swap_engine gas 42
    python -m swap_engine orders 42 [--json]
    python -m swap_engine position 42 0xToken [--wallet-id 1] [--json]
    python -m swap_engine pending 42 1 [--clear]
    python -m swap_engine ping [--address 0x...]
"""
import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from .config import EngineConfig
from .exceptions import SwapEngineError
from .models import Direction, NATIVE_DECIMALS

logger = logging.getLogger(__name__)


def _to_wei(amount: str, decimals: int) -> int:
    try:
        value = Decimal(amount)
    except InvalidOperation:
        raise SwapEngineError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise SwapEngineError("Amount must be a positive number")
    return int(value * (Decimal(10) ** decimals))


def _fmt(amount_wei: int, decimals: int) -> str:
    return f"{(Decimal(amount_wei) / (Decimal(10) ** decimals)).normalize():f}"


# =============================================================================
# Commands
# =============================================================================

async def cmd_run(config: EngineConfig, args) -> int:
    from .engine import build_engine
    from .notify import LogNotifier, TelegramNotifier

    notifier = TelegramNotifier(config.telegram_bot_token) if config.telegram_bot_token else LogNotifier()
    engine = build_engine(config, notifier)
    try:
        await engine.start(args.interval_ms)
    finally:
        engine.stop()
        await engine.supervisor.close()
        if isinstance(notifier, TelegramNotifier):
            await notifier.close()
        await engine.prices.feed.close()
    return 0


async def cmd_quote(config: EngineConfig, args) -> int:
    from .chain import ChainClient
    from .quoter import RouteQuoter

    chain = ChainClient(config.rpc_url, config.chain_id)
    quoter = RouteQuoter(chain, config.routes)

    meta = await chain.token_meta(args.token)
    if args.sell:
        amount_in = _to_wei(args.amount, meta.decimals)
        direction, out_decimals, out_symbol = Direction.TOKEN_TO_NATIVE, NATIVE_DECIMALS, "PLS"
    else:
        amount_in = _to_wei(args.amount, NATIVE_DECIMALS)
        direction, out_decimals, out_symbol = Direction.NATIVE_TO_TOKEN, meta.decimals, meta.symbol

    best = None
    for route, amount_out in await quoter.quote_all(direction, amount_in, args.token):
        shown = f"{_fmt(amount_out, out_decimals)} {out_symbol}" if amount_out else "no quote"
        print(f"  {route.label:<16} {shown}")
        if amount_out and (best is None or amount_out > best[1]):
            best = (route, amount_out)

    if best is None:
        print("❌ price unavailable (no route)")
        return 1
    print(f"✅ best: {best[0].label} -> {_fmt(best[1], out_decimals)} {out_symbol}")
    return 0


async def cmd_gas(config: EngineConfig, args) -> int:
    from .chain import ChainClient
    from .database import get_database
    from .gas import GasEstimator
    from .wallets import WalletStore

    db = get_database(config.database_path)
    chain = ChainClient(config.rpc_url, config.chain_id)
    estimator = GasEstimator(chain, WalletStore(db), config.default_gas_limit)
    envelope = await estimator.compute_gas(args.user_id, args.extra)
    print(json.dumps({
        "maxFeePerGas_gwei": _fmt(envelope.max_fee_per_gas, 9),
        "maxPriorityFeePerGas_gwei": _fmt(envelope.max_priority_fee_per_gas, 9),
        "gasLimit": envelope.gas_limit,
    }, indent=2))
    return 0


async def cmd_orders(config: EngineConfig, args) -> int:
    from .database import get_database
    from .orders import LimitOrderStore

    db = get_database(config.database_path)
    orders = LimitOrderStore(db, config.error_max_length).list_for_user(args.user_id)
    if args.json:
        print(json.dumps([order.to_dict() for order in orders], indent=2))
        return 0
    if not orders:
        print("No limit orders")
        return 0
    for order in orders:
        amount = (
            f"{_fmt(order.amount_native_wei, NATIVE_DECIMALS)} PLS"
            if order.amount_native_wei is not None
            else f"{order.sell_percent}%"
        )
        line = (
            f"#{order.id} {order.side.value} {amount} {order.trigger_type.value} "
            f"{order.trigger_value} [{order.status.value}] {order.token_address}"
        )
        if order.last_error:
            line += f" ({order.last_error})"
        print(line)
    return 0


async def cmd_position(config: EngineConfig, args) -> int:
    from .chain import ChainClient
    from .database import get_database
    from .ledger import CostBasisLedger, TradeLog, position_pnl
    from .quoter import RouteQuoter
    from .wallets import WalletStore

    db = get_database(config.database_path)
    chain = ChainClient(config.rpc_url, config.chain_id)
    meta = await chain.token_meta(args.token)

    snapshot = CostBasisLedger(TradeLog(db)).average_entry(args.user_id, args.token, meta.decimals)
    if snapshot is None:
        print(f"No open position on {meta.symbol}")
        return 0

    if args.json:
        print(json.dumps(snapshot.to_dict(), indent=2))
        return 0

    print(f"Entry: {snapshot.avg_native_per_token.normalize():f} PLS/{meta.symbol}")
    print(f"Net: {_fmt(snapshot.net_tokens, meta.decimals)} {meta.symbol}")

    if args.wallet_id is None:
        return 0

    wallet = WalletStore(db).require_wallet(args.user_id, args.wallet_id)
    balance = await chain.balance_or_none(wallet.address, config.balance_timeout_ms / 1000, token=args.token)
    if balance is None:
        print("Holdings: balance unavailable")
        return 0

    quote = None
    if balance > 0:
        quote = await RouteQuoter(chain, config.routes).quote(Direction.TOKEN_TO_NATIVE, balance, args.token)

    print(f"Holdings: {_fmt(balance, meta.decimals)} {meta.symbol}")
    if quote is None:
        print("Est. value: —")
        return 0

    pnl = position_pnl(snapshot, quote.amount_out, balance, meta.decimals)
    print(f"Est. value: {_fmt(quote.amount_out, NATIVE_DECIMALS)} PLS · Route: {quote.route.label}")
    if pnl is not None:
        mark = "🟢" if pnl.pnl_native >= 0 else "🔴"
        print(f"Unrealized PnL: {mark} {pnl.pnl_native:.4f} PLS ({pnl.pnl_percent:.2f}%)")
    return 0


async def cmd_pending(config: EngineConfig, args) -> int:
    from .engine import build_engine

    engine = build_engine(config)
    wallet = engine.wallets.require_wallet(args.user_id, args.wallet_id)
    latest, pending = await engine.executor.pending_count(wallet.address)
    print(f"latest nonce: {latest}  pending nonce: {pending}  stuck: {pending - latest}")

    if args.clear and pending > latest:
        gas = await engine.gas.compute_gas(args.user_id, args.extra)
        cleared = await engine.executor.clear_pending(engine.keystore.private_key_for(wallet), gas)
        print(f"✅ cleared {cleared} pending transaction(s)")
    return 0


async def cmd_ping(config: EngineConfig, args) -> int:
    from .chain import ChainClient

    result = await ChainClient(config.rpc_url, config.chain_id).ping(args.address)
    print(json.dumps(result, indent=2))
    return 0 if "error" not in result else 1


COMMANDS = {
    "run": cmd_run,
    "quote": cmd_quote,
    "gas": cmd_gas,
    "orders": cmd_orders,
    "position": cmd_position,
    "pending": cmd_pending,
    "ping": cmd_ping,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="swap-engine", description="PulseChain swap engine")
    parser.add_argument("--env-file", help="Path to a .env file")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the limit order engine")
    run.add_argument("--interval-ms", type=int, default=None, help="Scan interval (default LIMIT_CHECK_MS)")

    quote = sub.add_parser("quote", help="Quote every route for a swap")
    quote.add_argument("token")
    quote.add_argument("amount", help="Native amount (buy) or token amount (--sell)")
    quote.add_argument("--sell", action="store_true")

    gas = sub.add_parser("gas", help="Show the gas envelope for a user")
    gas.add_argument("user_id", type=int)
    gas.add_argument("--extra", default="0", help="Extra percent on top of the user's setting")

    orders = sub.add_parser("orders", help="List limit orders of a user")
    orders.add_argument("user_id", type=int)
    orders.add_argument("--json", action="store_true")

    position = sub.add_parser("position", help="Average entry and PnL")
    position.add_argument("user_id", type=int)
    position.add_argument("token")
    position.add_argument("--wallet-id", type=int, default=None)
    position.add_argument("--json", action="store_true", help="Entry snapshot only, as JSON")

    pending = sub.add_parser("pending", help="Count (and optionally replace) stuck transactions")
    pending.add_argument("user_id", type=int)
    pending.add_argument("wallet_id", type=int)
    pending.add_argument("--clear", action="store_true")
    pending.add_argument("--extra", default="0", help="Extra gas percent for replacements")

    ping = sub.add_parser("ping", help="Check the RPC endpoint")
    ping.add_argument("--address", default=None)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = EngineConfig.from_env(dotenv_path=args.env_file)
    except SwapEngineError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        return asyncio.run(COMMANDS[args.command](config, args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except SwapEngineError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
