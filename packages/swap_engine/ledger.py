"""
Trade Log + Cost Basis Ledger

Trades are inserted once at submission time and never updated. The
confirmation result lands in ``trade_outcomes``; reverted trades drop out
of the cost basis, pending and confirmed ones count.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from .database import Database
from .models import CostBasisSnapshot, PositionPnL, Side, Trade, TradeOutcomeKind, NATIVE_DECIMALS
from .schema import TradeOutcomeRow, TradeRow

logger = logging.getLogger(__name__)


class TradeLog:
    """Append-only trade history"""

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _to_trade(row: TradeRow, outcome: Optional[str]) -> Trade:
        return Trade(
            id=row.id,
            user_id=row.user_id,
            wallet_address=row.wallet_address,
            token_address=row.token_address,
            side=Side(row.side),
            native_amount_wei=int(row.native_amount_wei),
            token_amount_wei=int(row.token_amount_wei),
            route_key=row.route_key,
            tx_hash=row.tx_hash,
            created_at=row.created_at,
            outcome=TradeOutcomeKind(outcome) if outcome else None,
        )

    def record(
        self,
        user_id: int,
        wallet_address: str,
        token_address: str,
        side: Side,
        native_amount_wei: int,
        token_amount_wei: int,
        route_key: str,
        tx_hash: Optional[str] = None,
    ) -> Trade:
        """Insert one trade (token address stored lower-cased)"""
        if native_amount_wei < 0 or token_amount_wei < 0:
            raise ValueError("Trade amounts must not be negative")

        with self.db.get_session() as session:
            row = TradeRow(
                user_id=user_id,
                wallet_address=wallet_address,
                token_address=token_address.lower(),
                side=side.value,
                native_amount_wei=str(native_amount_wei),
                token_amount_wei=str(token_amount_wei),
                route_key=route_key,
                tx_hash=tx_hash,
            )
            session.add(row)
            session.flush()
            trade = self._to_trade(row, None)

        logger.info(
            f"Trade #{trade.id} {side.value} user={user_id} token={trade.token_address} "
            f"native={native_amount_wei} tokens={token_amount_wei} route={route_key}"
        )
        return trade

    def record_outcome(self, trade_id: int, outcome: TradeOutcomeKind) -> bool:
        """
        Attach the on-chain result to a trade

        Returns:
            False when an outcome was already recorded (the first one stays)
        """
        try:
            with self.db.get_session() as session:
                session.add(TradeOutcomeRow(trade_id=trade_id, outcome=outcome.value))
        except IntegrityError:
            logger.debug(f"Outcome already recorded for trade #{trade_id}")
            return False
        return True

    def trades_for(self, user_id: int, token_address: str) -> List[Trade]:
        """Trades of a user on a token, oldest first"""
        with self.db.get_session() as session:
            rows = (
                session.query(TradeRow, TradeOutcomeRow.outcome)
                .outerjoin(TradeOutcomeRow, TradeOutcomeRow.trade_id == TradeRow.id)
                .filter(TradeRow.user_id == user_id, TradeRow.token_address == token_address.lower())
                .order_by(TradeRow.id)
                .all()
            )
            return [self._to_trade(row, outcome) for row, outcome in rows]


class CostBasisLedger:
    """
    Weighted-average entry price, recomputed from the trade log on every call

    Usage:
        ledger = CostBasisLedger(TradeLog(db))
        snap = ledger.average_entry(user_id, token, decimals=9)
        if snap:
            print(snap.avg_native_per_token)
    """

    def __init__(self, trade_log: TradeLog):
        self.trade_log = trade_log

    @staticmethod
    def fold(trades: List[Trade]) -> tuple:
        """(total_native_in, net_tokens) after replaying ``trades`` in order"""
        native = 0
        tokens = 0
        for trade in trades:
            if trade.outcome == TradeOutcomeKind.REVERTED:
                continue
            if trade.side == Side.BUY:
                native += trade.native_amount_wei
                tokens += trade.token_amount_wei
                continue

            if tokens <= 0:
                continue
            sold = min(trade.token_amount_wei, tokens)
            native -= native * sold // tokens
            tokens -= sold
        return native, tokens

    def average_entry(self, user_id: int, token_address: str, decimals: int = 18) -> Optional[CostBasisSnapshot]:
        """
        Average native paid per whole token for the open position

        Returns:
            Snapshot, or None when nothing is held
        """
        native, tokens = self.fold(self.trade_log.trades_for(user_id, token_address))
        if tokens <= 0:
            return None

        native_human = Decimal(native) / (Decimal(10) ** NATIVE_DECIMALS)
        tokens_human = Decimal(tokens) / (Decimal(10) ** decimals)
        return CostBasisSnapshot(
            avg_native_per_token=native_human / tokens_human,
            total_native_in=native,
            net_tokens=tokens,
        )


def position_pnl(
    snapshot: CostBasisSnapshot,
    value_native_wei: int,
    balance_wei: int,
    decimals: int = 18,
) -> Optional[PositionPnL]:
    """
    Unrealized PnL of holding ``balance_wei`` tokens now worth ``value_native_wei``

    Returns None when the balance is empty.
    """
    if balance_wei <= 0:
        return None

    value = Decimal(value_native_wei) / (Decimal(10) ** NATIVE_DECIMALS)
    held = Decimal(balance_wei) / (Decimal(10) ** decimals)
    cost = snapshot.avg_native_per_token * held
    pnl = value - cost

    if snapshot.avg_native_per_token > 0:
        pnl_percent = ((value / held) / snapshot.avg_native_per_token - 1) * 100
    else:
        pnl_percent = Decimal(0)

    return PositionPnL(value_native=value, cost_native=cost, pnl_native=pnl, pnl_percent=pnl_percent)
