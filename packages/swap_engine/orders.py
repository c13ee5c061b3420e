"""
Limit Order Store - Persistence and state machine for limit orders

Every transition is a single conditional UPDATE on ``status = 'OPEN'``, so
a terminal order can never move again.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from .database import Database
from .models import LimitOrder, OrderStatus, Side, TriggerType
from .schema import LimitOrderRow

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MAX_LENGTH = 300


def _to_order(row: LimitOrderRow) -> LimitOrder:
    return LimitOrder(
        id=row.id,
        user_id=row.user_id,
        wallet_id=row.wallet_id,
        token_address=row.token_address,
        side=Side(row.side),
        trigger_type=TriggerType(row.trigger_type),
        trigger_value=Decimal(row.trigger_value),
        amount_native_wei=int(row.amount_native_wei) if row.amount_native_wei is not None else None,
        sell_percent=row.sell_percent,
        status=OrderStatus(row.status),
        last_error=row.last_error,
        tx_hash=row.tx_hash,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class LimitOrderStore:
    """
    Usage:
        store = LimitOrderStore(db)
        order = store.create(user_id, wallet_id, token, Side.SELL,
                             TriggerType.MULTIPLE, Decimal("2"), sell_percent=100)
        store.cancel(user_id, order.id)
    """

    def __init__(self, db: Database, error_max_length: int = DEFAULT_ERROR_MAX_LENGTH):
        self.db = db
        self.error_max_length = error_max_length

    # =========================================================================
    # Create / read
    # =========================================================================

    def create(
        self,
        user_id: int,
        wallet_id: int,
        token_address: str,
        side: Side,
        trigger_type: TriggerType,
        trigger_value,
        amount_native_wei: Optional[int] = None,
        sell_percent: Optional[int] = None,
    ) -> LimitOrder:
        """
        Create an OPEN order

        Raises:
            ValueError: Missing or out-of-range amount, percent or trigger
        """
        try:
            trigger = Decimal(str(trigger_value))
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid trigger value: {trigger_value!r}")
        if not trigger.is_finite() or trigger <= 0:
            raise ValueError("Trigger value must be a positive number")

        if trigger_type == TriggerType.MULTIPLE and side != Side.SELL:
            raise ValueError("MULTIPLE trigger is only valid for SELL orders")

        if side == Side.BUY:
            if amount_native_wei is None or amount_native_wei <= 0:
                raise ValueError("BUY order needs a positive native amount")
            sell_percent = None
        else:
            if sell_percent is None or not 1 <= sell_percent <= 100:
                raise ValueError("SELL order needs a sell percent between 1 and 100")
            amount_native_wei = None

        now = datetime.utcnow()
        with self.db.get_session() as session:
            row = LimitOrderRow(
                user_id=user_id,
                wallet_id=wallet_id,
                token_address=token_address,
                side=side.value,
                amount_native_wei=str(amount_native_wei) if amount_native_wei is not None else None,
                sell_percent=sell_percent,
                trigger_type=trigger_type.value,
                trigger_value=str(trigger),
                status=OrderStatus.OPEN.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            order = _to_order(row)

        logger.info(f"Limit order #{order.id} created: {side.value} {trigger_type.value} {trigger}")
        return order

    def get(self, order_id: int) -> Optional[LimitOrder]:
        with self.db.get_session() as session:
            row = session.get(LimitOrderRow, order_id)
            return _to_order(row) if row else None

    def list_for_user(self, user_id: int) -> List[LimitOrder]:
        """All orders of a user, newest first"""
        with self.db.get_session() as session:
            rows = (
                session.query(LimitOrderRow)
                .filter(LimitOrderRow.user_id == user_id)
                .order_by(LimitOrderRow.id.desc())
                .all()
            )
            return [_to_order(r) for r in rows]

    def list_open(self) -> List[LimitOrder]:
        """Every OPEN order, oldest first"""
        with self.db.get_session() as session:
            rows = (
                session.query(LimitOrderRow)
                .filter(LimitOrderRow.status == OrderStatus.OPEN.value)
                .order_by(LimitOrderRow.id)
                .all()
            )
            return [_to_order(r) for r in rows]

    # =========================================================================
    # Transitions
    # =========================================================================

    def _transition(self, order_id: int, values: dict, user_id: Optional[int] = None) -> bool:
        values = dict(values, updated_at=datetime.utcnow())
        with self.db.get_session() as session:
            query = session.query(LimitOrderRow).filter(
                LimitOrderRow.id == order_id,
                LimitOrderRow.status == OrderStatus.OPEN.value,
            )
            if user_id is not None:
                query = query.filter(LimitOrderRow.user_id == user_id)
            changed = query.update(values, synchronize_session=False)
        return changed == 1

    def cancel(self, user_id: int, order_id: int) -> bool:
        """OPEN -> CANCELLED for the owner; False otherwise"""
        ok = self._transition(order_id, {"status": OrderStatus.CANCELLED.value}, user_id=user_id)
        if ok:
            logger.info(f"Limit order #{order_id} cancelled by user {user_id}")
        return ok

    def mark_filled(self, order_id: int, tx_hash: str) -> bool:
        """OPEN -> FILLED once the swap was accepted by the node"""
        ok = self._transition(order_id, {"status": OrderStatus.FILLED.value, "tx_hash": tx_hash})
        if ok:
            logger.info(f"Limit order #{order_id} filled: {tx_hash}")
        return ok

    def mark_error(self, order_id: int, message: str) -> bool:
        """OPEN -> ERROR with the (truncated) failure message"""
        text = (message or "error")[: self.error_max_length]
        ok = self._transition(order_id, {"status": OrderStatus.ERROR.value, "last_error": text})
        if ok:
            logger.error(f"Limit order #{order_id} error: {text}")
        return ok
