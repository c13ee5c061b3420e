"""
Wallet Store - Wallet lookup, per-user gas and slippage settings
"""
import logging
from decimal import Decimal
from typing import List, Optional

from .database import Database
from .exceptions import WalletNotFoundError
from .gas import validate_gas_settings
from .models import MAX_SLIPPAGE_BPS, SLIPPAGE_AUTO, GasSettings, WalletRecord
from .schema import User, WalletRow

logger = logging.getLogger(__name__)


def _to_record(row: WalletRow) -> WalletRecord:
    return WalletRecord(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        address=row.address,
        enc_privkey=bytes(row.enc_privkey),
    )


class WalletStore:
    """
    Usage:
        wallets = WalletStore(db)
        wallet = wallets.get_wallet(user_id, wallet_id)
        settings = wallets.get_gas_settings(user_id)
    """

    def __init__(self, db: Database):
        self.db = db

    def _ensure_user(self, session, user_id: int) -> User:
        user = session.get(User, user_id)
        if user is None:
            user = User(id=user_id)
            session.add(user)
            session.flush()
        return user

    # =========================================================================
    # Wallets
    # =========================================================================

    def add_wallet(self, user_id: int, name: str, address: str, enc_privkey: bytes) -> WalletRecord:
        """Store an already-encrypted wallet key"""
        with self.db.get_session() as session:
            self._ensure_user(session, user_id)
            row = WalletRow(user_id=user_id, name=name, address=address, enc_privkey=enc_privkey)
            session.add(row)
            session.flush()
            record = _to_record(row)

        logger.info(f"Wallet #{record.id} added for user {user_id}: {address[:10]}...")
        return record

    def get_wallet(self, user_id: int, wallet_id: int) -> Optional[WalletRecord]:
        """Wallet ``wallet_id`` if it belongs to ``user_id``"""
        with self.db.get_session() as session:
            row = (
                session.query(WalletRow)
                .filter(WalletRow.id == wallet_id, WalletRow.user_id == user_id)
                .first()
            )
            return _to_record(row) if row else None

    def require_wallet(self, user_id: int, wallet_id: int) -> WalletRecord:
        wallet = self.get_wallet(user_id, wallet_id)
        if wallet is None:
            raise WalletNotFoundError(f"Wallet {wallet_id} not found for user {user_id}")
        return wallet

    def list_wallets(self, user_id: int) -> List[WalletRecord]:
        with self.db.get_session() as session:
            rows = session.query(WalletRow).filter(WalletRow.user_id == user_id).order_by(WalletRow.id).all()
            return [_to_record(r) for r in rows]

    # =========================================================================
    # Gas settings
    # =========================================================================

    def get_gas_settings(self, user_id: int) -> GasSettings:
        """Stored settings, or defaults for an unknown user"""
        with self.db.get_session() as session:
            user = session.get(User, user_id)
            if user is None:
                return GasSettings()
            return GasSettings(
                gas_pct=Decimal(user.gas_pct),
                default_gas_pct=Decimal(user.default_gas_pct),
                gwei_boost=Decimal(user.gwei_boost),
                gas_limit=user.gas_limit,
            )

    def set_gas_settings(self, user_id: int, settings: GasSettings) -> GasSettings:
        """
        Persist gas settings after validation

        Raises:
            GasConfigError: Negative boost, non-finite percent or gas limit < 21000
        """
        validate_gas_settings(settings)
        with self.db.get_session() as session:
            user = self._ensure_user(session, user_id)
            user.gas_pct = str(settings.gas_pct)
            user.default_gas_pct = str(settings.default_gas_pct)
            user.gwei_boost = str(settings.gwei_boost)
            user.gas_limit = settings.gas_limit
        return settings

    # =========================================================================
    # Slippage
    # =========================================================================

    def get_slippage_bps(self, user_id: int) -> int:
        """Slippage in basis points, SLIPPAGE_AUTO (-1) unless the user set one"""
        with self.db.get_session() as session:
            user = session.get(User, user_id)
            if user is None or user.slippage_bps is None:
                return SLIPPAGE_AUTO
            return user.slippage_bps

    def set_slippage_bps(self, user_id: int, bps: int) -> int:
        """Store ``bps`` clamped to -1 (Auto) .. 5000 (50%)"""
        value = max(SLIPPAGE_AUTO, min(MAX_SLIPPAGE_BPS, int(round(bps))))
        with self.db.get_session() as session:
            user = self._ensure_user(session, user_id)
            user.slippage_bps = value
        return value
