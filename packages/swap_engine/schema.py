"""
SQLAlchemy tables for the swap engine.

Wei amounts are stored as decimal strings (they overflow SQLite integers).
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, LargeBinary, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    """Per-user gas and slippage settings."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    gas_pct = Column(String(32), nullable=False, default="0")
    default_gas_pct = Column(String(32), nullable=False, default="0")
    gwei_boost = Column(String(32), nullable=False, default="0")
    gas_limit = Column(Integer, nullable=True)
    slippage_bps = Column(Integer, nullable=False, default=-1)  # -1 = Auto
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, gas_pct={self.gas_pct}, boost={self.gwei_boost})>"


class WalletRow(Base):
    """Wallet owned by a user, private key encrypted with the master key."""

    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(64), nullable=False)
    enc_privkey = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<WalletRow(id={self.id}, user_id={self.user_id}, address='{self.address[:8]}...')>"


class TradeRow(Base):
    """Executed swap. Inserted once, never updated."""

    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    wallet_address = Column(String(64), nullable=False)
    token_address = Column(String(64), nullable=False, index=True)  # lower-cased
    side = Column(String(8), nullable=False)
    native_amount_wei = Column(Text, nullable=False)
    token_amount_wei = Column(Text, nullable=False)
    route_key = Column(String(32), nullable=False)
    tx_hash = Column(String(80), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<TradeRow(id={self.id}, side={self.side}, token='{self.token_address[:10]}...')>"


class TradeOutcomeRow(Base):
    """Confirmation result of a trade, at most one per trade."""

    __tablename__ = "trade_outcomes"
    __table_args__ = (UniqueConstraint("trade_id", name="uq_trade_outcome_trade"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    trade_id = Column(Integer, ForeignKey("trades.id", ondelete="CASCADE"), nullable=False)
    outcome = Column(String(16), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class LimitOrderRow(Base):
    """Standing limit order."""

    __tablename__ = "limit_orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    wallet_id = Column(Integer, nullable=False)
    token_address = Column(String(64), nullable=False)
    side = Column(String(8), nullable=False)
    amount_native_wei = Column(Text, nullable=True)
    sell_percent = Column(Integer, nullable=True)
    trigger_type = Column(String(16), nullable=False)
    trigger_value = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="OPEN", index=True)
    last_error = Column(Text, nullable=True)
    tx_hash = Column(String(80), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<LimitOrderRow(id={self.id}, side={self.side}, status={self.status})>"
