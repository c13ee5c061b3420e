"""
Swap Engine Models - Dataclasses for quotes, gas, trades and limit orders
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import ConfigError


MAX_UINT256 = 2**256 - 1
NATIVE_DECIMALS = 18

# Slippage setting meaning "1% under the quote"
SLIPPAGE_AUTO = -1
AUTO_SLIPPAGE_BPS = 100
MAX_SLIPPAGE_BPS = 5000


class Side(Enum):
    """Trade side, seen from the token"""
    BUY = "BUY"
    SELL = "SELL"


class Direction(Enum):
    """Swap direction for quoting"""
    NATIVE_TO_TOKEN = "native_to_token"
    TOKEN_TO_NATIVE = "token_to_native"

    @classmethod
    def for_side(cls, side: Side) -> "Direction":
        return cls.NATIVE_TO_TOKEN if side == Side.BUY else cls.TOKEN_TO_NATIVE


class TriggerType(Enum):
    """Metric a limit order is evaluated against"""
    NATIVE_PRICE = "NATIVE_PRICE"
    USD_PRICE = "USD_PRICE"
    MARKET_CAP = "MARKET_CAP"
    MULTIPLE = "MULTIPLE"


class OrderStatus(Enum):
    """Limit order lifecycle"""
    OPEN = "OPEN"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self != OrderStatus.OPEN


class TradeOutcomeKind(Enum):
    """On-chain result of a recorded trade"""
    CONFIRMED = "CONFIRMED"
    REVERTED = "REVERTED"


class RouteKind(Enum):
    V2 = "v2"
    V3 = "v3"


@dataclass(frozen=True)
class Route:
    """
    A router contract paired with the base token used as the other leg

    With ``wrapped_native`` set to another token than ``base_token`` (a
    stablecoin base), native goes through wrapped native first:
    WPLS -> base -> token on buys, token -> base -> WPLS on sells. Only V2
    routers take such multi-hop paths.
    """
    key: str
    kind: RouteKind
    router: str
    base_token: str
    quoter: Optional[str] = None
    fee: Optional[int] = None
    wrapped_native: Optional[str] = None

    def __post_init__(self):
        if self.is_multi_hop and self.kind != RouteKind.V2:
            raise ConfigError(f"Route {self.key}: only V2 routers can trade through a non-native base")

    @property
    def is_multi_hop(self) -> bool:
        return bool(self.wrapped_native) and self.wrapped_native.lower() != self.base_token.lower()

    @property
    def hops(self) -> List[str]:
        """Tokens between native and the traded token, native side first"""
        if self.is_multi_hop:
            return [self.wrapped_native, self.base_token]
        return [self.base_token]

    def serves(self, token: str) -> bool:
        """False when ``token`` is already one of the intermediate hops"""
        return not (self.is_multi_hop and token.lower() in (h.lower() for h in self.hops))

    def path(self, direction: Direction, token: str) -> List[str]:
        if direction == Direction.NATIVE_TO_TOKEN:
            return self.hops + [token]
        return [token] + self.hops[::-1]

    @property
    def label(self) -> str:
        if self.kind == RouteKind.V3:
            return f"{self.key}/{self.fee}"
        return self.key


@dataclass
class Quote:
    """Best output found for one swap request. Never persisted."""
    amount_out: int  # in wei of the output asset
    route_key: str
    route: Optional[Route] = None
    quoted_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class GasEnvelope:
    """EIP-1559 fee parameters ready for submission"""
    max_priority_fee_per_gas: int
    max_fee_per_gas: int
    gas_limit: int

    def to_tx_params(self) -> Dict[str, int]:
        return {
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "maxFeePerGas": self.max_fee_per_gas,
            "gas": self.gas_limit,
        }


@dataclass
class FeeData:
    """Network fee data in wei"""
    max_fee: int
    priority_fee: int


@dataclass
class GasSettings:
    """Per-user gas configuration"""
    gas_pct: Decimal = Decimal("0")  # percent over market, current
    default_gas_pct: Decimal = Decimal("0")
    gwei_boost: Decimal = Decimal("0")  # flat surcharge in gwei
    gas_limit: Optional[int] = None


@dataclass
class TokenMeta:
    address: str
    decimals: int = 18
    symbol: str = "TOKEN"
    name: str = "Token"


@dataclass
class PairMetrics:
    """Best-effort market data for a token"""
    price_usd: Optional[Decimal] = None
    liquidity_usd: Optional[Decimal] = None
    market_cap_usd: Optional[Decimal] = None

    @property
    def is_empty(self) -> bool:
        return self.price_usd is None and self.liquidity_usd is None and self.market_cap_usd is None


@dataclass
class SwapSubmission:
    """Handle returned once the node accepted a swap"""
    tx_hash: str
    side: Side
    token: str
    amount_in: int
    expected_out: int
    route_key: str
    min_amount_out: int = 0


@dataclass
class Trade:
    """Execution record, written once at submission time"""
    id: Optional[int]
    user_id: int
    wallet_address: str
    token_address: str
    side: Side
    native_amount_wei: int
    token_amount_wei: int
    route_key: str
    tx_hash: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    outcome: Optional[TradeOutcomeKind] = None

    @property
    def is_pending(self) -> bool:
        return self.outcome is None


@dataclass
class CostBasisSnapshot:
    """Weighted-average entry for a (user, token) position"""
    avg_native_per_token: Decimal
    total_native_in: int
    net_tokens: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "avg_native_per_token": str(self.avg_native_per_token),
            "total_native_in": str(self.total_native_in),
            "net_tokens": str(self.net_tokens),
        }


@dataclass
class PositionPnL:
    """Unrealized profit/loss of a position at a given price"""
    value_native: Decimal
    cost_native: Decimal
    pnl_native: Decimal
    pnl_percent: Decimal


@dataclass
class LimitOrder:
    """Standing instruction fired by the limit-order engine"""
    id: Optional[int]
    user_id: int
    wallet_id: int
    token_address: str
    side: Side
    trigger_type: TriggerType
    trigger_value: Decimal
    amount_native_wei: Optional[int] = None  # BUY only
    sell_percent: Optional[int] = None  # SELL only, 1-100
    status: OrderStatus = OrderStatus.OPEN
    last_error: Optional[str] = None
    tx_hash: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "wallet_id": self.wallet_id,
            "token_address": self.token_address,
            "side": self.side.value,
            "trigger_type": self.trigger_type.value,
            "trigger_value": str(self.trigger_value),
            "amount_native_wei": str(self.amount_native_wei) if self.amount_native_wei is not None else None,
            "sell_percent": self.sell_percent,
            "status": self.status.value,
            "last_error": self.last_error,
            "tx_hash": self.tx_hash,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class WalletRecord:
    """Wallet row as handed to the key store. Key material stays encrypted."""
    id: int
    user_id: int
    name: str
    address: str
    enc_privkey: bytes
