"""
PulseChain Swap Engine
======================

Multi-route swaps, gas envelopes, cost basis and limit orders on one
EVM chain (PulseChain by default).

Quick Start:
------------

    from swap_engine import EngineConfig, build_engine

    config = EngineConfig.from_env()
    engine = build_engine(config)

    # Best route for 1 PLS -> token
    quote = await engine.executor.quoter.quote(Direction.NATIVE_TO_TOKEN, 10**18, token)

    # Limit orders
    engine.store.create(user_id, wallet_id, token, Side.SELL,
                        TriggerType.MULTIPLE, Decimal("2"), sell_percent=100)
    await engine.start()

Routes:
-------
- PulseX V1 / V2, 9mm V2, 9inch V2 (getAmountsOut)
- 9mm V3, 9inch V3 (quoter, fee tiers 500 / 3000 / 10000)
"""

# Version
__version__ = "0.1.0"

from .config import EngineConfig, build_routes
from .exceptions import (
    SwapEngineError,
    ConfigError,
    GasConfigError,
    NoLiquidityError,
    InsufficientBalanceError,
    ApprovalRequiredError,
    SubmissionFailedError,
    RevertedError,
    PriceDataUnavailableError,
    ReadTimeoutError,
    KeyStoreError,
    WalletNotFoundError,
    concise_error,
)
from .models import (
    Side,
    Direction,
    TriggerType,
    OrderStatus,
    TradeOutcomeKind,
    Route,
    RouteKind,
    Quote,
    GasEnvelope,
    GasSettings,
    Trade,
    CostBasisSnapshot,
    LimitOrder,
    PairMetrics,
    SwapSubmission,
)
from .database import Database, get_database
from .quoter import RouteQuoter
from .gas import GasEstimator
from .executor import TradeExecutor
from .ledger import TradeLog, CostBasisLedger, position_pnl
from .orders import LimitOrderStore
from .state import EngineState, ProcessingRegistry
from .supervisor import TaskSupervisor
from .pricing import PriceService
from .market_data import DexScreenerFeed
from .engine import LimitOrderEngine, build_engine

__all__ = [
    "__version__",

    # Config / errors
    "EngineConfig",
    "build_routes",
    "SwapEngineError",
    "ConfigError",
    "GasConfigError",
    "NoLiquidityError",
    "InsufficientBalanceError",
    "ApprovalRequiredError",
    "SubmissionFailedError",
    "RevertedError",
    "PriceDataUnavailableError",
    "ReadTimeoutError",
    "KeyStoreError",
    "WalletNotFoundError",
    "concise_error",

    # Models
    "Side",
    "Direction",
    "TriggerType",
    "OrderStatus",
    "TradeOutcomeKind",
    "Route",
    "RouteKind",
    "Quote",
    "GasEnvelope",
    "GasSettings",
    "Trade",
    "CostBasisSnapshot",
    "LimitOrder",
    "PairMetrics",
    "SwapSubmission",

    # Components
    "Database",
    "get_database",
    "RouteQuoter",
    "GasEstimator",
    "TradeExecutor",
    "TradeLog",
    "CostBasisLedger",
    "position_pnl",
    "LimitOrderStore",
    "EngineState",
    "ProcessingRegistry",
    "TaskSupervisor",
    "PriceService",
    "DexScreenerFeed",
    "LimitOrderEngine",
    "build_engine",
]
