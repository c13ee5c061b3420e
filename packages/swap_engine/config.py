"""
Swap Engine - Configuration

Routes, RPC endpoint and engine timings. Built from environment variables
(a ``.env`` file is loaded when present) or constructed directly in tests.
"""
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv
from web3 import Web3

from .exceptions import ConfigError
from .models import Route, RouteKind


# PulseChain defaults
DEFAULT_CHAIN_ID = 369
DEFAULT_WPLS = "0xA1077a294dDE1B09bB078844df40758a5D0f9a27"
DEFAULT_EXPLORER_URL = "https://otter.pulsechain.com"

# V3 fee tiers probed for every V3 router (0.05%, 0.3%, 1%)
V3_FEE_TIERS = (500, 3000, 10000)

DEFAULT_GAS_LIMIT = 250000
MIN_GAS_LIMIT = 21000

# V2 routers, in the order they are probed
V2_ROUTER_ENV = (
    ("PULSEX_V1", "PULSEX_V1_ROUTER"),
    ("PULSEX_V2", "ROUTER_ADDRESS"),
    ("9MM_V2", "NINEMM_V2_ROUTER"),
    ("9INCH_V2", "NINEINCH_V2_ROUTER"),
)

# V3 (router, quoter) pairs, only used when both are set
V3_ROUTER_ENV = (
    ("9MM_V3", "NINEMM_V3_ROUTER", "NINEMM_V3_QUOTER"),
    ("9INCH_V3", "NINEINCH_V3_ROUTER", "NINEINCH_V3_QUOTER"),
)


def _checksum(name: str, value: str) -> str:
    if not Web3.is_address(value):
        raise ConfigError(f"{name} is not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


@dataclass
class EngineConfig:
    """Configuration globale de l'engine"""
    rpc_url: str
    wrapped_native: str
    routes: List[Route] = field(default_factory=list)
    chain_id: int = DEFAULT_CHAIN_ID

    # USD leg for native/USD conversion (optional)
    stable_address: Optional[str] = None

    # Storage / keys
    database_path: str = os.path.join("data", "swap_engine.sqlite")
    master_key: Optional[str] = None

    # Timings
    limit_check_ms: int = 15000
    balance_timeout_ms: int = 8000
    processing_ttl_seconds: int = 300
    swap_deadline_seconds: int = 600
    confirmation_timeout_seconds: int = 600

    # Gas
    default_gas_limit: int = DEFAULT_GAS_LIMIT

    # Notifications
    telegram_bot_token: Optional[str] = None
    explorer_url: str = DEFAULT_EXPLORER_URL

    # Misc
    error_max_length: int = 300
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.rpc_url:
            raise ConfigError("RPC_URL is required")
        self.wrapped_native = _checksum("WPLS_ADDRESS", self.wrapped_native)
        if self.stable_address:
            self.stable_address = _checksum("STABLE_ADDRESS", self.stable_address)
        if self.master_key is not None and len(self.master_key) < 32:
            raise ConfigError("MASTER_KEY must be at least 32 characters")
        if self.limit_check_ms <= 0:
            raise ConfigError("LIMIT_CHECK_MS must be positive")

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[str] = None,
    ) -> "EngineConfig":
        """
        Build the configuration from environment variables

        Args:
            env: Mapping to read instead of os.environ
            dotenv_path: Optional .env file (default: search from cwd)
        """
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ

        wrapped = env.get("WPLS_ADDRESS") or DEFAULT_WPLS
        stable = env.get("STABLE_ADDRESS") or env.get("USDC_ADDRESS") or env.get("USDCe_ADDRESS")
        routes = build_routes(env, wrapped, stable)
        if not routes:
            raise ConfigError("No router configured (set ROUTER_ADDRESS at least)")

        return cls(
            rpc_url=env.get("RPC_URL", ""),
            chain_id=int(env.get("CHAIN_ID", DEFAULT_CHAIN_ID)),
            wrapped_native=wrapped,
            routes=routes,
            stable_address=stable or None,
            database_path=env.get("DATABASE_PATH", os.path.join("data", "swap_engine.sqlite")),
            master_key=env.get("MASTER_KEY") or None,
            limit_check_ms=int(env.get("LIMIT_CHECK_MS", 15000)),
            balance_timeout_ms=int(env.get("BAL_TIMEOUT_MS", 8000)),
            telegram_bot_token=env.get("TELEGRAM_BOT_TOKEN") or env.get("BOT_TOKEN") or None,
            explorer_url=env.get("EXPLORER_URL", DEFAULT_EXPLORER_URL),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


def build_routes(env: Mapping[str, str], base_token: str, stable: Optional[str] = None) -> List[Route]:
    """
    Expand router settings into candidate routes

    Direct routes trade against the wrapped native. V3 routers get one
    route per fee tier. With a stablecoin set, every V2 router also gets a
    ``<KEY>_STABLE`` route going wrapped native -> stable -> token. Stable
    routes come last so a tie keeps the direct route. Unset routers are
    skipped.
    """
    base = _checksum("WPLS_ADDRESS", base_token)
    routes: List[Route] = []

    for key, var in V2_ROUTER_ENV:
        router = env.get(var)
        if router:
            routes.append(Route(key=key, kind=RouteKind.V2, router=_checksum(var, router), base_token=base))

    for key, router_var, quoter_var in V3_ROUTER_ENV:
        router, quoter = env.get(router_var), env.get(quoter_var)
        if not (router and quoter):
            continue
        for fee in V3_FEE_TIERS:
            routes.append(Route(
                key=key,
                kind=RouteKind.V3,
                router=_checksum(router_var, router),
                base_token=base,
                quoter=_checksum(quoter_var, quoter),
                fee=fee,
            ))

    if stable:
        stable_base = _checksum("STABLE_ADDRESS", stable)
        for route in [r for r in routes if r.kind == RouteKind.V2]:
            routes.append(Route(
                key=f"{route.key}_STABLE",
                kind=RouteKind.V2,
                router=route.router,
                base_token=stable_base,
                wrapped_native=base,
            ))

    return routes


def routers_by_key(routes: List[Route]) -> Dict[str, str]:
    """Distinct router address per route key, in configured order"""
    seen: Dict[str, str] = {}
    addresses = set()
    for route in routes:
        if route.key in seen or route.router.lower() in addresses:
            continue
        seen[route.key] = route.router
        addresses.add(route.router.lower())
    return seen
