"""
Shared fixtures: temporary database, in-memory chain and market feed.
"""
import asyncio
import os
import tempfile
from decimal import Decimal
from typing import Callable, Dict, List, Optional

import pytest
from eth_account import Account

from swap_engine.config import DEFAULT_WPLS, EngineConfig
from swap_engine.database import Database
from swap_engine.engine import build_engine
from swap_engine.keystore import MasterKeyStore
from swap_engine.models import FeeData, PairMetrics, Route, RouteKind, TokenMeta
from swap_engine.notify import LogNotifier


WPLS = DEFAULT_WPLS
TOKEN = "0x" + "7" * 40
STABLE = "0x" + "5" * 40
ROUTER_A = "0x" + "a1" * 20
ROUTER_B = "0x" + "b2" * 20
QUOTER_V3 = "0x" + "c3" * 20
ROUTER_V3 = "0x" + "d4" * 20
MASTER_KEY = "m" * 40
GWEI = 10**9
ONE = 10**18


def v2_route(key: str, router: str) -> Route:
    return Route(key=key, kind=RouteKind.V2, router=router, base_token=WPLS)


def stable_route(key: str, router: str) -> Route:
    return Route(key=key, kind=RouteKind.V2, router=router, base_token=STABLE, wrapped_native=WPLS)


def v3_route(key: str, router: str, quoter: str, fee: int) -> Route:
    return Route(key=key, kind=RouteKind.V3, router=router, base_token=WPLS, quoter=quoter, fee=fee)


class PriceBook:
    """Pool pricing for a fake router: native per whole token"""

    def __init__(self, native_per_token: Decimal, decimals: int = 18, buy_bonus: Decimal = Decimal(1)):
        self.native_per_token = Decimal(native_per_token)
        self.decimals = decimals
        self.buy_bonus = buy_bonus

    def __call__(self, amount_in: int, path: List[str]) -> int:
        unit = Decimal(10) ** self.decimals
        if path[0].lower() == WPLS.lower():
            tokens = Decimal(amount_in) / Decimal(ONE) / self.native_per_token * self.buy_bonus
            return int(tokens * unit)
        native = Decimal(amount_in) / unit * self.native_per_token
        return int(native * Decimal(ONE))


class FakeChain:
    """In-memory stand-in for ChainClient"""

    def __init__(self):
        self.native_balances: Dict[str, int] = {}
        self.token_balances: Dict[tuple, int] = {}
        self.allowances: Dict[tuple, int] = {}
        self.v2_quotes: Dict[str, Callable] = {}
        self.v3_quotes: Dict[tuple, Callable] = {}
        self.metas: Dict[str, TokenMeta] = {}
        self.supplies: Dict[str, int] = {}
        self.fee = FeeData(max_fee=10 * GWEI, priority_fee=1 * GWEI)
        self.sent: List[dict] = []
        self.receipt_status = 1
        self.reject: Optional[Exception] = None
        self.confirm_gate: Optional[asyncio.Event] = None
        self.latest_nonce = 0
        self.pending_nonce = 0

    # Reads -------------------------------------------------------------------

    @staticmethod
    def address_of(private_key: str) -> str:
        return Account.from_key(private_key).address

    async def get_balance(self, address: str) -> int:
        await asyncio.sleep(0)
        return self.native_balances.get(address.lower(), 0)

    async def token_balance(self, token: str, owner: str) -> int:
        await asyncio.sleep(0)
        return self.token_balances.get((token.lower(), owner.lower()), 0)

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        await asyncio.sleep(0)
        return self.allowances.get((token.lower(), owner.lower(), spender.lower()), 0)

    async def get_fee_data(self) -> FeeData:
        await asyncio.sleep(0)
        return self.fee

    async def amounts_out(self, router: str, amount_in: int, path) -> List[int]:
        await asyncio.sleep(0)
        fn = self.v2_quotes.get(router.lower())
        if fn is None:
            raise Exception("execution reverted: no pair")
        return [amount_in, fn(amount_in, list(path))]

    async def quote_exact_input_single(self, quoter, token_in, token_out, fee, amount_in) -> int:
        await asyncio.sleep(0)
        fn = self.v3_quotes.get((quoter.lower(), fee))
        if fn is None:
            raise Exception("execution reverted")
        return fn(amount_in, [token_in, token_out])

    async def token_meta(self, token: str) -> TokenMeta:
        await asyncio.sleep(0)
        return self.metas.get(token.lower(), TokenMeta(address=token))

    async def total_supply(self, token: str) -> Optional[int]:
        await asyncio.sleep(0)
        return self.supplies.get(token.lower())

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return self.pending_nonce if block == "pending" else self.latest_nonce

    # Writes ------------------------------------------------------------------

    def _hash(self) -> str:
        return "0x" + f"{len(self.sent) + 1:064x}"

    async def send_contract_transaction(self, private_key, contract_address, abi, fn_name, args, gas, value=0) -> str:
        await asyncio.sleep(0)
        if self.reject is not None:
            raise self.reject
        tx_hash = self._hash()
        self.sent.append({
            "hash": tx_hash,
            "from": self.address_of(private_key),
            "to": contract_address,
            "fn": fn_name,
            "args": list(args),
            "value": value,
            "gas": gas,
        })
        return tx_hash

    async def send_transaction(self, private_key, tx, gas, nonce=None) -> str:
        await asyncio.sleep(0)
        tx_hash = self._hash()
        self.sent.append({
            "hash": tx_hash,
            "from": self.address_of(private_key),
            "to": tx["to"],
            "fn": None,
            "value": tx.get("value", 0),
            "nonce": nonce,
            "gas": gas,
        })
        return tx_hash

    async def wait_for_confirmation(self, tx_hash: str, timeout: float = 600) -> dict:
        if self.confirm_gate is not None:
            await self.confirm_gate.wait()
        await asyncio.sleep(0)
        return {"transactionHash": tx_hash, "status": self.receipt_status}

    def swaps(self) -> List[dict]:
        return [tx for tx in self.sent if tx["fn"] and tx["fn"] != "approve"]

    def approvals(self) -> List[dict]:
        return [tx for tx in self.sent if tx["fn"] == "approve"]


class FakeFeed:
    """Market feed returning canned metrics per token"""

    def __init__(self):
        self.metrics: Dict[str, PairMetrics] = {}
        self.calls: List[str] = []

    async def best_pair_metrics(self, token: str) -> PairMetrics:
        self.calls.append(token)
        return self.metrics.get(token.lower(), PairMetrics())

    async def close(self):
        pass


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db = Database(os.path.join(tmpdir, "test_swap_engine.db"))
        db.init_db()
        yield db
        db.dispose()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def notifier():
    return LogNotifier()


@pytest.fixture
def account():
    return Account.create()


@pytest.fixture
def private_key(account):
    return "0x" + bytes(account.key).hex()


@pytest.fixture
def config(temp_db):
    return EngineConfig(
        rpc_url="http://localhost:8545",
        wrapped_native=WPLS,
        routes=[v2_route("A", ROUTER_A), v2_route("B", ROUTER_B)],
        database_path=temp_db.db_path,
        master_key=MASTER_KEY,
    )


@pytest.fixture
def engine(config, chain, feed, notifier, temp_db):
    return build_engine(config, notifier, chain=chain, feed=feed, db=temp_db)


@pytest.fixture
def wallet(engine, account, private_key, chain):
    """Wallet #1 of user 42, funded with 100 native"""
    blob = MasterKeyStore(MASTER_KEY).encrypt(private_key)
    record = engine.wallets.add_wallet(42, "main", account.address, blob)
    chain.native_balances[account.address.lower()] = 100 * ONE
    return record
