"""
Tests for ChainClient bounded reads.
"""
import asyncio

import pytest

from swap_engine.chain import ChainClient
from swap_engine.exceptions import ReadTimeoutError

from conftest import ONE, TOKEN

OWNER = "0x" + "1" * 40


@pytest.fixture
def client():
    """Client on an unreachable node; reads are replaced per test"""
    return ChainClient("http://localhost:8545", 369)


async def never_resolves(*args):
    await asyncio.Event().wait()


async def fails(*args):
    raise Exception("connection refused")


class TestBounded:

    def test_hung_read_raises_timeout(self):
        with pytest.raises(ReadTimeoutError, match="balance read timed out") as exc:
            asyncio.run(ChainClient.bounded(never_resolves(), 0.01, "balance read"))
        assert exc.value.error_code == "TIMEOUT"

    def test_fast_read_returns_value(self):
        async def quick():
            return 5

        assert asyncio.run(ChainClient.bounded(quick(), 1.0)) == 5


class TestBalanceOrNone:
    """A hung or failing node never blocks the caller."""

    def test_native_read_that_never_resolves(self, client, monkeypatch):
        monkeypatch.setattr(client, "get_balance", never_resolves)

        assert asyncio.run(client.balance_or_none(OWNER, 0.01)) is None

    def test_token_read_that_never_resolves(self, client, monkeypatch):
        monkeypatch.setattr(client, "token_balance", never_resolves)

        assert asyncio.run(client.balance_or_none(OWNER, 0.01, token=TOKEN)) is None

    def test_rpc_error_gives_none(self, client, monkeypatch):
        monkeypatch.setattr(client, "get_balance", fails)

        assert asyncio.run(client.balance_or_none(OWNER, 1.0)) is None

    def test_value_passes_through(self, client, monkeypatch):
        async def balance(address):
            return 3 * ONE

        monkeypatch.setattr(client, "get_balance", balance)

        assert asyncio.run(client.balance_or_none(OWNER, 1.0)) == 3 * ONE
