"""
Tests for TradeLog and CostBasisLedger.
"""
from decimal import Decimal

import pytest

from swap_engine.ledger import CostBasisLedger, TradeLog, position_pnl
from swap_engine.models import Side, TradeOutcomeKind

from conftest import ONE, TOKEN

WALLET = "0x" + "1" * 40


@pytest.fixture
def trade_log(temp_db):
    return TradeLog(temp_db)


@pytest.fixture
def ledger(trade_log):
    return CostBasisLedger(trade_log)


def buy(log, native, tokens, user_id=1, token=TOKEN):
    return log.record(user_id, WALLET, token, Side.BUY, native, tokens, "PULSEX_V2")


def sell(log, native, tokens, user_id=1, token=TOKEN):
    return log.record(user_id, WALLET, token, Side.SELL, native, tokens, "PULSEX_V2")


class TestTradeLog:
    """Append-only trade history."""

    def test_record_lowercases_token(self, trade_log):
        mixed = "0x" + "aB" * 20
        trade = buy(trade_log, ONE, ONE, token=mixed)

        assert trade.id is not None
        assert trade.token_address == mixed.lower()
        assert trade.is_pending
        assert len(trade_log.trades_for(1, mixed.upper().replace("0X", "0x"))) == 1

    def test_trades_in_id_order(self, trade_log):
        first = buy(trade_log, ONE, 10 * ONE)
        second = sell(trade_log, ONE, 5 * ONE)

        assert [t.id for t in trade_log.trades_for(1, TOKEN)] == [first.id, second.id]

    def test_outcome_written_once(self, trade_log):
        trade = buy(trade_log, ONE, ONE)

        assert trade_log.record_outcome(trade.id, TradeOutcomeKind.CONFIRMED) is True
        assert trade_log.record_outcome(trade.id, TradeOutcomeKind.REVERTED) is False
        assert trade_log.trades_for(1, TOKEN)[0].outcome == TradeOutcomeKind.CONFIRMED

    def test_negative_amounts_rejected(self, trade_log):
        with pytest.raises(ValueError):
            buy(trade_log, -1, ONE)


class TestAverageEntry:
    """Weighted-average cost basis."""

    def test_no_trades(self, ledger):
        assert ledger.average_entry(1, TOKEN) is None

    def test_weighted_average_of_buys(self, ledger, trade_log):
        buy(trade_log, 2 * ONE, 1000 * ONE)
        buy(trade_log, 4 * ONE, 1000 * ONE)

        snap = ledger.average_entry(1, TOKEN)

        assert snap.avg_native_per_token == Decimal("0.003")
        assert snap.net_tokens == 2000 * ONE
        assert snap.total_native_in == 6 * ONE
        assert snap.to_dict()["avg_native_per_token"] == "0.003"

    def test_sell_reduces_proportionally(self, ledger, trade_log):
        buy(trade_log, 2 * ONE, 1000 * ONE)
        buy(trade_log, 4 * ONE, 1000 * ONE)
        sell(trade_log, 9 * ONE, 1000 * ONE)

        snap = ledger.average_entry(1, TOKEN)

        assert snap.total_native_in == 3 * ONE
        assert snap.net_tokens == 1000 * ONE
        assert snap.avg_native_per_token == Decimal("0.003")

    def test_oversell_closes_position(self, ledger, trade_log):
        buy(trade_log, 2 * ONE, 1000 * ONE)
        sell(trade_log, ONE, 5000 * ONE)

        assert ledger.average_entry(1, TOKEN) is None

    def test_sell_before_any_buy_is_ignored(self, ledger, trade_log):
        sell(trade_log, ONE, 100 * ONE)
        buy(trade_log, ONE, 500 * ONE)

        assert ledger.average_entry(1, TOKEN).net_tokens == 500 * ONE

    def test_token_decimals(self, ledger, trade_log):
        buy(trade_log, ONE, 500 * 10**9)

        assert ledger.average_entry(1, TOKEN, decimals=9).avg_native_per_token == Decimal("0.002")

    def test_idempotent(self, ledger, trade_log):
        buy(trade_log, 3 * ONE, 7 * ONE)
        sell(trade_log, ONE, 2 * ONE)

        assert ledger.average_entry(1, TOKEN) == ledger.average_entry(1, TOKEN)

    def test_reverted_trade_excluded(self, ledger, trade_log):
        buy(trade_log, 2 * ONE, 1000 * ONE)
        failed = buy(trade_log, 50 * ONE, 1000 * ONE)
        trade_log.record_outcome(failed.id, TradeOutcomeKind.REVERTED)

        snap = ledger.average_entry(1, TOKEN)

        assert snap.avg_native_per_token == Decimal("0.002")
        assert snap.net_tokens == 1000 * ONE

    def test_positions_are_per_user(self, ledger, trade_log):
        buy(trade_log, ONE, ONE, user_id=1)

        assert ledger.average_entry(2, TOKEN) is None


class TestPositionPnL:
    """Unrealized PnL."""

    def test_gain(self, ledger, trade_log):
        buy(trade_log, 2 * ONE, 1000 * ONE)
        snap = ledger.average_entry(1, TOKEN)

        pnl = position_pnl(snap, 4 * ONE, 1000 * ONE)

        assert pnl.value_native == Decimal(4)
        assert pnl.cost_native == Decimal(2)
        assert pnl.pnl_native == Decimal(2)
        assert pnl.pnl_percent == Decimal(100)

    def test_empty_balance(self, ledger, trade_log):
        buy(trade_log, 2 * ONE, 1000 * ONE)

        assert position_pnl(ledger.average_entry(1, TOKEN), 0, 0) is None
