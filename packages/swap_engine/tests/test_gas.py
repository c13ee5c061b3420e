"""
Tests for GasEstimator.
"""
import asyncio
from decimal import Decimal

import pytest

from swap_engine.exceptions import GasConfigError
from swap_engine.gas import GasEstimator, scale_fee
from swap_engine.models import FeeData, GasSettings
from swap_engine.wallets import WalletStore

from conftest import GWEI


@pytest.fixture
def estimator(chain, temp_db):
    return GasEstimator(chain, WalletStore(temp_db))


class TestEnvelope:
    """Fee arithmetic."""

    def test_percent_applies_to_both_fees(self, estimator):
        env = estimator.build_envelope(10 * GWEI, 1 * GWEI, GasSettings(gas_pct=Decimal("10")))

        assert env.max_fee_per_gas == 11 * GWEI
        assert env.max_priority_fee_per_gas == 1_100_000_000
        assert env.gas_limit == 250000

    def test_boost_is_added_before_percent(self, estimator):
        settings = GasSettings(gas_pct=Decimal("50"), gwei_boost=Decimal("2"))
        env = estimator.build_envelope(10 * GWEI, 1 * GWEI, settings)

        assert env.max_fee_per_gas == 18 * GWEI
        assert env.max_priority_fee_per_gas == 4_500_000_000

    def test_extra_percent_adds_to_user_percent(self, estimator):
        env = estimator.build_envelope(10 * GWEI, 1 * GWEI, GasSettings(gas_pct=Decimal("10")), extra_percent=15)

        assert env.max_fee_per_gas == 12_500_000_000

    def test_positive_fee_never_rounds_to_zero(self):
        assert scale_fee(1, Decimal(0), Decimal("0.1")) == 1

    @pytest.mark.parametrize("gas_pct, extra", [(Decimal("-150"), 0), (Decimal("-60"), -40), (Decimal("20"), -125)])
    def test_fee_multiplier_must_stay_positive(self, estimator, gas_pct, extra):
        """A total percent at or below -100 would submit zero-fee transactions."""
        with pytest.raises(GasConfigError, match="-100"):
            estimator.build_envelope(10 * GWEI, 1 * GWEI, GasSettings(gas_pct=gas_pct), extra_percent=extra)

    def test_priority_never_exceeds_max(self, estimator):
        env = estimator.build_envelope(1 * GWEI, 5 * GWEI, GasSettings())

        assert env.max_priority_fee_per_gas == env.max_fee_per_gas == 1 * GWEI

    def test_monotonic_in_extra_percent(self, estimator):
        settings = GasSettings(gas_pct=Decimal("-30"), gwei_boost=Decimal("0.5"))
        previous = None
        for extra in range(-69, 300, 7):
            env = estimator.build_envelope(3 * GWEI + 17, GWEI // 3, settings, extra_percent=extra)
            if previous is not None:
                assert env.max_fee_per_gas >= previous.max_fee_per_gas
                assert env.max_priority_fee_per_gas >= previous.max_priority_fee_per_gas
            previous = env

    def test_user_gas_limit_is_used_verbatim(self, estimator):
        env = estimator.build_envelope(GWEI, GWEI, GasSettings(gas_limit=400000))

        assert env.gas_limit == 400000


class TestValidation:
    """Invalid settings raise GasConfigError."""

    def test_negative_boost(self, estimator):
        with pytest.raises(GasConfigError, match="gwei_boost"):
            estimator.build_envelope(GWEI, GWEI, GasSettings(gwei_boost=Decimal("-1")))

    def test_non_finite_percent(self, estimator):
        with pytest.raises(GasConfigError):
            estimator.build_envelope(GWEI, GWEI, GasSettings(gas_pct=Decimal("NaN")))

    def test_infinite_extra(self, estimator):
        with pytest.raises(GasConfigError):
            estimator.build_envelope(GWEI, GWEI, GasSettings(), extra_percent=float("inf"))

    def test_stored_percent_at_minus_100(self, temp_db):
        with pytest.raises(GasConfigError, match="default_gas_pct"):
            WalletStore(temp_db).set_gas_settings(1, GasSettings(default_gas_pct=Decimal("-100")))

    def test_gas_limit_below_intrinsic(self, estimator):
        with pytest.raises(GasConfigError, match="21000"):
            estimator.build_envelope(GWEI, GWEI, GasSettings(gas_limit=20000))


class TestComputeGas:
    """End to end with stored settings."""

    def test_reads_network_fees_and_user_settings(self, chain, temp_db):
        wallets = WalletStore(temp_db)
        wallets.set_gas_settings(7, GasSettings(gas_pct=Decimal("20"), gas_limit=300000))
        chain.fee = FeeData(max_fee=20 * GWEI, priority_fee=2 * GWEI)

        env = asyncio.run(GasEstimator(chain, wallets).compute_gas(7))

        assert env.max_fee_per_gas == 24 * GWEI
        assert env.max_priority_fee_per_gas == 2_400_000_000
        assert env.gas_limit == 300000

    def test_unknown_user_gets_defaults(self, chain, temp_db):
        env = asyncio.run(GasEstimator(chain, WalletStore(temp_db)).compute_gas(999))

        assert env.max_fee_per_gas == 10 * GWEI
        assert env.gas_limit == 250000

    def test_store_rejects_invalid_settings(self, temp_db):
        with pytest.raises(GasConfigError):
            WalletStore(temp_db).set_gas_settings(1, GasSettings(gwei_boost=Decimal("-3")))
