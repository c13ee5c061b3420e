"""
Gas Estimator - EIP-1559 fee envelope from network data and user settings

    effective = (base_gwei + gwei_boost) * (1 + (gas_pct + extra) / 100)

applied to max fee and priority fee separately, in Decimal, quantized to
wei (9 fractional gwei digits).
"""
import logging
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

from .config import DEFAULT_GAS_LIMIT, MIN_GAS_LIMIT
from .exceptions import GasConfigError
from .models import GasEnvelope, GasSettings

logger = logging.getLogger(__name__)

GWEI = Decimal(10) ** 9
WEI_QUANTUM = Decimal("0.000000001")

Number = Union[int, float, str, Decimal]


def _to_decimal(name: str, value: Number) -> Decimal:
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise GasConfigError(f"{name} is not a number: {value!r}")
    if not result.is_finite():
        raise GasConfigError(f"{name} must be finite, got {value!r}")
    return result


def scale_fee(base_wei: int, boost_gwei: Decimal, multiplier: Decimal) -> int:
    """
    Apply boost and multiplier to a fee given in wei

    A positive result never rounds down to 0 wei; a negative one clamps to 0.
    """
    effective = (Decimal(base_wei) / GWEI + boost_gwei) * multiplier
    if effective <= 0:
        return 0
    wei = int((effective.quantize(WEI_QUANTUM, rounding=ROUND_HALF_UP) * GWEI).to_integral_value())
    return max(wei, 1)


def validate_gas_settings(settings: GasSettings) -> None:
    """Raise GasConfigError for settings compute_gas would refuse"""
    boost = _to_decimal("gwei_boost", settings.gwei_boost)
    if boost < 0:
        raise GasConfigError(f"gwei_boost must not be negative, got {boost}")
    for name in ("gas_pct", "default_gas_pct"):
        pct = _to_decimal(name, getattr(settings, name))
        if pct <= -100:
            raise GasConfigError(f"{name} must be above -100, got {pct}")
    if settings.gas_limit is not None and int(settings.gas_limit) < MIN_GAS_LIMIT:
        raise GasConfigError(f"gas_limit must be >= {MIN_GAS_LIMIT}, got {settings.gas_limit}")


class GasEstimator:
    """
    Per-user gas envelope

    Usage:
        estimator = GasEstimator(chain, wallet_store)
        envelope = await estimator.compute_gas(user_id, extra_percent=10)
        tx.update(envelope.to_tx_params())
    """

    def __init__(self, chain, settings_provider, default_gas_limit: int = DEFAULT_GAS_LIMIT):
        """
        Args:
            chain: Exposes ``get_fee_data()``
            settings_provider: Exposes ``get_gas_settings(user_id) -> GasSettings``
            default_gas_limit: Used when the user has no gas limit set
        """
        self.chain = chain
        self.settings_provider = settings_provider
        self.default_gas_limit = default_gas_limit

    def build_envelope(
        self,
        max_fee_wei: int,
        priority_fee_wei: int,
        settings: GasSettings,
        extra_percent: Number = 0,
    ) -> GasEnvelope:
        """Pure computation, no I/O"""
        validate_gas_settings(settings)
        boost = _to_decimal("gwei_boost", settings.gwei_boost)
        pct = _to_decimal("gas_pct", settings.gas_pct) + _to_decimal("extra_percent", extra_percent)
        multiplier = 1 + pct / 100
        if multiplier <= 0:
            raise GasConfigError(f"gas_pct + extra_percent must be above -100, got {pct}")

        max_fee = scale_fee(max_fee_wei, boost, multiplier)
        priority = scale_fee(priority_fee_wei, boost, multiplier)

        # Nodes reject priority > max
        priority = min(priority, max_fee)

        gas_limit = int(settings.gas_limit) if settings.gas_limit is not None else self.default_gas_limit
        if gas_limit < MIN_GAS_LIMIT:
            raise GasConfigError(f"gas_limit must be >= {MIN_GAS_LIMIT}, got {gas_limit}")

        return GasEnvelope(
            max_priority_fee_per_gas=priority,
            max_fee_per_gas=max_fee,
            gas_limit=gas_limit,
        )

    async def compute_gas(self, user_id: int, extra_percent: Number = 0) -> GasEnvelope:
        """
        Gas envelope for ``user_id`` at current network fees

        Args:
            user_id: Owner of the gas settings
            extra_percent: Added on top of the user's gas_pct (retries, urgent orders)

        Raises:
            GasConfigError: Invalid boost, percentage or gas limit
        """
        fee = await self.chain.get_fee_data()
        settings = self.settings_provider.get_gas_settings(user_id)
        envelope = self.build_envelope(fee.max_fee, fee.priority_fee, settings, extra_percent)
        logger.debug(
            f"Gas for user {user_id}: maxFee={envelope.max_fee_per_gas} "
            f"priority={envelope.max_priority_fee_per_gas} limit={envelope.gas_limit}"
        )
        return envelope
