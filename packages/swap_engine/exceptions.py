"""
Swap Engine - Exceptions

Every failure kind the trading engine can surface to a caller has its own
class so callers can tell "price unavailable" apart from "node rejected the
transaction" without parsing messages.
"""
from typing import Optional


class SwapEngineError(Exception):
    """Base error for the swap engine"""

    error_code = "ENGINE_ERROR"

    def __init__(self, message: str = "", error_code: Optional[str] = None):
        super().__init__(message)
        if error_code:
            self.error_code = error_code


class ConfigError(SwapEngineError):
    """Invalid or missing configuration"""
    error_code = "CONFIG"


class GasConfigError(SwapEngineError):
    """Negative, non-finite or out-of-range gas setting"""
    error_code = "GAS_CONFIG"


class NoLiquidityError(SwapEngineError):
    """No candidate route produced a quote"""
    error_code = "NO_LIQUIDITY"


class InsufficientBalanceError(SwapEngineError):
    """Wallet balance is below the amount to swap"""
    error_code = "INSUFFICIENT_BALANCE"


class ApprovalRequiredError(SwapEngineError):
    """Allowance for the router is below the amount to sell"""
    error_code = "APPROVAL_REQUIRED"


class SubmissionFailedError(SwapEngineError):
    """The node rejected the transaction before it entered the chain"""
    error_code = "SUBMISSION_FAILED"


class RevertedError(SwapEngineError):
    """Transaction was mined but failed on-chain"""
    error_code = "REVERTED"

    def __init__(self, tx_hash: str, message: str = "execution reverted"):
        super().__init__(f"{message} ({tx_hash})")
        self.tx_hash = tx_hash


class PriceDataUnavailableError(SwapEngineError):
    """USD price or market cap could not be resolved"""
    error_code = "PRICE_DATA_UNAVAILABLE"


class ReadTimeoutError(SwapEngineError):
    """A bounded read call exceeded its time limit"""
    error_code = "TIMEOUT"


class KeyStoreError(SwapEngineError):
    """Private key could not be decrypted"""
    error_code = "KEYSTORE"


class WalletNotFoundError(SwapEngineError):
    """Wallet does not exist for this user"""
    error_code = "WALLET_NOT_FOUND"


def concise_error(err: BaseException) -> str:
    """
    Compact an RPC/node error into a short human-readable reason.

    Node errors arrive as nested dicts, long multi-line strings or plain
    exceptions depending on the provider; this keeps notifications short.
    """
    code = str(getattr(err, "code", "") or "").upper()

    raw = ""
    if err.args and isinstance(err.args[0], dict):
        raw = str(err.args[0].get("message", ""))
    if not raw:
        raw = str(err)

    msg = raw.lower()

    if code == "INSUFFICIENT_FUNDS" or "insufficient funds" in msg:
        return "insufficient funds"
    if "nonce too low" in msg or "already been used" in msg or code == "NONCE_EXPIRED":
        return "nonce too low / already used"
    if ("replacement" in msg and ("underpriced" in msg or "fee too low" in msg)) or code == "REPLACEMENT_UNDERPRICED":
        return "replacement underpriced (raise gas)"
    if "cannot estimate gas" in msg or "gas required exceeds allowance" in msg:
        return "cannot estimate gas"
    if "intrinsic gas too low" in msg:
        return "gas limit too low"
    if "insufficient allowance" in msg:
        return "insufficient allowance (approve first)"
    if "execution reverted" in msg:
        return "execution reverted"
    if "user rejected" in msg or code == "ACTION_REJECTED":
        return "user rejected"

    first_line = raw.split("\n")[0].strip()
    return first_line[:140] if first_line else "failed"
