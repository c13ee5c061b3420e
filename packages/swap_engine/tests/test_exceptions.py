"""
Tests for concise_error.
"""
import pytest

from swap_engine.exceptions import RevertedError, SubmissionFailedError, concise_error


class CodedError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


@pytest.mark.parametrize("message, expected", [
    ("insufficient funds for gas * price + value", "insufficient funds"),
    ("nonce too low: next nonce 5, tx nonce 4", "nonce too low / already used"),
    ("replacement transaction underpriced", "replacement underpriced (raise gas)"),
    ("gas required exceeds allowance (250000)", "cannot estimate gas"),
    ("intrinsic gas too low", "gas limit too low"),
    ("ERC20: insufficient allowance", "insufficient allowance (approve first)"),
    ("execution reverted: TransferHelper: TRANSFER_FROM_FAILED", "execution reverted"),
])
def test_known_messages(message, expected):
    assert concise_error(Exception(message)) == expected


def test_rpc_error_dict():
    """web3 raises ValueError({'code': ..., 'message': ...})."""
    err = ValueError({"code": -32000, "message": "already known: nonce has already been used"})

    assert concise_error(err) == "nonce too low / already used"


def test_error_code_attribute():
    assert concise_error(CodedError("boom", "INSUFFICIENT_FUNDS")) == "insufficient funds"


def test_unknown_error_keeps_first_line():
    err = Exception("something odd happened\nstack trace line\nmore")

    assert concise_error(err) == "something odd happened"


def test_long_message_is_truncated():
    assert len(concise_error(Exception("y" * 500))) == 140


def test_empty_message():
    assert concise_error(Exception("")) == "failed"


def test_error_codes():
    assert SubmissionFailedError("x").error_code == "SUBMISSION_FAILED"
    assert RevertedError("0xabc").tx_hash == "0xabc"
