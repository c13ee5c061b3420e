"""
Chain Client - Async JSON-RPC wrapper for one EVM endpoint

Reads (balances, fee data, router quotes, token metadata) and signed
transaction submission. Everything the engine writes on-chain goes
through ``send_contract_transaction`` / ``send_transaction``.
"""
import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Sequence

from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.providers import AsyncHTTPProvider

from .exceptions import ReadTimeoutError
from .models import FeeData, GasEnvelope, TokenMeta

logger = logging.getLogger(__name__)


# UniswapV2-style router (fee-on-transfer safe variants)
V2_ROUTER_ABI = [
    {
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "path", "type": "address[]"},
        ],
        "name": "getAmountsOut",
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "name": "swapExactETHForTokensSupportingFeeOnTransferTokens",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "name": "swapExactTokensForETHSupportingFeeOnTransferTokens",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

# UniswapV3-style quoter (V1 signature, non-view but called statically)
V3_QUOTER_ABI = [
    {
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "tokenOut", "type": "address"},
            {"name": "fee", "type": "uint24"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "sqrtPriceLimitX96", "type": "uint160"},
        ],
        "name": "quoteExactInputSingle",
        "outputs": [{"name": "amountOut", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

V3_ROUTER_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "recipient", "type": "address"},
                    {"name": "deadline", "type": "uint256"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "amountOutMinimum", "type": "uint256"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
                "name": "params",
                "type": "tuple",
            }
        ],
        "name": "exactInputSingle",
        "outputs": [{"name": "amountOut", "type": "uint256"}],
        "stateMutability": "payable",
        "type": "function",
    },
]

ERC20_ABI = [
    {"constant": True, "inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "string"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "name", "outputs": [{"name": "", "type": "string"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "totalSupply", "outputs": [{"name": "", "type": "uint256"}], "type": "function"},
    {"constant": True, "inputs": [{"name": "owner", "type": "address"}], "name": "balanceOf", "outputs": [{"name": "", "type": "uint256"}], "type": "function"},
    {"constant": True, "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}], "name": "allowance", "outputs": [{"name": "", "type": "uint256"}], "type": "function"},
    {"constant": False, "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}], "name": "approve", "outputs": [{"name": "", "type": "bool"}], "type": "function"},
]

# Some old tokens return bytes32 for symbol/name
ERC20_BYTES32_ABI = [
    {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "bytes32"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "name", "outputs": [{"name": "", "type": "bytes32"}], "type": "function"},
]

# eth_maxPriorityFeePerGas fallback (1 gwei)
DEFAULT_PRIORITY_FEE = 10**9


def _decode_bytes32(raw: bytes) -> Optional[str]:
    try:
        text = bytes(raw).rstrip(b"\x00").decode("utf-8")
    except (UnicodeDecodeError, TypeError):
        return None
    return text or None


class ChainClient:
    """
    Async client bound to one JSON-RPC endpoint

    Usage:
        chain = ChainClient("https://rpc.pulsechain.com", 369)
        balance = await chain.get_balance("0x...")
    """

    def __init__(self, rpc_url: str, chain_id: int, request_timeout: float = 30.0):
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def address_of(private_key: str) -> str:
        """Checksummed address for a private key"""
        return Account.from_key(private_key).address

    def _contract(self, address: str, abi: List[Dict[str, Any]]):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_balance(self, address: str) -> int:
        """Native balance in wei"""
        return await self.w3.eth.get_balance(Web3.to_checksum_address(address))

    @staticmethod
    async def bounded(awaitable: Awaitable, timeout_s: float, what: str = "read"):
        """Await ``awaitable`` for at most ``timeout_s`` seconds"""
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout_s)
        except asyncio.TimeoutError:
            raise ReadTimeoutError(f"{what} timed out after {timeout_s:g}s")

    async def balance_or_none(self, address: str, timeout_s: float, token: Optional[str] = None) -> Optional[int]:
        """Native (or ``token``) balance bounded by ``timeout_s``; None on timeout or RPC error"""
        read = self.token_balance(token, address) if token else self.get_balance(address)
        try:
            return await self.bounded(read, timeout_s, "balance read")
        except ReadTimeoutError as e:
            logger.warning(f"{e} for {address[:10]}...")
            return None
        except Exception as e:
            logger.warning(f"Balance read failed for {address[:10]}...: {e}")
            return None

    async def token_balance(self, token: str, owner: str) -> int:
        contract = self._contract(token, ERC20_ABI)
        return await contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        contract = self._contract(token, ERC20_ABI)
        return await contract.functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender),
        ).call()

    async def get_fee_data(self) -> FeeData:
        """
        Current EIP-1559 fee data

        max fee = 2 * base fee + priority fee, or the legacy gas price when
        the latest block has no base fee.
        """
        try:
            priority = await self.w3.eth.max_priority_fee
        except Exception:
            priority = DEFAULT_PRIORITY_FEE

        block = await self.w3.eth.get_block("latest")
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            gas_price = await self.w3.eth.gas_price
            return FeeData(max_fee=gas_price, priority_fee=priority)

        return FeeData(max_fee=base_fee * 2 + priority, priority_fee=priority)

    async def amounts_out(self, router: str, amount_in: int, path: Sequence[str]) -> List[int]:
        """V2 ``getAmountsOut`` (raises on revert)"""
        contract = self._contract(router, V2_ROUTER_ABI)
        checksummed = [Web3.to_checksum_address(p) for p in path]
        return await contract.functions.getAmountsOut(amount_in, checksummed).call()

    async def quote_exact_input_single(
        self, quoter: str, token_in: str, token_out: str, fee: int, amount_in: int
    ) -> int:
        """V3 quoter static call (raises on revert)"""
        contract = self._contract(quoter, V3_QUOTER_ABI)
        return await contract.functions.quoteExactInputSingle(
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
            fee,
            amount_in,
            0,
        ).call()

    async def token_meta(self, token: str) -> TokenMeta:
        """Decimals, symbol and name with bytes32 and default fallbacks"""
        contract = self._contract(token, ERC20_ABI)
        legacy = self._contract(token, ERC20_BYTES32_ABI)

        try:
            decimals = await contract.functions.decimals().call()
        except Exception:
            decimals = 18

        async def _text(fn: str, default: str) -> str:
            try:
                return await getattr(contract.functions, fn)().call()
            except Exception:
                pass
            try:
                raw = await getattr(legacy.functions, fn)().call()
                return _decode_bytes32(raw) or default
            except Exception:
                return default

        symbol = await _text("symbol", "TOKEN")
        name = await _text("name", "Token")
        return TokenMeta(address=token, decimals=int(decimals), symbol=symbol, name=name)

    async def total_supply(self, token: str) -> Optional[int]:
        """ERC20 totalSupply, falling back to a raw eth_call"""
        try:
            return await self._contract(token, ERC20_ABI).functions.totalSupply().call()
        except Exception:
            pass
        try:
            raw = await self.w3.eth.call({"to": Web3.to_checksum_address(token), "data": "0x18160ddd"})
            return int.from_bytes(raw, "big") if raw else None
        except Exception as e:
            logger.debug(f"totalSupply unavailable for {token}: {e}")
            return None

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return await self.w3.eth.get_transaction_count(Web3.to_checksum_address(address), block)

    # =========================================================================
    # Writes
    # =========================================================================

    async def send_transaction(
        self,
        private_key: str,
        tx: Dict[str, Any],
        gas: GasEnvelope,
        nonce: Optional[int] = None,
    ) -> str:
        """Sign and broadcast ``tx``; returns the hash as soon as the node accepts it"""
        account = Account.from_key(private_key)
        if nonce is None:
            nonce = await self.get_transaction_count(account.address, "pending")

        full_tx = dict(tx)
        full_tx.update(gas.to_tx_params())
        full_tx.setdefault("value", 0)
        full_tx["nonce"] = nonce
        full_tx["chainId"] = self.chain_id
        full_tx["from"] = account.address
        full_tx["type"] = 2

        signed = account.sign_transaction(full_tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def send_contract_transaction(
        self,
        private_key: str,
        contract_address: str,
        abi: List[Dict[str, Any]],
        fn_name: str,
        args: Sequence[Any],
        gas: GasEnvelope,
        value: int = 0,
    ) -> str:
        """Encode a contract call and broadcast it"""
        contract = self._contract(contract_address, abi)
        data = contract.encode_abi(fn_name, args=list(args))
        tx = {
            "to": Web3.to_checksum_address(contract_address),
            "data": data,
            "value": value,
        }
        return await self.send_transaction(private_key, tx, gas)

    async def wait_for_confirmation(self, tx_hash: str, timeout: float = 600) -> Dict[str, Any]:
        """Block (asynchronously) until the transaction is mined"""
        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        return dict(receipt)

    async def ping(self, address: Optional[str] = None) -> Dict[str, Any]:
        """Chain id, block number, fee data and optional balance"""
        try:
            chain_id = await self.w3.eth.chain_id
            block_number = await self.w3.eth.block_number
            fee = await self.get_fee_data()
            result = {
                "chain_id": chain_id,
                "block_number": block_number,
                "max_fee_per_gas": str(fee.max_fee),
                "max_priority_fee_per_gas": str(fee.priority_fee),
            }
            if address:
                result["balance_wei"] = str(await self.get_balance(address))
            return result
        except Exception as e:
            return {"error": str(e)}
