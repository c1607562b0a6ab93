"""Read-only EVM contract calls over JSON-RPC.

Only the two views needed for balance gating are supported:
ERC-20 ``decimals()`` and ERC-20/ERC-721 ``balanceOf(address)``.
"""

import itertools
import logging
from typing import Optional

import httpx
from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError

logger = logging.getLogger(__name__)

# 4-byte function selectors (first 4 bytes of keccak256 of the signature)
BALANCE_OF_SELECTOR = "0x70a08231"  # balanceOf(address)
DECIMALS_SELECTOR = "0x313ce567"  # decimals()

WORD_SIZE = 32


class ChainRPCError(Exception):
    """Raised when a contract read fails or returns something unusable"""
    pass


def encode_balance_of(holder: str) -> str:
    """ABI-encode a ``balanceOf(holder)`` call as hex calldata"""
    return BALANCE_OF_SELECTOR + abi_encode(["address"], [holder.lower()]).hex()


def decode_uint256(result) -> int:
    """Decode return data that must be exactly one uint256 word"""
    if not isinstance(result, str) or not result.startswith("0x"):
        raise ChainRPCError(f"Malformed contract response: {result!r}")
    try:
        data = bytes.fromhex(result[2:])
    except ValueError as e:
        raise ChainRPCError(f"Malformed contract response: {result!r}") from e

    # "0x" is what a node returns when the target has no code
    if len(data) != WORD_SIZE:
        raise ChainRPCError(f"Expected {WORD_SIZE} bytes of return data, got {len(data)}")

    try:
        (value,) = abi_decode(["uint256"], data)
    except DecodingError as e:
        raise ChainRPCError(f"Malformed contract response: {result!r}") from e
    return value


class ChainClient:
    """
    Minimal JSON-RPC client for one chain.

    Args:
        rpc_url: HTTP JSON-RPC endpoint
        chain_id: EVM chain id served by the endpoint
        timeout: per-call timeout in seconds
        transport: optional httpx transport (used by tests)
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.timeout = timeout
        self.transport = transport
        self._ids = itertools.count(1)

    async def eth_call(self, to: str, data: str) -> str:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "eth_call",
            "params": [{"to": to, "data": data}, "latest"],
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as e:
            raise ChainRPCError(f"RPC timeout calling {to} on chain {self.chain_id}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ChainRPCError(f"RPC request to chain {self.chain_id} failed: {e}") from e

        if not isinstance(body, dict):
            raise ChainRPCError(f"Malformed RPC response: {body!r}")
        if body.get("error"):
            raise ChainRPCError(f"RPC error from chain {self.chain_id}: {body['error']}")

        return body.get("result")

    async def decimals(self, contract: str) -> int:
        return decode_uint256(await self.eth_call(contract, DECIMALS_SELECTOR))

    async def balance_of(self, contract: str, holder: str) -> int:
        return decode_uint256(await self.eth_call(contract, encode_balance_of(holder)))
