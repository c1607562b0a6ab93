import logging
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import ValidationError

from ..schemas.link import NftPolicy, TokenPolicy, parse_access_policy
from ..services.chain import ChainClient, ChainRPCError
from .errors import VerificationError

logger = logging.getLogger(__name__)

MAX_TOKEN_DECIMALS = 255  # decimals() is a uint8


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None


ALLOWED = AccessDecision(allowed=True)
MISCONFIGURED = AccessDecision(allowed=False, reason="Access policy is misconfigured")


def required_base_units(min_balance: str, decimals: int) -> int:
    """
    Convert a whole-token amount to the token's base units, exactly.

    Any fraction finer than the token's precision rounds the requirement up.
    Integer arithmetic only, so there is no precision limit.
    """
    whole, _, fraction = min_balance.partition(".")
    units = int(whole) * 10**decimals
    if fraction:
        kept, dropped = fraction[:decimals], fraction[decimals:]
        if kept:
            units += int(kept.ljust(decimals, "0"))
        if dropped.strip("0"):
            units += 1
    return units


class AccessVerifier:
    """
    Decide whether a holder satisfies a link's access policy.

    A definitive refusal is returned as ``AccessDecision(allowed=False)``.
    Failing to read chain state raises ``VerificationError`` instead, since
    the caller may retry it.

    Args:
        clients: chain id -> JSON-RPC client
    """

    def __init__(self, clients: Dict[int, ChainClient]):
        self.clients = clients

    @classmethod
    def from_settings(cls, settings) -> "AccessVerifier":
        return cls({
            chain_id: ChainClient(url, chain_id, timeout=settings.CHAIN_RPC_TIMEOUT)
            for chain_id, url in settings.CHAIN_RPC_URLS.items()
        })

    def supports_chain(self, chain_id: int) -> bool:
        return chain_id in self.clients

    async def verify(self, raw_policy: Optional[dict], holder: str) -> AccessDecision:
        """
        Check ``holder`` against a stored policy blob.

        Args:
            raw_policy: the link's ``access_policy`` column
            holder: account address whose balance is checked

        Returns:
            AccessDecision

        Raises:
            VerificationError: chain state could not be read
        """
        try:
            policy = parse_access_policy(raw_policy)
        except ValidationError:
            logger.error("Stored access policy is malformed: %r", raw_policy)
            return MISCONFIGURED

        # Gate check upstream should make this unreachable
        if policy is None:
            return ALLOWED

        client = self.clients.get(policy.chain_id)
        if client is None:
            raise VerificationError(detail=f"No RPC endpoint configured for chain {policy.chain_id}")

        try:
            if isinstance(policy, TokenPolicy):
                return await self._verify_token(client, policy, holder)
            if isinstance(policy, NftPolicy):
                return await self._verify_nft(client, policy, holder)
        except ChainRPCError as e:
            raise VerificationError(detail=str(e)) from e
        except (ArithmeticError, ValueError):
            logger.error("Access policy amount is unusable: %r", raw_policy, exc_info=True)
            return MISCONFIGURED

        return AccessDecision(allowed=False, reason="Unsupported access policy")

    async def _verify_token(self, client: ChainClient, policy: TokenPolicy, holder: str) -> AccessDecision:
        decimals = await client.decimals(policy.contract_address)
        if decimals > MAX_TOKEN_DECIMALS:
            raise ChainRPCError(f"Implausible decimals() value {decimals} from {policy.contract_address}")

        balance = await client.balance_of(policy.contract_address, holder)

        required = required_base_units(policy.min_balance, decimals)
        if balance < required:
            return AccessDecision(allowed=False, reason="Insufficient token balance")
        return ALLOWED

    async def _verify_nft(self, client: ChainClient, policy: NftPolicy, holder: str) -> AccessDecision:
        balance = await client.balance_of(policy.contract_address, holder)
        if balance < int(policy.min_balance):
            return AccessDecision(allowed=False, reason="Insufficient NFT balance")
        return ALLOWED
