import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from ..utils.validators import is_valid_address


DEFAULT_CHAIN_ID = 8453  # Base mainnet

# uint256 has 78 decimal digits; no exponent notation
MAX_AMOUNT_DIGITS = 78
TOKEN_AMOUNT_RE = re.compile(r"[0-9]{1,%d}(\.[0-9]{1,%d})?" % (MAX_AMOUNT_DIGITS, MAX_AMOUNT_DIGITS))
NFT_AMOUNT_RE = re.compile(r"[0-9]{1,%d}" % MAX_AMOUNT_DIGITS)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _PolicyBase(_CamelModel):
    contract_address: str = Field(..., alias="contractAddress")
    min_balance: str = Field("0", alias="minBalance")
    chain_id: int = Field(DEFAULT_CHAIN_ID, alias="chainId", gt=0)

    @field_validator("contract_address")
    @classmethod
    def check_address(cls, value: str) -> str:
        if not is_valid_address(value):
            raise ValueError("contractAddress must be a 0x-prefixed 40 hex character address")
        return value

    @field_validator("min_balance", mode="before")
    @classmethod
    def coerce_min_balance(cls, value):
        if isinstance(value, bool):
            raise ValueError("minBalance must be a number")
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        return value

    def to_storage(self) -> dict:
        """Serialize to the JSON shape kept in ``links.access_policy``"""
        return self.model_dump(by_alias=True)


class TokenPolicy(_PolicyBase):
    """Fungible token gate: holder needs at least ``min_balance`` whole tokens"""
    type: Literal["token"]

    @field_validator("min_balance")
    @classmethod
    def check_min_balance(cls, value: str) -> str:
        if not TOKEN_AMOUNT_RE.fullmatch(value):
            raise ValueError(
                f"minBalance must be a plain non-negative decimal number of at most {MAX_AMOUNT_DIGITS} digits"
            )
        return value


class NftPolicy(_PolicyBase):
    """NFT gate: holder needs to own at least ``min_balance`` items"""
    type: Literal["nft"]

    @field_validator("min_balance")
    @classmethod
    def check_min_balance(cls, value: str) -> str:
        if not NFT_AMOUNT_RE.fullmatch(value):
            raise ValueError(f"minBalance must be a non-negative integer of at most {MAX_AMOUNT_DIGITS} digits")
        return value


AccessPolicy = Annotated[Union[TokenPolicy, NftPolicy], Field(discriminator="type")]

access_policy_adapter = TypeAdapter(AccessPolicy)


def parse_access_policy(raw: Optional[dict]):
    """
    Turn a stored policy blob into a typed policy.

    Returns None for a missing or empty policy. Raises pydantic.ValidationError
    when the blob does not match any policy variant.
    """
    if not raw:
        return None
    return access_policy_adapter.validate_python(raw)


class LinkCreate(_CamelModel):
    """Schema for creating a new short link"""
    url: str = Field(..., description="Original URL to shorten")
    expires_in: Optional[float] = Field(
        None, alias="expiresIn", gt=0, le=3650, description="Days from now until the link expires"
    )
    expires_at: Optional[datetime] = Field(None, alias="expiresAt", description="Explicit expiry timestamp")
    creator_wallet: Optional[str] = Field(None, alias="creatorWallet")
    access_policy: Optional[AccessPolicy] = Field(None, alias="accessPolicy")
    title: Optional[str] = Field(None, max_length=255)

    @field_validator("creator_wallet")
    @classmethod
    def check_creator_wallet(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_address(value):
            raise ValueError("creatorWallet must be a 0x-prefixed 40 hex character address")
        return value

    @field_validator("expires_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class UnlockRequest(_CamelModel):
    """Schema for an unlock attempt on a gated link"""
    short_code: str = Field(..., alias="shortCode", min_length=1, max_length=20)
    holder_address: str = Field(..., alias="holderAddress")

    @field_validator("holder_address")
    @classmethod
    def check_holder_address(cls, value: str) -> str:
        if not is_valid_address(value):
            raise ValueError("holderAddress must be a 0x-prefixed 40 hex character address")
        return value


class Quota(BaseModel):
    remaining: Optional[int] = None
    limit: Optional[int] = None


class LinkCreated(_CamelModel):
    """Schema for a freshly created link"""
    id: str
    short_code: str = Field(..., serialization_alias="shortCode")
    original_url: str = Field(..., serialization_alias="originalUrl")
    short_url: str = Field(..., serialization_alias="shortUrl")
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    expires_at: Optional[datetime] = Field(None, serialization_alias="expiresAt")
    quota: Quota


class LinkDetails(_CamelModel):
    """Public, pre-unlock metadata. Never carries the destination URL."""
    short_code: str = Field(..., serialization_alias="shortCode")
    title: Optional[str] = None
    access_policy: Optional[dict] = Field(None, serialization_alias="accessPolicy")
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")


class LinkStats(_CamelModel):
    """Click statistics for one link"""
    short_code: str = Field(..., serialization_alias="shortCode")
    click_count: int = Field(..., serialization_alias="clickCount")
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    expires_at: Optional[datetime] = Field(None, serialization_alias="expiresAt")
    is_active: bool = Field(..., serialization_alias="isActive")
    gated: bool
    original_url: Optional[str] = Field(None, serialization_alias="originalUrl")
