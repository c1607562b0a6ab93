from .link import (
    AccessPolicy,
    LinkCreate,
    LinkCreated,
    LinkDetails,
    LinkStats,
    NftPolicy,
    TokenPolicy,
    UnlockRequest,
    parse_access_policy,
)

__all__ = [
    "AccessPolicy",
    "LinkCreate",
    "LinkCreated",
    "LinkDetails",
    "LinkStats",
    "NftPolicy",
    "TokenPolicy",
    "UnlockRequest",
    "parse_access_policy",
]
