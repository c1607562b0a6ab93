"""Tiered sliding-window admission control for link creation.

Every identity is tracked in two independent moving windows, one per day and
one per minute. Anonymous callers (keyed by IP) and wallet-identified callers
get separate window configurations.

Failure policy: this limiter FAILS OPEN. With no storage configured, or when
the storage backend errors, every request is admitted and a warning is
logged. Deployments that need fail-closed quotas must configure
RATE_LIMIT_STORAGE_URI and alert on those warnings.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from limits import RateLimitItem, RateLimitItemPerDay, RateLimitItemPerMinute
from limits.storage import Storage, storage_from_string
from limits.strategies import MovingWindowRateLimiter

logger = logging.getLogger(__name__)

SCOPE_DAILY = "daily"
SCOPE_MINUTE = "minute"
SCOPE_NONE = "none"

WALLET_PREFIX = "wallet_"
IP_PREFIX = "ip_"


def identity_key(wallet: Optional[str], ip: str) -> str:
    """Build the rate-limit identity: the wallet when known, otherwise the client IP"""
    if wallet:
        return f"{WALLET_PREFIX}{wallet.lower()}"
    return f"{IP_PREFIX}{ip}"


@dataclass(frozen=True)
class Tier:
    name: str
    daily: RateLimitItem
    minute: RateLimitItem


@dataclass(frozen=True)
class AdmissionResult:
    allowed: bool
    scope: str
    remaining: Optional[int]
    limit: Optional[int]
    reset_at: Optional[float]  # epoch seconds

    @classmethod
    def unmetered(cls) -> "AdmissionResult":
        return cls(allowed=True, scope=SCOPE_NONE, remaining=None, limit=None, reset_at=None)


class TieredRateLimiter:
    """
    Identity-aware creation limiter.

    Args:
        storage: `limits` storage backend, or None to admit everything
        anon_daily, anon_minute: limits for ``ip_`` identities
        wallet_daily, wallet_minute: limits for ``wallet_`` identities
    """

    def __init__(
        self,
        storage: Optional[Storage],
        anon_daily: int = 5,
        anon_minute: int = 3,
        wallet_daily: int = 50,
        wallet_minute: int = 15,
    ):
        self.storage = storage
        self.strategy = MovingWindowRateLimiter(storage) if storage is not None else None
        self.anonymous = Tier(
            name="anonymous",
            daily=RateLimitItemPerDay(anon_daily, namespace="shorten-anon-daily"),
            minute=RateLimitItemPerMinute(anon_minute, namespace="shorten-anon-minute"),
        )
        self.wallet = Tier(
            name="wallet",
            daily=RateLimitItemPerDay(wallet_daily, namespace="shorten-wallet-daily"),
            minute=RateLimitItemPerMinute(wallet_minute, namespace="shorten-wallet-minute"),
        )

    @classmethod
    def from_settings(cls, settings) -> "TieredRateLimiter":
        storage = None
        if settings.RATE_LIMIT_STORAGE_URI:
            storage = storage_from_string(settings.RATE_LIMIT_STORAGE_URI)
        else:
            logger.warning("RATE_LIMIT_STORAGE_URI is not set; link creation is not rate limited")

        return cls(
            storage,
            anon_daily=settings.ANON_DAILY_LIMIT,
            anon_minute=settings.ANON_MINUTE_LIMIT,
            wallet_daily=settings.WALLET_DAILY_LIMIT,
            wallet_minute=settings.WALLET_MINUTE_LIMIT,
        )

    def tier_for(self, identity: str) -> Tier:
        return self.wallet if identity.startswith(WALLET_PREFIX) else self.anonymous

    def admit(self, identity: str) -> AdmissionResult:
        """
        Check and consume one creation for ``identity``.

        Both windows are tested before either is consumed, so a refused
        request does not use quota. The daily window is reported first when
        both are exhausted.
        """
        if self.strategy is None:
            return AdmissionResult.unmetered()

        tier = self.tier_for(identity)
        windows = ((SCOPE_DAILY, tier.daily), (SCOPE_MINUTE, tier.minute))

        try:
            for scope, item in windows:
                if not self.strategy.test(item, identity):
                    return self._denied(scope, item, identity)

            for scope, item in windows:
                if not self.strategy.hit(item, identity):
                    # Lost a race with a concurrent request for the same identity
                    return self._denied(scope, item, identity)

            stats = [
                (self.strategy.get_window_stats(item, identity), item)
                for _, item in windows
            ]
        # Storage backends raise their own client errors (redis, memcached, ...)
        except Exception:
            logger.warning("Rate limit storage failed for %s; admitting request", identity, exc_info=True)
            return AdmissionResult.unmetered()

        binding_stats, binding_item = min(stats, key=lambda pair: pair[0].remaining)
        return AdmissionResult(
            allowed=True,
            scope=SCOPE_NONE,
            remaining=binding_stats.remaining,
            limit=binding_item.amount,
            reset_at=binding_stats.reset_time,
        )

    def _denied(self, scope: str, item: RateLimitItem, identity: str) -> AdmissionResult:
        stats = self.strategy.get_window_stats(item, identity)
        logger.info("Rate limit hit for %s (%s window)", identity, scope)
        return AdmissionResult(
            allowed=False,
            scope=scope,
            remaining=0,
            limit=item.amount,
            reset_at=stats.reset_time,
        )
