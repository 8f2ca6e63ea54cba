import os
from dataclasses import dataclass

from dotenv import load_dotenv

from events.bingo.enums import TierPolicy

load_dotenv()


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BingoConfig:
    """
    Runtime settings for the bingo engine.
    :var max_retries: Attempts made for a unit of work that hits a concurrency conflict
    :var default_tier_policy: Tier policy used by tiles that do not set one
    :var dedup_ttl: Seconds a processed dedup key is remembered by the fast-path cache
    :var notify_timeout: Seconds allowed for a single outbound notification
    :var use_redis: Whether the dedup fast path is backed by redis
    """
    max_retries: int = 3
    default_tier_policy: TierPolicy = TierPolicy.FIRST
    dedup_ttl: int = 86400
    notify_timeout: int = 10
    use_redis: bool = False

    @classmethod
    def from_env(cls) -> "BingoConfig":
        return cls(
            max_retries=int(os.getenv("BINGO_MAX_RETRIES", "3")),
            default_tier_policy=TierPolicy(os.getenv("BINGO_DEFAULT_TIER_POLICY", "first").lower()),
            dedup_ttl=int(os.getenv("BINGO_DEDUP_TTL", "86400")),
            notify_timeout=int(os.getenv("BINGO_NOTIFY_TIMEOUT", "10")),
            use_redis=_env_bool("BINGO_USE_REDIS"),
        )


config = BingoConfig.from_env()
