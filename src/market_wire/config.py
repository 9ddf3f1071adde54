import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


def _b(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in {
        "1",
        "true",
        "yes",
        "y",
        "on",
    }


def _i(name: str, default: int) -> int:
    try:
        return int((os.getenv(name) or str(default)).strip())
    except Exception:
        return default


DEFAULT_DNS_RESOLVERS = "8.8.8.8,8.8.4.4;1.1.1.1,1.0.0.1;9.9.9.9,149.112.112.112"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "Chrome/120.0 Safari/537.36"
)


def parse_resolver_pairs(raw: str) -> List[List[str]]:
    """Parse ``"a,b;c,d"`` into ``[["a", "b"], ["c", "d"]]``.

    Empty groups and blank entries are dropped so a trailing ``;`` does not
    create an empty network path.
    """
    pairs: List[List[str]] = []
    for group in (raw or "").split(";"):
        servers = [s.strip() for s in group.split(",") if s.strip()]
        if servers:
            pairs.append(servers)
    return pairs


@dataclass
class Settings:
    # --- Cycle scheduling ---
    # Seconds between pipeline cycles.  Shorter intervals burn through the
    # daily posting quota before the trading day is over.
    loop_seconds: int = _i("LOOP_SECONDS", 300)

    # Pause after every successful post so bursts never hit the posting
    # platform's short-window rate limit.
    post_delay_seconds: float = float(os.getenv("POST_DELAY_SECONDS", "5") or "5")

    # --- State store (dedup sets + posting quota) ---
    # ``redis`` talks to Redis/Valkey through redis-py; ``sqlite`` keeps the
    # same key/set semantics in a local file for single-host runs.
    state_backend: str = (os.getenv("STATE_BACKEND", "redis") or "redis").lower()
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    state_cache_size: int = _i("STATE_CACHE_SIZE", 1000)

    # --- Resilient fetcher ---
    fetch_timeout_seconds: float = float(
        os.getenv("FETCH_TIMEOUT_SECONDS", "20") or "20"
    )
    fetch_max_retries: int = _i("FETCH_MAX_RETRIES", 3)
    dns_resolvers: str = os.getenv("DNS_RESOLVERS", DEFAULT_DNS_RESOLVERS)
    dns_cache_ttl: int = _i("DNS_CACHE_TTL", 60)
    fetch_verify_tls: bool = _b("FETCH_VERIFY_TLS", True)
    user_agent: str = os.getenv("FETCH_USER_AGENT", DEFAULT_USER_AGENT)

    # --- Entity classification (Gemini) ---
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    entity_max_attempts: int = _i("ENTITY_MAX_ATTEMPTS", 3)
    entity_timeout_seconds: float = float(
        os.getenv("ENTITY_TIMEOUT_SECONDS", "30") or "30"
    )

    # --- Posting (Twitter v2) ---
    twitter_api_key: str = os.getenv("TWITTER_API_KEY", "")
    twitter_api_key_secret: str = os.getenv("TWITTER_API_KEY_SECRET", "")
    twitter_access_token: str = os.getenv("TWITTER_ACCESS_TOKEN", "")
    twitter_access_token_secret: str = os.getenv("TWITTER_ACCESS_TOKEN_SECRET", "")
    tweet_monthly_limit: int = _i("TWEET_MONTHLY_LIMIT", 495)
    tweet_daily_limit: int = _i("TWEET_DAILY_LIMIT", 17)

    # When disabled the runner composes messages and logs them without
    # touching the posting platform (record-only mode).
    feature_posting: bool = _b("FEATURE_POSTING", True)

    # --- Composition ---
    tweet_char_limit: int = _i("TWEET_CHAR_LIMIT", 280)
    compose_retries: int = _i("COMPOSE_RETRIES", 5)

    # --- Static table overrides (JSON files; blank = built-in tables) ---
    keywords_path: str = os.getenv("KEYWORDS_PATH", "")
    sources_path: str = os.getenv("SOURCES_PATH", "")

    # --- Admin HTTP endpoints ---
    feature_health_endpoint: bool = _b("FEATURE_HEALTH_ENDPOINT", True)
    health_port: int = _i("HEALTH_PORT", 8080)

    # --- Logging ---
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_plain: bool = _b("LOG_PLAIN", False)
    log_rotation_days: int = _i("LOG_ROTATION_DAYS", 7)

    # Paths
    data_dir: Path = field(
        default_factory=lambda: Path(os.getenv("DATA_DIR", "data")).resolve()
    )
    state_db_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("STATE_DB_PATH", os.path.join("data", "state.sqlite"))
        )
    )
    articles_db_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("ARTICLES_DB_PATH", os.path.join("data", "articles.sqlite"))
        )
    )

    @property
    def resolver_pairs(self) -> List[List[str]]:
        return parse_resolver_pairs(self.dns_resolvers)

    @property
    def twitter_configured(self) -> bool:
        return all(
            (
                self.twitter_api_key,
                self.twitter_api_key_secret,
                self.twitter_access_token,
                self.twitter_access_token_secret,
            )
        )


SETTINGS: Optional[Settings] = None


def get_settings() -> Settings:
    global SETTINGS
    if SETTINGS is None:
        SETTINGS = Settings()
    return SETTINGS

