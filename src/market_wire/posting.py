"""Posting to X/Twitter with a local monthly/daily quota.

The platform's free tier allows a few hundred posts a month; the quota is
tracked here, in the state store, so the limit holds across restarts.  One
JSON record per calendar month lives under ``tweet_quota:<YYYY-MM>``::

    {"month": "2025-01", "tweets_sent": 12,
     "last_tweet_date": "2025-01-09", "daily_tweets_sent": 3}

The daily counter resets the first time the record is read on a new date.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import tweepy

from .config import Settings
from .errors import PostError, PostRejectedError, QuotaExceededError
from .logging_utils import get_logger
from .state_store import StateStore

log = get_logger("posting")

QUOTA_KEY_PREFIX = "tweet_quota:"
# a little over a month so the record outlives its own month
QUOTA_TTL_SECONDS = 40 * 86400


class TweetPoster:
    def __init__(
        self,
        store: StateStore,
        client: Any = None,
        monthly_limit: int = 495,
        daily_limit: int = 17,
        char_limit: int = 280,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.client = client
        self.monthly_limit = monthly_limit
        self.daily_limit = daily_limit
        self.char_limit = char_limit
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, store: StateStore) -> "TweetPoster":
        client = None
        if settings.twitter_configured:
            client = tweepy.Client(
                consumer_key=settings.twitter_api_key,
                consumer_secret=settings.twitter_api_key_secret,
                access_token=settings.twitter_access_token,
                access_token_secret=settings.twitter_access_token_secret,
            )
        else:
            log.warning("twitter_credentials_missing posting_disabled")
        return cls(
            store,
            client=client,
            monthly_limit=settings.tweet_monthly_limit,
            daily_limit=settings.tweet_daily_limit,
            char_limit=settings.tweet_char_limit,
        )

    # --- quota --------------------------------------------------------------

    def _month(self) -> str:
        return self._clock().strftime("%Y-%m")

    def _today(self) -> str:
        return self._clock().strftime("%Y-%m-%d")

    async def _load_quota(self) -> Dict[str, Any]:
        month = self._month()
        today = self._today()
        raw = await self.store.get(QUOTA_KEY_PREFIX + month)
        if raw:
            quota = json.loads(raw)
        else:
            quota = {
                "month": month,
                "tweets_sent": 0,
                "last_tweet_date": today,
                "daily_tweets_sent": 0,
            }
        if quota.get("last_tweet_date") != today:
            quota["last_tweet_date"] = today
            quota["daily_tweets_sent"] = 0
        return quota

    async def _save_quota(self, quota: Dict[str, Any]) -> None:
        await self.store.set(
            QUOTA_KEY_PREFIX + quota["month"], json.dumps(quota), ttl=QUOTA_TTL_SECONDS
        )

    async def can_post(self) -> Optional[str]:
        """None when a post is allowed, otherwise the reason it is not."""
        quota = await self._load_quota()
        if quota["tweets_sent"] >= self.monthly_limit:
            return f"monthly limit reached ({self.monthly_limit})"
        if quota["daily_tweets_sent"] >= self.daily_limit:
            return f"daily limit reached ({self.daily_limit})"
        return None

    async def quota_status(self) -> Dict[str, int]:
        quota = await self._load_quota()
        return {
            "monthly_limit": self.monthly_limit,
            "monthly_sent": quota["tweets_sent"],
            "monthly_remaining": self.monthly_limit - quota["tweets_sent"],
            "daily_limit": self.daily_limit,
            "daily_sent": quota["daily_tweets_sent"],
            "daily_remaining": self.daily_limit - quota["daily_tweets_sent"],
        }

    # --- posting ------------------------------------------------------------

    async def post(self, text: str) -> str:
        """Publish ``text`` and return the post id."""
        reason = await self.can_post()
        if reason:
            raise QuotaExceededError(f"cannot post: {reason}")
        if len(text) > self.char_limit:
            raise PostRejectedError(
                f"text too long: {len(text)} characters (max {self.char_limit})"
            )
        if self.client is None:
            raise PostError("twitter credentials not configured")

        try:
            response = await asyncio.to_thread(self.client.create_tweet, text=text)
        except tweepy.TooManyRequests as e:
            raise QuotaExceededError(f"platform rate limit: {e}") from e
        except (tweepy.BadRequest, tweepy.Forbidden) as e:
            raise PostRejectedError(f"platform rejected post: {e}") from e
        except tweepy.TweepyException as e:
            raise PostError(f"post failed: {e}") from e

        post_id = str((response.data or {}).get("id", ""))

        # re-read so a concurrent day rollover is not clobbered
        quota = await self._load_quota()
        quota["tweets_sent"] += 1
        quota["daily_tweets_sent"] += 1
        await self._save_quota(quota)

        log.info(
            "tweet_sent id=%s daily=%d/%d monthly=%d/%d",
            post_id,
            quota["daily_tweets_sent"],
            self.daily_limit,
            quota["tweets_sent"],
            self.monthly_limit,
        )
        return post_id
