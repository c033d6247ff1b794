"""
OAuth state service for CSRF protection during provider connection.

A state value is generated per authorization request, bound to the
(user_id, provider) pair that started it and consumed exactly once by the
callback.
"""

import json
import secrets

from app.infrastructure.observability.logging import get_logger
from app.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

STATE_TTL_SECONDS = 900  # 15 minutes
STATE_KEY_PREFIX = "oauth_state"
STATE_LENGTH = 32  # bytes for cryptographically secure state


class OAuthStateError(Exception):
    """Custom exception for OAuth state-related errors."""

    pass


class OAuthStateService:
    """Generates, stores and consumes OAuth state parameters in Redis."""

    def __init__(self, redis_client: FastRedisClient | None = None):
        self._redis = redis_client or fast_redis

    def _redis_key(self, state: str) -> str:
        return f"{STATE_KEY_PREFIX}:{state}"

    async def generate_state(self, user_id: str, provider: str) -> str:
        """
        Generate a state parameter bound to the user and provider.

        Raises:
            OAuthStateError: If the state cannot be stored
        """
        state = secrets.token_urlsafe(STATE_LENGTH)
        payload = json.dumps({"user_id": user_id, "provider": provider})

        stored = await self._redis.set_with_ttl(self._redis_key(state), payload, STATE_TTL_SECONDS)
        if not stored:
            logger.error("Failed to store OAuth state", user_id=user_id, provider=provider)
            raise OAuthStateError("Failed to store state in Redis")

        logger.info(
            "OAuth state generated",
            user_id=user_id,
            provider=provider,
            ttl_seconds=STATE_TTL_SECONDS,
        )
        return state

    async def consume_state(self, state: str, provider: str) -> str:
        """
        Validate and delete a state value.

        Returns:
            str: The user id that started the flow

        Raises:
            OAuthStateError: If the state is unknown, expired or was issued
                for a different provider
        """
        if not state:
            raise OAuthStateError("Missing OAuth state")

        raw = await self._redis.pop(self._redis_key(state))
        if raw is None:
            logger.warning("OAuth state not found or expired", state_preview=state[:8] + "...")
            raise OAuthStateError("Invalid or expired OAuth state")

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise OAuthStateError("Corrupted OAuth state") from e

        if data.get("provider") != provider:
            logger.warning(
                "OAuth state provider mismatch",
                expected_provider=provider,
                stored_provider=data.get("provider"),
            )
            raise OAuthStateError("OAuth state was issued for a different provider")

        return data["user_id"]
