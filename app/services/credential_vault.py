"""
Credential vault: sole owner of third-party OAuth credentials.

Other components never see stored tokens. They ask the vault for a valid
access token right before a fetch, and the vault refreshes, re-encrypts or
disconnects behind that call as needed.
"""

import asyncio
import weakref
from collections.abc import Callable
from datetime import UTC, datetime

from app.config import settings
from app.errors import CredentialError, CredentialErrorKind
from app.infrastructure.audit import AuditAction, AuditLogger, audit_logger
from app.infrastructure.observability.logging import get_logger
from app.models.domain.credential_domain import (
    AccessToken,
    ConnectionStatus,
    IntegrationCredential,
    ProviderType,
    TokenResponse,
)
from app.repositories.credential_repository import CredentialRepository
from app.services.infrastructure.encryption_service import EncryptionError, TokenCipher
from app.services.oauth.oauth_client import (
    OAuthClient,
    TokenEndpointRejected,
    TokenEndpointUnreachable,
)
from app.services.oauth.provider_configs import OAuthProviderConfig, build_provider_configs
from app.services.oauth.state_service import OAuthStateError, OAuthStateService

logger = get_logger(__name__)


class CredentialVault:
    """
    Connect, refresh, rotate and disconnect integration credentials.

    Refreshes for one (user, provider) are serialized in-process by a lock;
    across processes the repository's row_version check makes the first
    committed refresh win and later ones discard their result.
    """

    def __init__(
        self,
        repository: CredentialRepository,
        cipher: TokenCipher,
        oauth_client: OAuthClient | None = None,
        state_service: OAuthStateService | None = None,
        provider_configs: dict[ProviderType, OAuthProviderConfig] | None = None,
        audit: AuditLogger | None = None,
        refresh_skew_seconds: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._repo = repository
        self._cipher = cipher
        self._oauth = oauth_client or OAuthClient()
        self._state = state_service or OAuthStateService()
        self._configs = provider_configs or build_provider_configs()
        self._audit = audit or audit_logger
        self._skew = (
            refresh_skew_seconds
            if refresh_skew_seconds is not None
            else settings.TOKEN_REFRESH_SKEW_SECONDS
        )
        self._now = clock or (lambda: datetime.now(UTC))
        self._refresh_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def available_providers(self) -> list[ProviderType]:
        """Providers with OAuth client credentials configured."""
        return [p for p, cfg in self._configs.items() if cfg.configured]

    async def authorization_url(self, user_id: str, provider: ProviderType) -> tuple[str, str]:
        """Start the OAuth flow. Returns (authorize_url, state)."""
        config = self._config(provider)
        try:
            state = await self._state.generate_state(user_id, provider.value)
        except OAuthStateError as e:
            raise CredentialError(
                "Could not start authorization",
                kind=CredentialErrorKind.PROVIDER_UNREACHABLE,
                user_id=user_id,
                provider=provider.value,
                recoverable=True,
            ) from e
        return self._oauth.build_authorize_url(config, state), state

    async def handle_callback(
        self, provider: ProviderType, code: str, state: str
    ) -> IntegrationCredential:
        """Validate the callback state and connect the user it belongs to."""
        try:
            user_id = await self._state.consume_state(state, provider.value)
        except OAuthStateError as e:
            raise CredentialError(
                str(e), kind=CredentialErrorKind.INVALID_GRANT, provider=provider.value
            ) from e
        return await self.connect(user_id, provider, code)

    async def connect(
        self, user_id: str, provider: ProviderType, auth_code: str
    ) -> IntegrationCredential:
        """
        Exchange an authorization code and store the resulting credential.

        Connecting an already-connected provider overwrites the prior record.

        Raises:
            CredentialError: INVALID_GRANT, PROVIDER_UNREACHABLE or NOT_CONFIGURED
        """
        config = self._config(provider)
        if not auth_code:
            raise CredentialError(
                "Authorization code is required",
                kind=CredentialErrorKind.INVALID_GRANT,
                user_id=user_id,
                provider=provider.value,
            )

        try:
            tokens = await self._oauth.exchange_code(config, auth_code)
        except CredentialError as e:
            e.user_id = user_id
            logger.warning(
                "Provider connection failed",
                user_id=user_id,
                provider=provider.value,
                kind=e.kind.value,
            )
            raise

        now = self._now()
        credential = IntegrationCredential(
            user_id=user_id,
            provider=provider,
            access_token_encrypted=self._encrypt(tokens.access_token),
            refresh_token_encrypted=self._encrypt(tokens.refresh_token),
            key_version=self._cipher.current_version,
            expires_at=tokens.expires_at,
            scope=tokens.scope or config.scope_string(),
            is_connected=True,
            connected_at=now,
            updated_at=now,
        )
        saved = await self._repo.upsert(credential)

        logger.info(
            "Provider connected",
            user_id=user_id,
            provider=provider.value,
            has_refresh_token=bool(tokens.refresh_token),
            expires_at=tokens.expires_at.isoformat() if tokens.expires_at else None,
        )
        await self._audit.log(
            user_id=user_id,
            action=AuditAction.INTEGRATION_CONNECTED,
            provider=provider.value,
            outcome="success",
            metadata={"scope": saved.scope},
        )
        return saved

    async def disconnect(self, user_id: str, provider: ProviderType) -> bool:
        """
        Revoke (best effort) and wipe the credential.

        Returns:
            bool: True if a connected credential existed
        """
        credential = await self._repo.get(user_id, provider)
        if credential is None or not credential.is_connected:
            return False

        config = self._configs.get(provider)
        if config and config.revoke_url and credential.access_token_encrypted:
            try:
                token = self._cipher.decrypt(credential.access_token_encrypted)
                await self._oauth.revoke(config, token)
            except EncryptionError:
                logger.warning("Skipping revoke for unreadable credential", provider=provider.value)

        await self._repo.mark_disconnected(user_id, provider)

        logger.info("Provider disconnected", user_id=user_id, provider=provider.value)
        await self._audit.log(
            user_id=user_id,
            action=AuditAction.INTEGRATION_DISCONNECTED,
            provider=provider.value,
            outcome="user_requested",
        )
        return True

    async def list_connections(self, user_id: str) -> list[ConnectionStatus]:
        """Connection status for every supported provider, without tokens."""
        stored = {c.provider: c for c in await self._repo.list_for_user(user_id)}
        statuses = []
        for provider, config in self._configs.items():
            credential = stored.get(provider)
            connected = bool(credential and credential.is_connected)
            statuses.append(
                ConnectionStatus(
                    provider=provider,
                    connected=connected,
                    configured=config.configured,
                    connected_at=credential.connected_at if connected else None,
                    expires_at=credential.expires_at if connected else None,
                    scope=credential.scope if connected else "",
                )
            )
        return statuses

    # ------------------------------------------------------------------
    # Token access
    # ------------------------------------------------------------------

    async def get_valid_token(self, user_id: str, provider: ProviderType) -> AccessToken:
        """
        Return a usable access token, refreshing first if it is expired.

        Raises:
            CredentialError: NOT_CONNECTED or REFRESH_FAILED
        """
        stored = await self._repo.get(user_id, provider)
        credential = self._require_connected(stored, user_id, provider)

        if credential.expires_within(self._skew, now=self._now()):
            return await self._refresh(user_id, provider, rejected_token=None)

        credential = await self._rotate_if_needed(credential)
        return self._access_token(credential)

    async def force_refresh(
        self, user_id: str, provider: ProviderType, rejected_token: AccessToken | None = None
    ) -> AccessToken:
        """
        Refresh after the provider rejected a token that looked valid.

        If another caller already replaced ``rejected_token`` the committed
        token is returned without a second refresh.
        """
        return await self._refresh(
            user_id,
            provider,
            rejected_token=rejected_token.access_token if rejected_token else "",
        )

    async def _refresh(
        self, user_id: str, provider: ProviderType, rejected_token: str | None
    ) -> AccessToken:
        """
        Serialized refresh for one credential.

        ``rejected_token`` is None for expiry-driven refresh, otherwise the
        token the provider refused (empty string when unknown).
        """
        lock = self._lock_for(user_id, provider)
        async with lock:
            credential = self._require_connected(
                await self._repo.get(user_id, provider), user_id, provider
            )

            if rejected_token is None:
                if not credential.expires_within(self._skew, now=self._now()):
                    logger.debug("Token already refreshed", provider=provider.value)
                    return self._access_token(credential)
            elif rejected_token:
                current = self._decrypt(credential.access_token_encrypted, credential)
                if current != rejected_token:
                    return self._access_token(credential)

            if not credential.refresh_token_encrypted:
                await self._fail_refresh(credential, "no_refresh_token", disconnect=True)

            config = self._config(provider)
            refresh_token = self._decrypt(credential.refresh_token_encrypted, credential)

            try:
                tokens = await self._oauth.refresh(config, refresh_token)
            except TokenEndpointRejected as e:
                reason = e.error_code or "rejected"
                await self._fail_refresh(credential, reason, disconnect=True, cause=e)
            except TokenEndpointUnreachable as e:
                await self._fail_refresh(
                    credential, "provider_unreachable", disconnect=False, cause=e
                )

            return await self._commit_refresh(credential, tokens, refresh_token)

    async def _commit_refresh(
        self, credential: IntegrationCredential, tokens: TokenResponse, old_refresh_token: str
    ) -> AccessToken:
        updated = credential.model_copy(
            update={
                "access_token_encrypted": self._encrypt(tokens.access_token),
                # Keep the old refresh token when the provider does not rotate it
                "refresh_token_encrypted": self._encrypt(tokens.refresh_token or old_refresh_token),
                "key_version": self._cipher.current_version,
                "expires_at": tokens.expires_at,
                "scope": tokens.scope or credential.scope,
            }
        )
        saved = await self._repo.update_tokens(updated, expected_row_version=credential.row_version)

        if saved is None:
            # Another process committed first; its token pair wins
            committed = self._require_connected(
                await self._repo.get(credential.user_id, credential.provider),
                credential.user_id,
                credential.provider,
            )
            logger.info(
                "Discarding refresh result after concurrent commit",
                user_id=credential.user_id,
                provider=credential.provider.value,
            )
            return self._access_token(committed)

        logger.info(
            "Access token refreshed",
            user_id=credential.user_id,
            provider=credential.provider.value,
            expires_at=tokens.expires_at.isoformat() if tokens.expires_at else None,
            rotated_refresh_token=bool(tokens.refresh_token),
        )
        await self._audit.log(
            user_id=credential.user_id,
            action=AuditAction.TOKEN_REFRESHED,
            provider=credential.provider.value,
            outcome="success",
        )
        return AccessToken(
            user_id=saved.user_id,
            provider=saved.provider,
            access_token=tokens.access_token,
            expires_at=saved.expires_at,
            scope=saved.scope,
        )

    async def _fail_refresh(
        self,
        credential: IntegrationCredential,
        reason: str,
        disconnect: bool,
        cause: Exception | None = None,
    ) -> None:
        """Record a failed refresh and raise REFRESH_FAILED."""
        if disconnect:
            await self._repo.mark_disconnected(credential.user_id, credential.provider)

        logger.warning(
            "Token refresh failed",
            user_id=credential.user_id,
            provider=credential.provider.value,
            reason=reason,
            disconnected=disconnect,
        )
        await self._audit.log(
            user_id=credential.user_id,
            action=AuditAction.TOKEN_REFRESH_FAILED,
            provider=credential.provider.value,
            outcome=reason,
            metadata={"disconnected": disconnect},
        )
        raise CredentialError(
            f"Token refresh failed for {credential.provider.value}: {reason}",
            kind=CredentialErrorKind.REFRESH_FAILED,
            user_id=credential.user_id,
            provider=credential.provider.value,
            recoverable=not disconnect,
        ) from cause

    async def _rotate_if_needed(self, credential: IntegrationCredential) -> IntegrationCredential:
        """Re-encrypt tokens stored under a retired key version."""
        stale = [
            value
            for value in (credential.access_token_encrypted, credential.refresh_token_encrypted)
            if value and self._cipher.needs_rotation(value)
        ]
        if not stale:
            return credential

        access = self._decrypt(credential.access_token_encrypted, credential)
        refresh = (
            self._decrypt(credential.refresh_token_encrypted, credential)
            if credential.refresh_token_encrypted
            else None
        )
        rotated = credential.model_copy(
            update={
                "access_token_encrypted": self._encrypt(access),
                "refresh_token_encrypted": self._encrypt(refresh),
                "key_version": self._cipher.current_version,
            }
        )
        saved = await self._repo.update_tokens(rotated, expected_row_version=credential.row_version)
        logger.info(
            "Credential re-encrypted under current key",
            user_id=credential.user_id,
            provider=credential.provider.value,
            from_version=credential.key_version,
            to_version=self._cipher.current_version,
            committed=saved is not None,
        )
        return saved or credential

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _config(self, provider: ProviderType) -> OAuthProviderConfig:
        config = self._configs.get(provider)
        if config is None or not config.configured:
            raise CredentialError(
                f"{provider.value} OAuth client is not configured",
                kind=CredentialErrorKind.NOT_CONFIGURED,
                provider=provider.value,
            )
        return config

    def _lock_for(self, user_id: str, provider: ProviderType) -> asyncio.Lock:
        key = (user_id, provider.value)
        lock = self._refresh_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[key] = lock
        return lock

    @staticmethod
    def _require_connected(
        credential: IntegrationCredential | None, user_id: str, provider: ProviderType
    ) -> IntegrationCredential:
        if (
            credential is None
            or not credential.is_connected
            or not credential.access_token_encrypted
        ):
            raise CredentialError(
                f"{provider.value} is not connected",
                kind=CredentialErrorKind.NOT_CONNECTED,
                user_id=user_id,
                provider=provider.value,
            )
        return credential

    def _encrypt(self, value: str | None) -> bytes | None:
        return self._cipher.encrypt(value) if value else None

    def _decrypt(self, value: bytes, credential: IntegrationCredential) -> str:
        try:
            return self._cipher.decrypt(value)
        except EncryptionError as e:
            logger.error(
                "Stored credential cannot be decrypted",
                user_id=credential.user_id,
                provider=credential.provider.value,
                key_version=credential.key_version,
                error=str(e),
            )
            raise CredentialError(
                f"{credential.provider.value} credential is unreadable; reconnect required",
                kind=CredentialErrorKind.NOT_CONNECTED,
                user_id=credential.user_id,
                provider=credential.provider.value,
            ) from e

    def _access_token(self, credential: IntegrationCredential) -> AccessToken:
        return AccessToken(
            user_id=credential.user_id,
            provider=credential.provider,
            access_token=self._decrypt(credential.access_token_encrypted, credential),
            expires_at=credential.expires_at,
            scope=credential.scope,
        )
