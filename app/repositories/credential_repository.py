"""
Persistence for integration credentials.

Writes that replace tokens after a refresh use optimistic concurrency on
``row_version``: the update only lands if nobody committed since the
caller read the row.
"""

from abc import ABC, abstractmethod

from app.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from app.infrastructure.observability.logging import get_logger
from app.models.domain.credential_domain import IntegrationCredential, ProviderType

logger = get_logger(__name__)

_COLUMNS = """
    user_id, provider, access_token_encrypted, refresh_token_encrypted,
    key_version, expires_at, scope, is_connected, connected_at, updated_at,
    row_version
"""


class CredentialRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str, provider: ProviderType) -> IntegrationCredential | None:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[IntegrationCredential]:
        ...

    @abstractmethod
    async def upsert(self, credential: IntegrationCredential) -> IntegrationCredential:
        """Insert or overwrite the (user, provider) record unconditionally."""

    @abstractmethod
    async def update_tokens(
        self, credential: IntegrationCredential, expected_row_version: int
    ) -> IntegrationCredential | None:
        """Replace tokens if ``row_version`` is unchanged; None on conflict."""

    @abstractmethod
    async def mark_disconnected(self, user_id: str, provider: ProviderType) -> bool:
        """Flag disconnected and wipe token columns."""


def _row_to_credential(row: dict) -> IntegrationCredential:
    data = dict(row)
    for key in ("access_token_encrypted", "refresh_token_encrypted"):
        if data.get(key) is not None:
            data[key] = bytes(data[key])
    return IntegrationCredential(**data)


class PostgresCredentialRepository(CredentialRepository):
    """Credential storage in the integration_credentials table."""

    @with_db_retry()
    async def get(self, user_id: str, provider: ProviderType) -> IntegrationCredential | None:
        row = await fetch_one(
            f"SELECT {_COLUMNS} FROM integration_credentials WHERE user_id = %s AND provider = %s",
            (user_id, provider.value),
        )
        return _row_to_credential(row) if row else None

    @with_db_retry()
    async def list_for_user(self, user_id: str) -> list[IntegrationCredential]:
        rows = await fetch_all(
            f"SELECT {_COLUMNS} FROM integration_credentials WHERE user_id = %s ORDER BY provider",
            (user_id,),
        )
        return [_row_to_credential(row) for row in rows]

    @with_db_retry()
    async def upsert(self, credential: IntegrationCredential) -> IntegrationCredential:
        row = await fetch_one(
            f"""
            INSERT INTO integration_credentials (
                user_id, provider, access_token_encrypted, refresh_token_encrypted,
                key_version, expires_at, scope, is_connected, connected_at, updated_at,
                row_version
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), 1)
            ON CONFLICT (user_id, provider) DO UPDATE SET
                access_token_encrypted = EXCLUDED.access_token_encrypted,
                refresh_token_encrypted = EXCLUDED.refresh_token_encrypted,
                key_version = EXCLUDED.key_version,
                expires_at = EXCLUDED.expires_at,
                scope = EXCLUDED.scope,
                is_connected = EXCLUDED.is_connected,
                connected_at = EXCLUDED.connected_at,
                updated_at = NOW(),
                row_version = integration_credentials.row_version + 1
            RETURNING {_COLUMNS}
            """,
            (
                credential.user_id,
                credential.provider.value,
                credential.access_token_encrypted,
                credential.refresh_token_encrypted,
                credential.key_version,
                credential.expires_at,
                credential.scope,
                credential.is_connected,
                credential.connected_at,
            ),
        )
        return _row_to_credential(row)

    @with_db_retry()
    async def update_tokens(
        self, credential: IntegrationCredential, expected_row_version: int
    ) -> IntegrationCredential | None:
        row = await fetch_one(
            f"""
            UPDATE integration_credentials SET
                access_token_encrypted = %s,
                refresh_token_encrypted = %s,
                key_version = %s,
                expires_at = %s,
                scope = %s,
                updated_at = NOW(),
                row_version = row_version + 1
            WHERE user_id = %s AND provider = %s AND row_version = %s AND is_connected
            RETURNING {_COLUMNS}
            """,
            (
                credential.access_token_encrypted,
                credential.refresh_token_encrypted,
                credential.key_version,
                credential.expires_at,
                credential.scope,
                credential.user_id,
                credential.provider.value,
                expected_row_version,
            ),
        )
        if row is None:
            logger.info(
                "Credential update lost optimistic lock",
                user_id=credential.user_id,
                provider=credential.provider.value,
                expected_row_version=expected_row_version,
            )
            return None
        return _row_to_credential(row)

    @with_db_retry()
    async def mark_disconnected(self, user_id: str, provider: ProviderType) -> bool:
        affected = await execute_query(
            """
            UPDATE integration_credentials SET
                is_connected = FALSE,
                access_token_encrypted = NULL,
                refresh_token_encrypted = NULL,
                expires_at = NULL,
                updated_at = NOW(),
                row_version = row_version + 1
            WHERE user_id = %s AND provider = %s
            """,
            (user_id, provider.value),
        )
        return affected > 0
