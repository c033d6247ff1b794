"""
AuditLogger - audit trail for credential lifecycle and data access.

Records who connected or disconnected which provider, every token refresh
and refresh failure, each provider fetch outcome and each pipeline stage
outcome. Only identifiers and counts are recorded, never tokens or fetched
content.

Usage:
    from app.infrastructure.audit import audit_logger

    await audit_logger.log(
        user_id="user-123",
        action=AuditAction.INTEGRATION_CONNECTED,
        provider="github",
        request_id="req-abc123",
    )

Design Principles:
- Write to both database (immutable) and structured logs (searchable)
- Never fail the caller if audit logging fails
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from psycopg.types.json import Jsonb

from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class AuditAction(StrEnum):
    INTEGRATION_CONNECTED = "integration_connected"
    INTEGRATION_DISCONNECTED = "integration_disconnected"
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    FETCH_COMPLETED = "fetch_completed"
    STAGE_COMPLETED = "stage_completed"
    STAGE_FAILED = "stage_failed"
    SESSION_FINALIZED = "session_finalized"
    ENTRY_HANDOFF_FAILED = "entry_handoff_failed"


class AuditLogger:
    """
    Audit logging service.

    Writes every event to:
    1. Database (integration_audit_logs table) - immutable, queryable
    2. Structured logs (stdout) - real-time monitoring
    """

    async def log(
        self,
        user_id: str,
        action: AuditAction | str,
        provider: str | None = None,
        session_id: str | None = None,
        outcome: str | None = None,
        item_count: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        request_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Log an audit event to database and structured logs.

        Returns:
            True if logged successfully, False if failed (never raises)
        """
        action = str(action)

        logger.info(
            "Audit event",
            audit_action=action,
            user_id=user_id,
            provider=provider,
            session_id=session_id,
            outcome=outcome,
            item_count=item_count,
            request_id=request_id,
        )

        try:
            async with db_pool.connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO integration_audit_logs (
                        user_id, action, provider, session_id, outcome,
                        item_count, ip_address, user_agent, request_id,
                        metadata, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        user_id,
                        action,
                        provider,
                        session_id,
                        outcome,
                        item_count,
                        ip_address,
                        user_agent,
                        request_id,
                        Jsonb(metadata) if metadata is not None else None,
                        datetime.now(UTC),
                    ),
                )
            return True

        except Exception as e:
            # Never fail the caller; keep enough context to recreate the row
            logger.error(
                "Failed to write audit log to database",
                error=str(e),
                error_type=type(e).__name__,
                fallback_data={
                    "user_id": user_id,
                    "action": action,
                    "provider": provider,
                    "session_id": session_id,
                    "outcome": outcome,
                    "item_count": item_count,
                    "request_id": request_id,
                    "metadata": metadata,
                    "timestamp": datetime.now(UTC).isoformat(),
                },
            )
            return False


# Global singleton instance
audit_logger = AuditLogger()
