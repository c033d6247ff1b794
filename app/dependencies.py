"""
Service wiring for the HTTP layer.

The lifespan builds one ``ServiceContainer`` and stores it on
``app.state.services``; route dependencies read from there so tests can
swap individual services through ``app.dependency_overrides``.
"""

from dataclasses import dataclass

import httpx
from fastapi import Request

from app.config import settings
from app.repositories.credential_repository import PostgresCredentialRepository
from app.services.activity_journal_service import ActivityJournalService
from app.services.ai.llm_client import LLMClient
from app.services.ai.model_selector import ModelSelector
from app.services.credential_vault import CredentialVault
from app.services.fetch_orchestrator import FetchOrchestrator, FetchPolicy
from app.services.infrastructure.encryption_service import get_token_cipher
from app.services.infrastructure.redis_client import fast_redis
from app.services.journal_entry_client import JournalEntryClient
from app.services.oauth.oauth_client import OAuthClient
from app.services.oauth.state_service import OAuthStateService
from app.services.pipeline import (
    ActivityAnalyzer,
    ActivityCorrelator,
    AgentPipeline,
    EntryGenerator,
)
from app.services.providers import build_adapters
from app.services.session_store import SessionStore


@dataclass
class ServiceContainer:
    http_client: httpx.AsyncClient
    vault: CredentialVault
    session_store: SessionStore
    journal_service: ActivityJournalService

    async def close(self) -> None:
        await self.session_store.stop_sweeper()
        await self.http_client.aclose()


def build_services(http_client: httpx.AsyncClient) -> ServiceContainer:
    vault = CredentialVault(
        repository=PostgresCredentialRepository(),
        cipher=get_token_cipher(),
        oauth_client=OAuthClient(http_client=http_client),
        state_service=OAuthStateService(fast_redis),
    )
    store = SessionStore()
    llm = LLMClient()
    pipeline = AgentPipeline(
        store=store,
        selector=ModelSelector.from_settings(settings),
        analyzer=ActivityAnalyzer(llm),
        correlator=ActivityCorrelator(llm),
        generator=EntryGenerator(llm),
    )
    orchestrator = FetchOrchestrator(
        vault=vault,
        adapters=build_adapters(http_client),
        policy=FetchPolicy.from_settings(settings),
    )
    journal_service = ActivityJournalService(
        orchestrator=orchestrator,
        store=store,
        pipeline=pipeline,
        journal_client=JournalEntryClient(http_client=http_client),
    )
    return ServiceContainer(
        http_client=http_client,
        vault=vault,
        session_store=store,
        journal_service=journal_service,
    )


def get_vault(request: Request) -> CredentialVault:
    return request.app.state.services.vault


def get_journal_service(request: Request) -> ActivityJournalService:
    return request.app.state.services.journal_service