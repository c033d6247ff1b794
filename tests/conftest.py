import pytest
from cryptography.fernet import Fernet

from app.auth.verify import auth_dependency
from app.services.ai.model_selector import ModelSelector
from app.services.infrastructure.encryption_service import TokenCipher
from tests.fakes import (
    ECONOMY,
    PREMIUM,
    FakeClock,
    FakeRedis,
    InMemoryCredentialRepository,
    RecordingAudit,
)


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credential_repo():
    return InMemoryCredentialRepository()


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def cipher():
    return TokenCipher({1: Fernet.generate_key().decode()}, current_version=1)


@pytest.fixture
def selector():
    return ModelSelector(economy=ECONOMY, premium=PREMIUM)
