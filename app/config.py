from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Public base URL used to derive OAuth redirect URIs
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Auth (JWT bearer tokens verified against a JWKS endpoint)
    JWKS_URL: str = "http://localhost:9999/.well-known/jwks.json"
    JWT_AUDIENCE: str = "authenticated"
    JWT_ALGORITHMS: str = "ES256,RS256"

    # Storage
    DATABASE_URL: str = "postgresql://localhost:5432/activity_journal"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Token encryption. Comma separated "version:fernet_key" pairs.
    ENCRYPTION_KEYS: str | None = None
    ENCRYPTION_CURRENT_KEY_VERSION: int = 1

    # =================================================================
    # OAUTH CLIENTS - one pair per provider
    # =================================================================
    GITHUB_CLIENT_ID: str | None = None
    GITHUB_CLIENT_SECRET: str | None = None
    GITHUB_REDIRECT_URI: str | None = None

    # Jira and Confluence share the Atlassian developer console app by default
    ATLASSIAN_CLIENT_ID: str | None = None
    ATLASSIAN_CLIENT_SECRET: str | None = None
    JIRA_REDIRECT_URI: str | None = None
    CONFLUENCE_REDIRECT_URI: str | None = None

    FIGMA_CLIENT_ID: str | None = None
    FIGMA_CLIENT_SECRET: str | None = None
    FIGMA_REDIRECT_URI: str | None = None
    FIGMA_TEAM_IDS: str = ""

    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_CALENDAR_REDIRECT_URI: str | None = None
    GOOGLE_DRIVE_REDIRECT_URI: str | None = None

    SLACK_CLIENT_ID: str | None = None
    SLACK_CLIENT_SECRET: str | None = None
    SLACK_REDIRECT_URI: str | None = None

    # Teams, OneDrive, SharePoint and OneNote share one Entra ID app registration
    MICROSOFT_CLIENT_ID: str | None = None
    MICROSOFT_CLIENT_SECRET: str | None = None
    MICROSOFT_TENANT: str = "common"
    TEAMS_REDIRECT_URI: str | None = None
    ONEDRIVE_REDIRECT_URI: str | None = None
    SHAREPOINT_REDIRECT_URI: str | None = None
    ONENOTE_REDIRECT_URI: str | None = None

    ZOOM_CLIENT_ID: str | None = None
    ZOOM_CLIENT_SECRET: str | None = None
    ZOOM_REDIRECT_URI: str | None = None

    # Refresh when the access token expires within this many seconds
    TOKEN_REFRESH_SKEW_SECONDS: int = 60

    # =================================================================
    # FETCH SETTINGS
    # =================================================================
    INTEGRATIONS_ENABLED: bool = True
    FETCH_MAX_ATTEMPTS: int = 3
    FETCH_BACKOFF_BASE_SECONDS: float = 1.0
    FETCH_BACKOFF_MAX_SECONDS: float = 30.0
    FETCH_PROVIDER_TIMEOUT_SECONDS: float = 60.0
    FETCH_DEFAULT_LOOKBACK_DAYS: int = 7
    PROVIDER_HTTP_TIMEOUT_SECONDS: float = 20.0

    # =================================================================
    # SESSION SETTINGS
    # =================================================================
    SESSION_TTL_MINUTES: int = 30
    SESSION_SWEEP_INTERVAL_SECONDS: float = 30.0

    # =================================================================
    # LLM SETTINGS
    # =================================================================
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    LLM_ECONOMY_MODEL: str = "gpt-4o-mini"
    LLM_ECONOMY_INPUT_COST_PER_MILLION: float = 0.15
    LLM_ECONOMY_OUTPUT_COST_PER_MILLION: float = 0.60
    LLM_PREMIUM_MODEL: str = "gpt-4o"
    LLM_PREMIUM_INPUT_COST_PER_MILLION: float = 2.50
    LLM_PREMIUM_OUTPUT_COST_PER_MILLION: float = 10.00
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_MAX_TOKENS: int = 4000
    LLM_MAX_RETRIES: int = 3

    # Journal entry storage service (receives finalized drafts)
    JOURNAL_API_URL: str | None = None
    JOURNAL_API_TOKEN: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # Request context
    TRUST_X_FORWARDED_FOR: bool = False
    TRUSTED_PROXY_IPS: list[str] = []

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def redirect_uri(self, provider: str) -> str:
        """
        Redirect URI registered with the provider's OAuth app.

        Uses the explicit per-provider override when set, otherwise
        derives it from PUBLIC_BASE_URL so it matches the callback route.
        """
        overrides = {
            "github": self.GITHUB_REDIRECT_URI,
            "jira": self.JIRA_REDIRECT_URI,
            "confluence": self.CONFLUENCE_REDIRECT_URI,
            "figma": self.FIGMA_REDIRECT_URI,
            "google_calendar": self.GOOGLE_CALENDAR_REDIRECT_URI,
            "google_drive": self.GOOGLE_DRIVE_REDIRECT_URI,
            "slack": self.SLACK_REDIRECT_URI,
            "teams": self.TEAMS_REDIRECT_URI,
            "onedrive": self.ONEDRIVE_REDIRECT_URI,
            "sharepoint": self.SHAREPOINT_REDIRECT_URI,
            "onenote": self.ONENOTE_REDIRECT_URI,
            "zoom": self.ZOOM_REDIRECT_URI,
        }
        if overrides.get(provider):
            return overrides[provider]
        base = self.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}/integrations/{provider}/callback"

    def encryption_keyring(self) -> dict[int, str]:
        """Parse ENCRYPTION_KEYS into {version: key}."""
        keyring: dict[int, str] = {}
        if not self.ENCRYPTION_KEYS:
            return keyring
        for entry in self.ENCRYPTION_KEYS.split(","):
            entry = entry.strip()
            if not entry:
                continue
            version, _, key = entry.partition(":")
            if not key:
                raise ValueError("ENCRYPTION_KEYS entries must look like 'version:key'")
            keyring[int(version)] = key.strip()
        return keyring

    def figma_team_ids(self) -> list[str]:
        return [t.strip() for t in self.FIGMA_TEAM_IDS.split(",") if t.strip()]

    def jwt_algorithms(self) -> list[str]:
        return [a.strip() for a in self.JWT_ALGORITHMS.split(",") if a.strip()]

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 5, "timeout": 15.0})

        return config


settings = Settings()
