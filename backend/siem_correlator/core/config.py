from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "siem-correlation-backend"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "siem_correlation"
    POSTGRES_USER: str = "soc_user"
    POSTGRES_PASSWORD: str = "soc_password"
    DB_AUTO_CREATE: bool = True

    # Auth (JWT bearer tokens issued by the identity provider)
    SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ADMIN_ROLE: str = "admin"

    # Bounded fetches per correlation run
    SECURITY_EVENT_FETCH_LIMIT: int = 500
    ENDPOINT_FETCH_LIMIT: int = 200
    ENDPOINT_EVENT_FETCH_LIMIT: int = 500
    BLOCKED_IP_FETCH_LIMIT: int = 100

    # Threat intelligence
    THREAT_INTEL_MAX_INDICATORS: int = 20
    THREAT_INTEL_TIMEOUT_SECONDS: float = 20.0
    ABUSEIPDB_API_KEY: str | None = None
    THREATFOX_API_KEY: str | None = None
    THREATFOX_API_URL: str = "https://threatfox-api.abuse.ch/api/v1/"
    URLHAUS_API_URL: str = "https://urlhaus-api.abuse.ch/v1/host/"

    # Attack narrative generation (Ollama-compatible /api/generate endpoint)
    NARRATIVE_API_URL: str | None = None
    NARRATIVE_MODEL: str = "llama3"
    NARRATIVE_TIMEOUT_SECONDS: float = 30.0
    NARRATIVE_MAX_INCIDENTS: int = 5
    NARRATIVE_MIN_FIDELITY: int = 50

    # Incident output
    INCIDENT_SAVE_MIN_FIDELITY: int = 40
    TOP_INCIDENTS_LIMIT: int = 10
    DASHBOARD_LINK: str = "/SecurityDashboard"

    # Alerting / Webhooks
    SLACK_ALERT_WEBHOOK_URL: str | None = None
    GENERIC_ALERT_WEBHOOK_URL: str | None = None

    # Full SQLAlchemy URL; takes precedence over the POSTGRES_* parts
    DATABASE_URL_OVERRIDE: str | None = None

    # Construct SQLAlchemy URL
    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
