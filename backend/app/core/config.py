from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    ENV: str = "prod"

    DATABASE_URL: str

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_POOL_RECYCLE_SECONDS: int = 1800

    API_WORKERS: int = 2
    ALLOWED_HOSTS: str = "localhost,127.0.0.1"
    SECURITY_HEADERS_ENABLED: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str | None = None

    # Relic community API
    RELIC_BASE_URL: str = "https://dow-api.reliclink.com"
    RELIC_TITLE: str = "dow1-de"
    RELIC_TIMEOUT_SECONDS: float = 15.0
    RELIC_PAGE_SIZE: int = 100
    RELIC_PAGE_CONCURRENCY: int = 5
    RELIC_PAGE_DELAY_SECONDS: float = 0.1
    RELIC_ROWS_PER_BOARD: int = 500
    RELIC_CONNECTOR_LIMIT: int = 32
    NAME_BATCH_SIZE: int = 25
    NAME_BATCH_DELAY_SECONDS: float = 0.12

    # Steam
    STEAM_APP_ID: str = "3556750"
    STEAM_API_BASE_URL: str = "https://api.steampowered.com"
    STEAM_TIMEOUT_SECONDS: float = 10.0

    # Auth0
    AUTH0_DOMAIN: str | None = None
    AUTH0_AUDIENCE: str | None = None
    AUTH0_ALGORITHM: str = "RS256"
    AUTH0_JWT_SECRET: str | None = None
    AUTH0_JWKS_TIMEOUT_SECONDS: int = 10

    # Stripe
    STRIPE_API_BASE_URL: str = "https://api.stripe.com/v1"
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_PRICE_ID: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_WEBHOOK_MAX_AGE_SECONDS: int = 300
    STRIPE_TRIAL_DAYS: int = 7
    STRIPE_TIMEOUT_SECONDS: int = 20
    SITE_BASE_URL: str = "http://localhost:3000"
    # Comma separated; defaults to the origin of SITE_BASE_URL
    CORS_ALLOWED_ORIGINS: str = ""

    # Advanced stats overrides
    FORCE_ADVANCED_STATS: bool = False
    FORCE_ADVANCED_STATS_PROFILES: str = ""

settings = Settings()
