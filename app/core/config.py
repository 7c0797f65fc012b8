from atams import AtamsBaseSettings


class Settings(AtamsBaseSettings):
    """
    Application Settings

    Inherits from AtamsBaseSettings which includes:
    - DATABASE_URL (required)
    - DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_RECYCLE, DB_POOL_TIMEOUT, DB_POOL_PRE_PING
    - ATLAS_SSO_URL, ATLAS_APP_CODE, ATLAS_ENCRYPTION_KEY, ATLAS_ENCRYPTION_IV
    - ENCRYPTION_ENABLED, ENCRYPTION_KEY, ENCRYPTION_IV (response encryption)
    - LOGGING_ENABLED, LOG_LEVEL, LOG_TO_FILE, LOG_FILE_PATH
    - CORS_ORIGINS, CORS_ALLOW_CREDENTIALS, CORS_ALLOW_METHODS, CORS_ALLOW_HEADERS
    - RATE_LIMIT_ENABLED, RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW
    - DEBUG

    All settings can be overridden via .env file or by redefining them here.
    """
    APP_NAME: str = "site-attendance"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Worker identity tokens
    AUTH_JWT_SECRET: str
    AUTH_JWT_ALG: str = "HS256"
    AUTH_JWT_ISSUER: str = "site-attendance"
    AUTH_TOKEN_EXPIRE_MINUTES: int = 720

    # Session lease
    LEASE_DURATION_SECONDS: int = 7200

    # Expiry sweeper
    SWEEPER_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: int = 60
    SWEEP_BATCH_SIZE: int = 500

    # Geofence lookup retry policy
    GEOFENCE_LOOKUP_RETRIES: int = 3
    GEOFENCE_RETRY_BASE_DELAY_MS: int = 100
    GEOFENCE_RETRY_MAX_DELAY_MS: int = 1000

    # Upper bound for a single store statement (PostgreSQL only)
    STORE_STATEMENT_TIMEOUT_MS: int = 5000


settings = Settings()
