from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()

ADA_HANDLE_POLICY_ID = "f0ff48bbb7bbe9d59a40f1ce90e9e9d0ff5002ec48f232b49ca0fb9a"


class Settings(BaseSettings):
    PROJECT_NAME: str = "Littlefish Foundation API"
    # Shown to the user inside the wallet signing prompt
    SERVICE_NAME: str = "Littlefish Foundation"
    # Application settings
    ENVIRONMENT: str = "development"  # development | production
    PORT: int = 5000
    HOST: str = "127.0.0.1"
    VERSION: str = "0.1.0"
    DOC_PASSWORD: str | None = None
    LOG_LEVEL: str = "INFO"

    # Session cookie
    SESSION_SECRET_KEY: str = "littlefish-dev-session-secret"
    SESSION_MAX_AGE: int = 7 * 24 * 3600  # 7 days

    # SSL settings
    SSL_KEY: str | None = None
    SSL_CERT: str | None = None

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./littlefish.db"
    SEED_DEMO_DATA: bool = True
    BCRYPT_ROUNDS: int = 12

    # Wallet authentication
    CHALLENGE_TTL_SECONDS: int = 300  # 5 minutes
    CARDANO_NETWORK: str = "mainnet"  # mainnet | preprod | preview

    # BLOCKFROST
    BLOCKFROST_API_KEY: str | None = None
    INDEXER_TIMEOUT_SECONDS: float = 10.0
    INDEXER_DEMO_MODE: bool = False
    HANDLE_POLICY_ID: str = ADA_HANDLE_POLICY_ID

    # Redis settings
    REDIS_HOST: str | None = None
    REDIS_PORT: int | None = 6379
    REDIS_MAX_CONNECTIONS: int | None = 10
    REDIS_SSL: bool | None = False
    # Memory cache settings
    MEMORY_CACHE_MAX_SIZE: int = 64 * 1024 * 1024  # 64MB in bytes
    REDIS_RECHECK_INTERVAL: int = 30 * 60  # 30 minutes in seconds

    # Client SDK
    API_BASE_URL: str = "http://127.0.0.1:5000"
    WALLET_BACKEND: str = "ephemeral"  # keyfile | ephemeral | none
    WALLET_KEYS_PATH: str | None = None
    WALLET_PROMPT_TIMEOUT_SECONDS: float = 120.0

    # Debug settings
    DEBUG: bool = False

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"


# Instantiate the settings
settings = Settings()
