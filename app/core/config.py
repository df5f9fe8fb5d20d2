from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    DATABASE_URL: str

    ENV: str
    JWT_SECRET: str
    JWT_ISSUER: str

    ADMIN_API_KEY: str | None = None

    PRICE_BASIC_CENTS: int = 1000
    PRICE_PRO_CENTS: int = 2000
    CURRENCY: str = "MXN"

    DOWNLOAD_TOKEN_TTL_MIN: int = 240
    PROCESSING_STALE_MIN: int = 30
    PIPELINE_WORKERS: int = 4
    MAX_PROOF_BYTES: int = 5 * 1024 * 1024

    PUBLIC_BASE_URL: str = "http://localhost:8000"
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # local | remote
    STORAGE_MODE: str = "local"
    STORAGE_LOCAL_DIR: str = "storage"
    PROOF_LOCAL_DIR: str = "proofs"
    S3_BUCKET: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str | None = None
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None
    SIGNED_URL_TTL_SECONDS: int = 7 * 24 * 3600

    # console | ses
    NOTIFIER: str = "console"
    EMAIL_FROM: str = "Reports <no-reply@example.com>"
    SES_REGION: str = "us-east-1"

    STRIPE_API_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    FRONTEND_URL: str | None = None

    @property
    def is_prod(self) -> bool:
        return self.ENV.lower() == "prod"

    @property
    def storage_is_remote(self) -> bool:
        return self.STORAGE_MODE.lower() == "remote"


settings = Settings()
