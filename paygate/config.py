from pydantic_settings import BaseSettings
from typing import Literal, Optional

class Settings(BaseSettings):
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    env: str = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    database_url: str

    razorpay_key_id: str
    razorpay_key_secret: str
    razorpay_webhook_secret: str
    razorpay_api_base: str = "https://api.razorpay.com/v1"
    provider_timeout_seconds: float = 30.0

    # private RSA key (PEM) used to sign payment proofs
    rs_priv_pem: Optional[str] = None
    proof_ttl_seconds: int = 300

    service_api_key: str
    frontend_base: str = "https://your-frontend.com"

    callback_timeout_seconds: float = 10.0

    # redelivery of proofs left in PENDING_WEBHOOK
    retry_enabled: bool = True
    retry_interval_seconds: int = 60
    retry_base_seconds: int = 30
    retry_max_backoff_seconds: int = 3600
    retry_batch_size: int = 50
    retry_concurrency: int = 10

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
