from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str
    log_level: str = "INFO"

    # Duplicate detection
    duplicate_min_score: int = 70
    scan_page_size: int = 1000

    # Hardcover enrichment queue
    hardcover_token: Optional[str] = None
    hardcover_api_url: str = "https://api.hardcover.app/v1/graphql"
    hardcover_rate_limit: float = 2.0  # requests per second
    hardcover_timeout: float = 30.0
    claim_batch_size: int = 100
    stale_claim_minutes: int = 30

    model_config = {"env_file": "../.env", "env_file_encoding": "utf-8"}


settings = Settings()
