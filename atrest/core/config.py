from typing import Literal, Optional

from pydantic_settings import BaseSettings  # type: ignore

# Load .env file if it exists
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass


class Settings(BaseSettings):
    # Core
    MODE: Literal["dev", "prod", "test"] = "dev"

    # Security
    # 64 hex chars or base64url of 32 bytes. Never logged.
    DEFAULT_KEY: Optional[str] = None

    # Delivery
    CONTENT_DISPOSITION: Literal["attachment", "inline"] = "attachment"
    # "stored" keeps the on-disk name (with .enc), "original" strips it
    DISPOSITION_FILENAME: Literal["stored", "original"] = "stored"
    MIN_DOWNLOAD_BANDWIDTH: Optional[int] = None  # bytes/sec
    EMIT_CONTENT_LENGTH: bool = False

    # Streaming
    CHUNK_SIZE: int = 64 * 1024

    # Storage
    STORAGE_ROOT: str = "./assets"

    model_config = {
        "env_prefix": "ATREST_",
        "case_sensitive": True,
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def is_test_mode(self) -> bool:
        return self.MODE == "test"


settings = Settings()
