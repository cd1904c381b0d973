"""
Configuration for the reconciliation workflow engine.
"""

# Load environment variables FIRST
from dotenv import load_dotenv
load_dotenv()

import os
from decimal import Decimal
from typing import Optional


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


class Config:
    """Base configuration."""

    # Approval routing
    APPROVAL_THRESHOLD: Decimal = Decimal(os.getenv("APPROVAL_THRESHOLD", "10.00"))  # Adjustments above this need approval
    WRITE_OFF_LIMIT: Decimal = Decimal(os.getenv("WRITE_OFF_LIMIT", "0.50"))  # Advisory only, never changes routing

    # Versioning
    MAX_UNDO_STACK: int = int(os.getenv("MAX_UNDO_STACK", "20"))
    SNAPSHOT_RETENTION_LIMIT: Optional[int] = _optional_int("SNAPSHOT_RETENTION_LIMIT")  # None keeps every snapshot

    # Working date
    DATE_WARNING_THRESHOLD_DAYS: int = int(os.getenv("DATE_WARNING_THRESHOLD_DAYS", "10"))

    # Persistence sink (empty disables the JSON file sink)
    PERSISTENCE_PATH: str = os.getenv("PERSISTENCE_PATH", "")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: str = os.getenv("LOG_FILE", "")

    # API Configuration
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    API_DEBUG: bool = os.getenv("API_DEBUG", "false").lower() == "true"
    DEFAULT_OPERATOR_ID: str = os.getenv("DEFAULT_OPERATOR_ID", "u0")

    def validate(self) -> None:
        """Validate configuration."""
        if self.APPROVAL_THRESHOLD < 0:
            raise ValueError("APPROVAL_THRESHOLD must not be negative")

        if self.WRITE_OFF_LIMIT < 0:
            raise ValueError("WRITE_OFF_LIMIT must not be negative")

        if self.WRITE_OFF_LIMIT > self.APPROVAL_THRESHOLD:
            raise ValueError("WRITE_OFF_LIMIT must not exceed APPROVAL_THRESHOLD")

        if self.MAX_UNDO_STACK < 1:
            raise ValueError(f"Invalid MAX_UNDO_STACK: {self.MAX_UNDO_STACK}")

        if self.SNAPSHOT_RETENTION_LIMIT is not None and self.SNAPSHOT_RETENTION_LIMIT < 1:
            raise ValueError(f"Invalid SNAPSHOT_RETENTION_LIMIT: {self.SNAPSHOT_RETENTION_LIMIT}")

        if self.LOG_LEVEL.upper() not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Invalid LOG_LEVEL: {self.LOG_LEVEL}")


class DevelopmentConfig(Config):
    """Development configuration."""
    LOG_LEVEL = "DEBUG"
    API_DEBUG = True


class ProductionConfig(Config):
    """Production configuration."""
    LOG_LEVEL = "INFO"
    API_DEBUG = False


class TestConfig(Config):
    """Test configuration."""
    __test__ = False  # keep pytest from collecting this class

    LOG_LEVEL = "DEBUG"
    LOG_FILE = ""
    PERSISTENCE_PATH = ""
    SNAPSHOT_RETENTION_LIMIT = None


def get_config(env: str = None) -> Config:
    """Get configuration based on environment."""
    if env is None:
        env = os.getenv("ENV", "development").lower()

    if env == "production":
        config = ProductionConfig()
    elif env == "test":
        config = TestConfig()
    else:
        config = DevelopmentConfig()

    # Validate configuration on creation
    config.validate()
    return config
