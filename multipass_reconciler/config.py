"""
Configuration management for the reconciler.

Settings are read from MPR_* environment variables (or a .env file) and
only seed the immutable per-instance configuration objects below. A
reconciler never consults the settings object after it is built.
"""
from dataclasses import dataclass
from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict

from multipass_reconciler.utils.sizeparse import parse_size
from multipass_reconciler.utils.timeparse import parse_duration

DEFAULT_BINARY = "multipass"


class Settings(BaseSettings):
    """
    Application settings.

    These settings are loaded from environment variables.
    """

    # External tool
    BINARY_PATH: str = DEFAULT_BINARY
    TIMEOUT_GRACE_SECONDS: float = 30.0

    # Validation limits
    MAX_NAME_LENGTH: int = 255
    MAX_CPUS: int = 128
    MIN_MEMORY: str = "256M"
    MAX_MEMORY: str = "256G"
    MIN_DISK: str = "1024M"
    MAX_DISK: str = "2048G"
    MAX_TIMEOUT: str = "24h"
    MAX_CLOUD_INIT_PATH: int = 1000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_prefix="MPR_",
        extra="ignore",
    )


@dataclass(frozen=True)
class ExecutorConfig:
    """How to reach the multipass binary."""

    binary_path: str = DEFAULT_BINARY
    timeout_grace_seconds: float = 30.0

    def __post_init__(self):
        if not self.binary_path:
            object.__setattr__(self, "binary_path", DEFAULT_BINARY)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExecutorConfig":
        return cls(
            binary_path=settings.BINARY_PATH,
            timeout_grace_seconds=settings.TIMEOUT_GRACE_SECONDS,
        )


@dataclass(frozen=True)
class ValidationLimits:
    """Bounds enforced on a VmSpec before anything is launched."""

    max_name_length: int = 255
    max_cpus: int = 128
    min_memory_bytes: int = parse_size("256M")
    max_memory_bytes: int = parse_size("256G")
    min_disk_bytes: int = parse_size("1024M")
    max_disk_bytes: int = parse_size("2048G")
    max_timeout: timedelta = timedelta(hours=24)
    max_cloud_init_path: int = 1000

    @classmethod
    def from_settings(cls, settings: Settings) -> "ValidationLimits":
        return cls(
            max_name_length=settings.MAX_NAME_LENGTH,
            max_cpus=settings.MAX_CPUS,
            min_memory_bytes=parse_size(settings.MIN_MEMORY),
            max_memory_bytes=parse_size(settings.MAX_MEMORY),
            min_disk_bytes=parse_size(settings.MIN_DISK),
            max_disk_bytes=parse_size(settings.MAX_DISK),
            max_timeout=parse_duration(settings.MAX_TIMEOUT),
            max_cloud_init_path=settings.MAX_CLOUD_INIT_PATH,
        )


DEFAULT_LIMITS = ValidationLimits()


def load_settings() -> Settings:
    """Build a fresh Settings object from the current environment."""
    return Settings()
