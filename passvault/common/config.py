"""Process-wide settings loaded from the environment (.env supported)."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()

# Historical deployment salt, kept so existing vaults still verify
DEFAULT_SALT_HEX = "c9367899523eeaf2"
DEFAULT_PORT = 6433
DEFAULT_WORKERS = 5
MIN_ITERATIONS = 100_000


class Settings(BaseModel):
    """Server/client configuration shared by every module of the process"""
    host: str = "localhost"
    port: int = DEFAULT_PORT
    vault_root: Path = Path("./")
    workers: int = DEFAULT_WORKERS
    salt: bytes = bytes.fromhex(DEFAULT_SALT_HEX)
    iterations: int = MIN_ITERATIONS
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not (0 <= value <= 65535):
            raise ValueError(f"Port {value} is out of range (0-65535)")
        return value

    @field_validator("workers")
    @classmethod
    def _check_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("At least one worker is required")
        return value

    @field_validator("salt")
    @classmethod
    def _check_salt(cls, value: bytes) -> bytes:
        if not value:
            raise ValueError("Salt must not be empty")
        return value

    @field_validator("iterations")
    @classmethod
    def _check_iterations(cls, value: int) -> int:
        if value < MIN_ITERATIONS:
            raise ValueError(f"Key derivation needs at least {MIN_ITERATIONS} iterations")
        return value


def load_settings(**overrides) -> Settings:
    """
    Build settings from environment variables.

    Args:
        **overrides: Values taking precedence over the environment
            (None values are ignored, so argparse results can be passed as-is)

    Returns:
        Settings instance
    """
    values = {
        'host': os.getenv('SERVER_HOST', 'localhost'),
        'port': int(os.getenv('SERVER_PORT', DEFAULT_PORT)),
        'vault_root': Path(os.getenv('PASSVAULT_VAULT', './')),
        'workers': int(os.getenv('PASSVAULT_WORKERS', DEFAULT_WORKERS)),
        'salt': bytes.fromhex(os.getenv('PASSVAULT_SALT', DEFAULT_SALT_HEX)),
        'iterations': int(os.getenv('PASSVAULT_ITERATIONS', MIN_ITERATIONS)),
        'log_level': os.getenv('LOG_LEVEL', 'INFO'),
        'log_file': os.getenv('LOG_FILE') or None,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


_settings: Optional[Settings] = None


def init_settings(settings: Settings) -> Settings:
    """Install the settings used by the whole process."""
    global _settings
    _settings = settings
    return _settings


def get_settings() -> Settings:
    """Return the installed settings, loading them from the environment on first use."""
    if _settings is None:
        return init_settings(load_settings())
    return _settings


def reset_settings() -> None:
    """Forget the installed settings (next get_settings() reloads)."""
    global _settings
    _settings = None
