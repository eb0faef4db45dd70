"""
Vault Configuration — Store location, keyring binding and cipher settings.

Settings come from an optional TOML file (``config.toml``) and are
overridden by environment variables:
    SECURESTORE_DATA_DIR = <directory for encrypted files>
    SECURESTORE_KEYRING_SERVICE = <OS secret store service name>
    SECURESTORE_KEYRING_ACCOUNT = <OS secret store account name>
    SECURESTORE_CIPHER_BACKEND = aesgcm | chacha20

Security Note:
    The configuration never holds key material, only where to find it.
"""
import os
import logging
import tomllib
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .crypto import CIPHER_BACKENDS

logger = logging.getLogger("securestore.vault")

APP_NAME = "securestore"

_ENV_FIELDS = {
    "SECURESTORE_DATA_DIR": "data_dir",
    "SECURESTORE_KEYRING_SERVICE": "keyring_service",
    "SECURESTORE_KEYRING_ACCOUNT": "keyring_account",
    "SECURESTORE_CIPHER_BACKEND": "cipher_backend",
}


def default_data_dir() -> Path:
    """Platform data directory for the encrypted files."""
    if os.name == "nt":
        base = os.getenv("APPDATA", os.path.expanduser("~"))
    else:
        base = os.getenv(
            "XDG_DATA_HOME", os.path.expanduser("~/.local/share")
        )
    return Path(base) / APP_NAME


def default_config_path() -> Path:
    """Platform location of ``config.toml``."""
    if os.name == "nt":
        base = os.getenv("APPDATA", os.path.expanduser("~"))
    else:
        base = os.getenv("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(base) / APP_NAME / "config.toml"


def _env_overrides() -> dict[str, str]:
    return {
        field: os.environ[name]
        for name, field in _ENV_FIELDS.items()
        if os.environ.get(name)
    }


class StoreConfig(BaseModel):
    """Validated store configuration."""

    data_dir: Path = Field(default_factory=default_data_dir)
    keyring_service: str = Field(default=APP_NAME, min_length=1)
    keyring_account: str = Field(default="data-key", min_length=1)
    cipher_backend: str = Field(default="aesgcm")
    fsync: bool = True

    model_config = {"extra": "ignore"}

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @field_validator("data_dir")
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Create StoreConfig from defaults plus environment overrides."""
        return cls(**_env_overrides())


def load_config(path: Optional[Union[str, Path]] = None) -> StoreConfig:
    """Load config from ``path`` (default location if omitted).

    A missing or blank file yields the defaults. Environment variables
    override values read from the file.

    Raises:
        ValueError: If the file is not valid TOML or holds invalid values.
    """
    path = Path(path) if path is not None else default_config_path()
    values: dict[str, Any] = {}
    if path.is_file():
        text = path.read_text(encoding="utf-8")
        if text.strip():
            try:
                values = tomllib.loads(text)
            except tomllib.TOMLDecodeError as err:
                raise ValueError(f"Invalid config file {path}: {err}") from err
            logger.debug("Loaded store config from %s", path)
    values.update(_env_overrides())
    try:
        return StoreConfig(**values)
    except ValidationError as err:
        raise ValueError(f"Invalid store configuration: {err}") from err
