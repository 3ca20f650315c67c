"""Storage configuration.

Configuration is a YAML file with a ``storage:`` mapping (or the same keys
at top level), overridden by ``BLOBSYNC_*`` environment variables. Azure
credentials are never read from the file: they come only from
``AZURE_STORAGE_CONNECTION_STRING``.
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from .errors import ConfigError

CONFIG_FILE = ".blobsync.yaml"
CONNECTION_STRING_ENV = "AZURE_STORAGE_CONNECTION_STRING"

PROVIDERS = ("azure", "fs")

_ENV_OVERRIDES = {
    "BLOBSYNC_PROVIDER": "provider",
    "BLOBSYNC_CONTAINER": "container",
    "BLOBSYNC_PREFIX": "prefix",
}


class StoreConfig(BaseModel):
    """
    Where blobs live and how to move them.

    - provider "azure": container is the Azure container name
    - provider "fs": container is the root directory of the local mirror
    """
    provider: str = "fs"
    container: str = ""
    prefix: str = ""                          # Optional key prefix (azure)
    page_size: int = 1000                     # Listing page size
    max_concurrency: int = 10                 # Connections per transfer
    block_size: int = 64 * 1024 * 1024        # Upload/download block size
    create_container: bool = True

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in PROVIDERS:
            raise ValueError(f"Unsupported storage provider {v!r} (expected one of {', '.join(PROVIDERS)})")
        return v

    @model_validator(mode="after")
    def validate_container(self):
        if not self.container:
            what = "directory path" if self.provider == "fs" else "container name"
            raise ValueError(f"storage.container ({what}) is required for provider '{self.provider}'")
        if self.page_size < 1 or self.max_concurrency < 1 or self.block_size < 1:
            raise ValueError("page_size, max_concurrency and block_size must be positive")
        return self


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}")
    storage = data.get("storage", data)
    if not isinstance(storage, dict):
        raise ConfigError(f"Expected 'storage' to be a mapping in {path}")
    return dict(storage)


def load_config(path: Optional[Path] = None) -> StoreConfig:
    """
    Load storage configuration.

    Args:
        path: YAML file. Defaults to ./.blobsync.yaml when it exists;
            otherwise only environment variables are used.

    Returns:
        Validated StoreConfig

    Raises:
        ConfigError: If the file is unreadable or the result is invalid
    """
    values: dict = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        values.update(_read_yaml(path))
    elif Path(CONFIG_FILE).exists():
        values.update(_read_yaml(Path(CONFIG_FILE)))

    for env_var, field in _ENV_OVERRIDES.items():
        if os.environ.get(env_var):
            values[field] = os.environ[env_var]

    try:
        return StoreConfig(**values)
    except ValidationError as e:
        errors = "; ".join(err["msg"] for err in e.errors())
        raise ConfigError(f"Invalid storage configuration: {errors}") from e
