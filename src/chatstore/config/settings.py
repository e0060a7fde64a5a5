# src/chatstore/config/settings.py
"""
Process settings for a chatstore application.

Settings are layered, lowest precedence first:

1. Field defaults of :class:`AppSettings`.
2. An optional TOML file.
3. Environment variables named ``<PREFIX>_<SECTION>__<KEY>``, e.g.
   ``CHATSTORE_STORAGE__PATH=/tmp/chats``.
4. An explicit overrides dictionary.

Layering is done by pydantic-settings: the TOML file is read through
``TomlConfigSettingsSource`` and the overrides are passed as init kwargs.
These settings describe the process (where to persist, how to reach the
completion service, how to log); the per-user chat configuration lives in
:class:`chatstore.config.models.ChatConfig` inside the store snapshot.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import (BaseSettings, PydanticBaseSettingsSource,
                               SettingsConfigDict, SettingsError,
                               TomlConfigSettingsSource)

from ..exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_STORE_NAME = "chat-next-web-store"


class StoreSettings(BaseModel):
    """Settings of the session store itself."""
    name: str = Field(default=DEFAULT_STORE_NAME, min_length=1, description="Key of the persisted snapshot.")
    persist_debounce_seconds: float = Field(default=0.5, ge=0, description="Delay before a commit is written out.")


class StorageSettings(BaseModel):
    """Which snapshot backend to use and where it keeps its data."""
    type: Literal["json", "volatile"] = "json"
    path: str = "~/.local/share/chatstore"


class ProviderSettings(BaseModel):
    """Connection settings for the completion service."""
    name: Literal["openai"] = "openai"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = Field(default=60.0, gt=0)


class AppSettings(BaseSettings):
    """
    Validated process settings.

    Reads ``CHATSTORE_``-prefixed environment variables with ``__`` between
    nesting levels, plus the ``toml_file`` of the model config when one is
    set. Use :func:`load_settings` to pick the file and prefix at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATSTORE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    store: StoreSettings = Field(default_factory=StoreSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    logging: Dict[str, Any] = Field(default_factory=dict, description="Section passed to configure_logging().")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        toml_settings = TomlConfigSettingsSource(settings_cls)
        if not settings_cls.model_config.get("env_prefix"):
            # Empty prefix: environment overrides disabled.
            return init_settings, toml_settings
        return init_settings, env_settings, toml_settings


def load_settings(
    config_file_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    env_prefix: Optional[str] = "CHATSTORE",
) -> AppSettings:
    """
    Load and validate process settings.

    Args:
        config_file_path: Optional path to a TOML settings file.
        overrides: Highest-precedence values, nested by section.
        env_prefix: Prefix of environment variables to read. None disables
            environment overrides.

    Returns:
        The validated AppSettings.

    Raises:
        ConfigError: If the file cannot be read or parsed, or the merged
            values fail validation.
    """
    toml_file: Optional[Path] = None
    if config_file_path:
        toml_file = Path(os.path.expanduser(config_file_path))
        if not toml_file.is_file():
            raise ConfigError(f"Settings file not found: '{toml_file}'")
        logger.debug(f"Loading settings file: {toml_file}")

    class LoadedSettings(AppSettings):
        model_config = SettingsConfigDict(
            toml_file=toml_file,
            env_prefix=f"{env_prefix.upper()}_" if env_prefix else "",
        )

    try:
        return LoadedSettings(**(overrides or {}))
    except (OSError, tomllib.TOMLDecodeError, SettingsError) as e:
        raise ConfigError(f"Failed to read settings file '{toml_file}': {e}")
    except ValidationError as e:
        raise ConfigError(f"Invalid chatstore settings: {e}")
