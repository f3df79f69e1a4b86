"""
Configuration for AnyList Notify.

Provides a pydantic-settings model with fail-fast validation and sensible
defaults. Values are layered, lowest to highest precedence:

1. Field defaults
2. YAML config file (config.yml, --config, or ANYLIST_NOTIFY_CONFIG)
3. .env file in the working directory
4. Process environment variables (upper-case field names)
"""

import logging
import os
import sys
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

log = logging.getLogger('AnyListNotify.config')

DEFAULT_CONFIG_PATH = 'config.yml'
CONFIG_PATH_ENV = 'ANYLIST_NOTIFY_CONFIG'

Priority = Literal['min', 'low', 'default', 'high', 'max', 'urgent']


class NtfyPriorities(BaseModel):
    """ntfy priority per event kind."""
    item_added: Priority = 'default'
    item_removed: Priority = 'default'
    item_checked: Priority = 'low'
    item_unchecked: Priority = 'default'
    item_modified: Priority = 'default'


class NtfyTags(BaseModel):
    """Comma-separated ntfy tags (emoji shortcodes) per event kind."""
    item_added: str = 'heavy_plus_sign,shopping_cart'
    item_removed: str = 'x,shopping_cart'
    item_checked: str = 'white_check_mark'
    item_unchecked: str = 'arrow_backward'
    item_modified: str = 'pencil2'


class AnyListNotifyConfig(BaseSettings):
    """
    AnyList Notify configuration with validation.

    Required:
        snapshot_url: URL of the bridge that serves the current list snapshot
        ntfy_topic: ntfy topic notifications are published to

    Optional tunables:
        snapshot_token: Bearer token for the snapshot bridge
        snapshot_timeout: Snapshot request timeout in seconds (default: 10, range: 1-120)
        ntfy_url: ntfy server base URL (default: https://ntfy.sh)
        ntfy_token: Access token for protected ntfy topics
        ntfy_timeout: Publish timeout in seconds (default: 10, range: 1-120)
        database_path: SQLite cache file (default: ./anylist.db)
        poll_interval: Seconds between scheduled cycles (default: 300, range: 5-86400)
        filter_own_changes: Suppress events attributed to own_user_id (default: False)
        log_level: trace, debug, info, warning or error (default: info)
        log_format: json or text (default: json)
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_nested_delimiter='__',
        extra='ignore',
        frozen=True,
    )

    # Required fields
    snapshot_url: str
    ntfy_topic: str

    # Snapshot source
    snapshot_token: Optional[str] = None
    snapshot_timeout: float = Field(default=10.0, ge=1.0, le=120.0)

    # Notification sink
    ntfy_url: str = 'https://ntfy.sh'
    ntfy_token: Optional[str] = None
    ntfy_timeout: float = Field(default=10.0, ge=1.0, le=120.0)
    ntfy_priorities: NtfyPriorities = Field(default_factory=NtfyPriorities)
    ntfy_tags: NtfyTags = Field(default_factory=NtfyTags)

    # Cache and scheduling
    database_path: str = './anylist.db'
    poll_interval: float = Field(default=300.0, ge=5.0, le=86400.0)

    # Own-change filtering
    filter_own_changes: bool = Field(
        default=False,
        description="Suppress notifications for changes attributed to own_user_id"
    )
    own_user_id: Optional[str] = None

    # Logging
    log_level: str = 'info'
    log_format: Literal['json', 'text'] = 'json'

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Return sources in priority order: env > .env > init (YAML values)."""
        return (env_settings, dotenv_settings, init_settings)

    @field_validator('snapshot_url', 'ntfy_url', mode='after')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URLs are HTTP/HTTPS."""
        if not v:
            raise ValueError('URL is required')
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')  # Normalize: remove trailing slash

    @field_validator('ntfy_topic', mode='after')
    @classmethod
    def validate_topic(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('ntfy_topic is required')
        if '/' in v:
            raise ValueError('ntfy_topic must not contain "/"')
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log_level is one of: trace, debug, info, warning, error."""
        valid = ('trace', 'debug', 'info', 'warning', 'error')
        if isinstance(v, str) and v.lower() in valid:
            return v.lower()
        raise ValueError(f"log_level must be one of {valid}, got: {v}")

    @field_validator('log_format', mode='before')
    @classmethod
    def normalize_log_format(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator('filter_own_changes', mode='before')
    @classmethod
    def validate_booleans(cls, v):
        """Ensure boolean fields are actual booleans, not truthy strings."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            lower = v.strip().lower()
            if lower in ('true', '1', 'yes'):
                return True
            if lower in ('false', '0', 'no'):
                return False
            raise ValueError(f"Invalid boolean value: {v}")
        raise ValueError(f"Expected boolean, got {type(v).__name__}")

    @property
    def own_filter_user_id(self) -> Optional[str]:
        """User id to filter on, or None when own-change filtering is off."""
        if self.filter_own_changes and self.own_user_id:
            return self.own_user_id
        return None

    def log_config(self) -> None:
        """Log configuration with masked secrets."""
        log.info(
            f"AnyList Notify config: snapshot_url={self.snapshot_url}, "
            f"snapshot_token={mask_secret(self.snapshot_token)}, "
            f"ntfy_url={self.ntfy_url}, ntfy_topic={mask_secret(self.ntfy_topic)}, "
            f"ntfy_token={mask_secret(self.ntfy_token)}, "
            f"database_path={self.database_path}, "
            f"poll_interval={self.poll_interval:.0f}s, "
            f"snapshot_timeout={self.snapshot_timeout}s, "
            f"ntfy_timeout={self.ntfy_timeout}s, "
            f"log_level={self.log_level}, log_format={self.log_format}"
        )
        if self.filter_own_changes:
            if self.own_user_id:
                log.info(f"Own-change filtering enabled for user {self.own_user_id}")
            else:
                log.warning("filter_own_changes is set but own_user_id is empty; nothing will be filtered")


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret for logging, keeping the first and last 4 characters."""
    if not value:
        return '<unset>'
    if len(value) > 8:
        return value[:4] + '****' + value[-4:]
    return '****'


def read_yaml_config(config_path: Optional[str] = None) -> dict[str, Any]:
    """
    Read the YAML config file into a dict.

    Args:
        config_path: Explicit path. Falls back to ANYLIST_NOTIFY_CONFIG, then
            config.yml in the working directory.

    Returns:
        Parsed mapping; empty when the default file does not exist.

    Raises:
        FileNotFoundError: An explicitly named file does not exist
        ValueError: The file is not a YAML mapping
    """
    explicit = config_path or os.environ.get(CONFIG_PATH_ENV)
    path = explicit or DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        if explicit:
            raise FileNotFoundError(f"Config file not found: {path}")
        return {}

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(config_path: Optional[str] = None) -> AnyListNotifyConfig:
    """
    Resolve configuration from YAML, .env and the environment.

    Raises:
        ValidationError: Resolved values are invalid or incomplete
        FileNotFoundError: An explicitly named config file does not exist
        ValueError: The config file is not a YAML mapping
    """
    return AnyListNotifyConfig(**read_yaml_config(config_path))


def format_validation_error(exc: ValidationError) -> str:
    """Flatten a ValidationError into 'field: message; ...'."""
    errors = []
    for error in exc.errors():
        field = '.'.join(str(loc) for loc in error['loc'])
        errors.append(f"{field}: {error['msg']}")
    return '; '.join(errors)


def validate_config(config_dict: dict) -> tuple[Optional[AnyListNotifyConfig], Optional[str]]:
    """
    Validate a configuration dictionary.

    Only the given values and field defaults are used; the environment and
    .env file are not consulted.

    Args:
        config_dict: Dictionary containing configuration values

    Returns:
        Tuple of (AnyListNotifyConfig, None) on success,
        or (None, error_message) on validation failure
    """
    try:
        config = AnyListNotifyConfig.model_validate(config_dict)
        return (config, None)
    except ValidationError as e:
        return (None, format_validation_error(e))


def get_config(config_path: Optional[str] = None) -> AnyListNotifyConfig:
    """Return the resolved configuration.

    Exits with a helpful error message if required settings are missing
    or invalid.
    """
    try:
        return load_config(config_path)
    except ValidationError as exc:
        _exit_validation_error(exc)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        print(f"\nConfiguration error:\n{exc}\n", file=sys.stderr)
        sys.exit(1)


def _exit_validation_error(exc: ValidationError) -> None:
    missing: list[str] = []
    for error in exc.errors():
        if error.get("type") == "missing":
            loc = error.get("loc", ())
            if loc:
                missing.append(str(loc[0]).upper())

    if missing:
        names = ", ".join(missing)
        print(
            f"\nMissing required configuration: {names}\n"
            f"Set these as environment variables or add them to {DEFAULT_CONFIG_PATH}\n"
            f"Example:\n"
            f"  export SNAPSHOT_URL=http://localhost:8080/snapshot\n"
            f"  export NTFY_TOPIC=my-shopping-list\n",
            file=sys.stderr,
        )
    else:
        print(f"\nConfiguration error:\n{format_validation_error(exc)}\n", file=sys.stderr)
    sys.exit(1)


# Re-export ValidationError for external use
__all__ = [
    'AnyListNotifyConfig',
    'NtfyPriorities',
    'NtfyTags',
    'load_config',
    'get_config',
    'validate_config',
    'read_yaml_config',
    'mask_secret',
    'ValidationError',
]
