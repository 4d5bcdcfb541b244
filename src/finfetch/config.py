"""
Configuration management using pydantic-settings.

Loads configuration from environment variables, a .env file and an optional
YAML file. Validates that every source with items to fetch has its API key
and provides typed access to settings.

Precedence (highest first): init arguments, environment, .env, YAML.

The YAML file is ``config.yaml`` in the working directory unless
FINFETCH_CONFIG points elsewhere. Its top-level keys are the setting names,
in any case:

    ethereum_wallets:
      - "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"
    stock_symbols: [AAPL, GOOGL]
    properties:
      - address: "5500 Grand Lake Dr, San Antonio, TX 78244"
        property_type: Single Family
        bedrooms: 3
        bathrooms: 2
        square_footage: 1878
"""

from __future__ import annotations

import os
from contextvars import ContextVar
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from finfetch.exceptions import ConfigurationError

CONFIG_PATH_ENV = "FINFETCH_CONFIG"
DEFAULT_CONFIG_PATH = Path("config.yaml")

# Set only while load_settings builds settings from an explicit file
_config_path_override: ContextVar[Path | None] = ContextVar("config_path_override", default=None)


class PropertyConfig(BaseModel):
    """A property to value with Rentcast."""

    address: str = Field(..., min_length=1)
    property_type: str = "Single Family"
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: float = Field(default=0.0, ge=0)
    square_footage: int = Field(default=0, ge=0)


def config_file_path() -> Path:
    """Path of the YAML config file (which may not exist)."""
    override = _config_path_override.get()
    if override is not None:
        return override
    configured = os.environ.get(CONFIG_PATH_ENV)
    return Path(configured) if configured else DEFAULT_CONFIG_PATH


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Settings source reading the optional YAML config file."""

    def __init__(self, settings_cls: type[BaseSettings], path: Path | None = None) -> None:
        super().__init__(settings_cls)
        self.path = path or config_file_path()
        self._data = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            with self.path.open(encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in config file {self.path}", context={"path": str(self.path)}
            ) from e
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Config file {self.path} must contain a mapping",
                context={"path": str(self.path)},
            )
        return {str(k).upper(): v for k, v in raw.items()}

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                values[key] = value
        return values


class Settings(BaseSettings):
    """Application settings.

    API keys (each required only when its source has items):
        ETHERSCAN_API_KEY: Etherscan key, for ETHEREUM_WALLETS
        ALPHAVANTAGE_API_KEY: Alpha Vantage key, for STOCK_SYMBOLS
        RENTCAST_API_KEY: Rentcast key, for PROPERTIES

    Items (at least one required):
        ETHEREUM_WALLETS: Wallet addresses (comma-separated in env)
        STOCK_SYMBOLS: Ticker symbols (comma-separated in env)
        PROPERTIES: Property descriptions (JSON list in env)

    Optional:
        *_BASE_URL: Provider endpoints, production by default
        FETCH_TIMEOUT_SECONDS: Deadline for the whole fetch pass
        RATE_LIMITS_ENABLED: Apply the per-source call rates
        MAX_RETRIES / RETRY_INITIAL_BACKOFF / RETRY_MAX_BACKOFF: Retry policy
        LOG_LEVEL: Logging level
        LOG_FILE: JSON-lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API keys
    ETHERSCAN_API_KEY: str | None = Field(default=None, description="Etherscan API key")
    ALPHAVANTAGE_API_KEY: str | None = Field(
        default=None, description="Alpha Vantage API key"
    )
    RENTCAST_API_KEY: str | None = Field(default=None, description="Rentcast API key")

    # Endpoints (overridable for testing)
    ETHERSCAN_BASE_URL: str = Field(
        default="https://api.etherscan.io/v2/api", description="Etherscan v2 endpoint"
    )
    ALPHAVANTAGE_BASE_URL: str = Field(
        default="https://www.alphavantage.co/query", description="Alpha Vantage endpoint"
    )
    RENTCAST_BASE_URL: str = Field(
        default="https://api.rentcast.io/v1", description="Rentcast API root"
    )

    # Items to fetch
    ETHEREUM_WALLETS: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="Ethereum wallet addresses"
    )
    STOCK_SYMBOLS: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="Stock ticker symbols"
    )
    PROPERTIES: list[PropertyConfig] = Field(
        default_factory=list, description="Properties to value"
    )

    # Run behaviour
    FETCH_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0.0, description="Deadline for a fetch pass in seconds"
    )
    RATE_LIMITS_ENABLED: bool = Field(
        default=True, description="Throttle calls per source"
    )
    MAX_RETRIES: int = Field(default=3, ge=0, le=10, description="Retries per request")
    RETRY_INITIAL_BACKOFF: float = Field(
        default=1.0, ge=0.0, description="First retry delay in seconds"
    )
    RETRY_MAX_BACKOFF: float = Field(
        default=10.0, ge=0.0, description="Maximum retry delay in seconds"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON-lines log file")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("ETHEREUM_WALLETS", "STOCK_SYMBOLS", mode="before")
    @classmethod
    def split_comma_list(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("ETHEREUM_WALLETS", "STOCK_SYMBOLS")
    @classmethod
    def strip_items(cls, v: list[str]) -> list[str]:
        return [item.strip() for item in v if item.strip()]

    @model_validator(mode="after")
    def validate_sources(self) -> Settings:
        """Ensure there is something to fetch and each used source has a key."""
        if not self.item_count:
            raise ValueError(
                "No items configured: set at least one of "
                "ETHEREUM_WALLETS, STOCK_SYMBOLS or PROPERTIES"
            )

        missing: list[str] = []
        if self.ETHEREUM_WALLETS and not self.ETHERSCAN_API_KEY:
            missing.append("ETHERSCAN_API_KEY")
        if self.STOCK_SYMBOLS and not self.ALPHAVANTAGE_API_KEY:
            missing.append("ALPHAVANTAGE_API_KEY")
        if self.PROPERTIES and not self.RENTCAST_API_KEY:
            missing.append("RENTCAST_API_KEY")
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        if self.RETRY_MAX_BACKOFF < self.RETRY_INITIAL_BACKOFF:
            raise ValueError("RETRY_MAX_BACKOFF must be >= RETRY_INITIAL_BACKOFF")
        return self

    @property
    def item_count(self) -> int:
        """Number of fetch units this configuration produces."""
        return len(self.ETHEREUM_WALLETS) + len(self.STOCK_SYMBOLS) + len(self.PROPERTIES)

    @property
    def configured_sources(self) -> list[str]:
        """Sources that have at least one item."""
        sources: list[str] = []
        if self.ETHEREUM_WALLETS:
            sources.append("etherscan")
        if self.STOCK_SYMBOLS:
            sources.append("alphavantage")
        if self.PROPERTIES:
            sources.append("rentcast")
        return sources

    def redacted_display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings with API keys redacted for display."""
        def redact(value: str | None) -> str | None:
            if value is None:
                return None
            return f"{value[:4]}...{value[-4:]}" if len(value) > 12 else "***"

        return {
            "ETHERSCAN_API_KEY": redact(self.ETHERSCAN_API_KEY),
            "ALPHAVANTAGE_API_KEY": redact(self.ALPHAVANTAGE_API_KEY),
            "RENTCAST_API_KEY": redact(self.RENTCAST_API_KEY),
            "ETHERSCAN_BASE_URL": self.ETHERSCAN_BASE_URL,
            "ALPHAVANTAGE_BASE_URL": self.ALPHAVANTAGE_BASE_URL,
            "RENTCAST_BASE_URL": self.RENTCAST_BASE_URL,
            "ETHEREUM_WALLETS": ", ".join(self.ETHEREUM_WALLETS) or None,
            "STOCK_SYMBOLS": ", ".join(self.STOCK_SYMBOLS) or None,
            "PROPERTIES": "; ".join(p.address for p in self.PROPERTIES) or None,
            "FETCH_TIMEOUT_SECONDS": self.FETCH_TIMEOUT_SECONDS,
            "RATE_LIMITS_ENABLED": self.RATE_LIMITS_ENABLED,
            "MAX_RETRIES": self.MAX_RETRIES,
            "RETRY_INITIAL_BACKOFF": self.RETRY_INITIAL_BACKOFF,
            "RETRY_MAX_BACKOFF": self.RETRY_MAX_BACKOFF,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment, .env and YAML.

    Raises:
        ValidationError: If required settings are missing or invalid.
        ConfigurationError: If the YAML file cannot be parsed.
    """
    return Settings()


def load_settings(config_path: Path | None = None) -> Settings:
    """Build fresh settings, reading YAML from config_path when given.

    The path applies to this call only. FINFETCH_CONFIG and the cached
    settings are left untouched.

    Raises:
        ValidationError: If required settings are missing or invalid.
        ConfigurationError: If the YAML file cannot be parsed.
    """
    token = _config_path_override.set(config_path)
    try:
        return Settings()
    finally:
        _config_path_override.reset(token)


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
