"""Service configuration management for the Tool Broker API."""

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from .models import RootDescriptor, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_PORT = 12717

# Served by the application itself.
RESERVED_PATHS = {"/", "/health"}

# Level names understood by both logging and uvicorn.
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def normalize_log_level(level: str) -> str:
    """Uppercase a logging level name and check that it is supported.

    Raises:
        ValueError: If the level is not one of LOG_LEVELS
    """
    level = level.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}; expected one of {', '.join(LOG_LEVELS)}")
    return level


class BrokerConfig(BaseSettings):
    """Tool Broker configuration.

    Values are read from (highest priority first) ``BROKER_*`` environment
    variables, a ``.env`` file, then keyword arguments, which is where
    :class:`ConfigManager` passes the contents of a config file.
    """

    model_config = {"env_prefix": "BROKER_", "env_file": ".env", "case_sensitive": False}

    host: str = Field(default="127.0.0.1", description="API host address")
    port: int = Field(default=DEFAULT_PORT, description="API port")
    log_level: str = Field(default="INFO", description="Logging level")
    config_file: Optional[str] = Field(default=None, description="JSON or TOML roots/tools file")
    cors_allowed_origins: List[str] = Field(default_factory=list, description="CORS origins")

    default_root: str = Field(default=".", description="Root used when a request names none")
    roots: List[RootDescriptor] = Field(default_factory=list, description="Allow-listed roots")
    tools: Dict[str, ToolDefinition] = Field(default_factory=dict, description="Tool table")

    output_character_limit: PositiveInt = Field(
        default=100_000, description="Maximum characters kept from a tool's stdout"
    )
    output_drop_line_limit: PositiveInt = Field(
        default=1_000, description="Lines longer than this are dropped from stdout"
    )

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase and reject unknown names."""
        return normalize_log_level(v)

    @field_validator("tools", mode="before")
    @classmethod
    def inject_tool_names(cls, v: Any) -> Any:
        """Allow the tool table to omit ``name``; the mapping key supplies it."""
        if not isinstance(v, dict):
            return v
        named = {}
        for key, tool in v.items():
            if isinstance(tool, dict):
                tool = {"name": key, **tool}
            named[key] = tool
        return named

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings


class ConfigManager:
    """Loads the broker configuration once at startup."""

    def __init__(self):
        self._config: Optional[BrokerConfig] = None
        self._config_file_path: Optional[str] = None

    def load_config(self, config_file: Optional[str] = None) -> BrokerConfig:
        """
        Load configuration from a config file and the environment.

        Args:
            config_file: Optional path to a JSON or TOML file. Falls back to
                ``BROKER_CONFIG_FILE`` when omitted.

        Returns:
            Loaded configuration instance

        Raises:
            ValueError: If the file cannot be parsed or the tables are inconsistent
        """
        if config_file is None:
            config_file = BrokerConfig().config_file

        file_values: Dict[str, Any] = {}
        if config_file:
            file_values = self._load_from_file(config_file)
            file_values["config_file"] = config_file

        config = BrokerConfig(**self._flatten_limits(file_values))
        self._validate_config(config)

        self._config = config
        logger.debug(
            f"Loaded configuration: {len(config.roots)} roots, {len(config.tools)} tools, "
            f"default root {config.default_root!r}"
        )
        return config

    def _load_from_file(self, config_file: str) -> Dict[str, Any]:
        """Load configuration values from JSON or TOML files.

        Args:
            config_file: Path to the configuration file provided by the user.

        Returns:
            Parsed key/value pairs for :class:`BrokerConfig`.

        Raises:
            ValueError: If the file is missing or cannot be parsed as JSON or TOML.
        """

        config_path = Path(config_file)
        self._config_file_path = str(config_path)

        if not config_path.is_file():
            raise ValueError(f"Config file not found: {config_file}")

        try:
            content = config_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ValueError(f"Error reading config file {config_file}: {exc}") from exc

        suffix = config_path.suffix.lower()
        if suffix == ".json":
            return self._parse_json_content(content, config_file)
        if suffix == ".toml":
            return self._parse_toml_content(content, config_file)

        try:
            return self._parse_json_content(content, config_file)
        except ValueError:
            return self._parse_toml_content(content, config_file)

    @staticmethod
    def _parse_json_content(content: str, config_file: str) -> Dict[str, Any]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in config file {config_file}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_file} must contain an object")
        return data

    @staticmethod
    def _parse_toml_content(content: str, config_file: str) -> Dict[str, Any]:
        try:
            return tomllib.loads(content)
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"Invalid TOML in config file {config_file}: {exc}") from exc

    @staticmethod
    def _flatten_limits(values: Dict[str, Any]) -> Dict[str, Any]:
        """Move a ``limits`` table onto the top-level limit fields."""
        values = dict(values)
        limits = values.pop("limits", None) or {}
        if not isinstance(limits, dict):
            raise ValueError("'limits' must be a table of output limits")
        for key in ("output_character_limit", "output_drop_line_limit"):
            if key in limits:
                values.setdefault(key, limits[key])
        return values

    def _validate_config(self, config: BrokerConfig) -> None:
        """Validate the root and tool tables for consistency."""
        root_paths = [root.path for root in config.roots]
        if len(root_paths) != len(set(root_paths)):
            raise ValueError("Root paths must be unique")

        seen_paths: Dict[str, str] = {}
        for name, tool in config.tools.items():
            if not tool.path.startswith("/") or tool.path in RESERVED_PATHS:
                raise ValueError(f"Tool '{name}' has invalid path {tool.path!r}")
            if tool.path in seen_paths:
                raise ValueError(
                    f"Tools '{seen_paths[tool.path]}' and '{name}' share path {tool.path!r}"
                )
            seen_paths[tool.path] = name
            if not tool.lists_roots and not tool.command:
                raise ValueError(f"Tool '{name}' takes parameters but has no command")

        if config.output_drop_line_limit > config.output_character_limit:
            logger.warning(
                f"output_drop_line_limit ({config.output_drop_line_limit}) exceeds "
                f"output_character_limit ({config.output_character_limit})"
            )

    @property
    def config(self) -> Optional[BrokerConfig]:
        """Get the current loaded configuration."""
        return self._config
