"""TOML configuration loader for gatedag."""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Literal, cast

from gatedag.kernel.config.models import (
    EnvironmentConfig,
    GateDAGConfig,
    LoggingConfig,
    SchedulerConfig,
    TagStoreConfig,
)
from gatedag.kernel.exceptions import ConfigurationError, ValidationError
from gatedag.kernel.logging import get_logger

_TRUTHY_VALUES = frozenset({"true", "1", "yes", "on", "enabled"})
_FALSY_VALUES = frozenset({"false", "0", "no", "off", "disabled"})

logger = get_logger(__name__)


def _parse_bool_env(value: str) -> bool:
    """Parse a boolean environment variable value.

    Raises
    ------
    ValueError
        If value is not a recognized boolean string
    """
    normalized = value.lower().strip()
    if normalized in _TRUTHY_VALUES:
        return True
    if normalized in _FALSY_VALUES:
        return False
    expected = sorted(_TRUTHY_VALUES | _FALSY_VALUES)
    raise ValueError(f"Invalid boolean value: {value!r}. Expected one of: {expected}")


class ConfigLoader:
    """Loads gatedag configuration from TOML files."""

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def load_from_toml(self, path: str | Path | None = None) -> GateDAGConfig:
        """Load configuration from a TOML file.

        Parameters
        ----------
        path : str | Path | None
            Path to TOML file. If None, searches for gatedag.toml or a
            pyproject.toml with a ``[tool.gatedag]`` table.

        Raises
        ------
        FileNotFoundError
            If no configuration file is found
        ConfigurationError
            If the file is not valid TOML or has invalid values
        """
        config_path = self._find_config_file(path)
        logger.info("Loading configuration from {path}", path=config_path)

        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(str(config_path), f"invalid TOML: {e}") from e

        if "tool" in data and "gatedag" in data.get("tool", {}):
            gatedag_data = data["tool"]["gatedag"]
        elif config_path.name == "pyproject.toml":
            logger.warning("No [tool.gatedag] section found in pyproject.toml, using defaults")
            gatedag_data = {}
        else:
            gatedag_data = data

        gatedag_data = self._substitute_env_vars(gatedag_data)
        try:
            return self._parse_config(gatedag_data)
        except (ValidationError, TypeError, ValueError) as e:
            raise ConfigurationError(str(config_path), str(e)) from e

    def _find_config_file(self, path: str | Path | None) -> Path:
        if path:
            config_path = Path(path)
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return config_path

        if env_path := os.getenv("GATEDAG_CONFIG_PATH"):
            config_path = Path(env_path)
            if config_path.exists():
                logger.debug("Using config from GATEDAG_CONFIG_PATH: {path}", path=config_path)
                return config_path
            logger.warning("GATEDAG_CONFIG_PATH set but file not found: {path}", path=config_path)

        for candidate in (Path("gatedag.toml"), Path(".gatedag.toml")):
            if candidate.exists():
                return candidate

        current = Path.cwd()
        while True:
            pyproject = current / "pyproject.toml"
            if pyproject.exists():
                with pyproject.open("rb") as f:
                    data = tomllib.load(f)
                if "gatedag" in data.get("tool", {}):
                    return pyproject
            if current == current.parent:
                break
            current = current.parent

        raise FileNotFoundError(
            "No configuration file found. Searched for: gatedag.toml, .gatedag.toml, "
            "pyproject.toml with [tool.gatedag]"
        )

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively replace ``${VAR}`` with environment values.

        Unset variables keep their placeholder.
        """
        if isinstance(data, str):

            def replacer(match: re.Match[str]) -> str:
                value = os.environ.get(match.group(1))
                if value is None:
                    logger.debug("Environment variable ${{{name}}} not set", name=match.group(1))
                    return match.group(0)
                return value

            return self.ENV_VAR_PATTERN.sub(replacer, data)

        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]

        return data

    def _parse_config(self, data: dict[str, Any]) -> GateDAGConfig:
        environments = {
            name: EnvironmentConfig(name=name, **values)
            for name, values in data.get("environments", {}).items()
        }
        default_environment = data.get("default_environment")
        if default_environment is not None and default_environment not in environments:
            raise ValidationError("default_environment", "not configured", default_environment)

        return GateDAGConfig(
            logging=self._parse_logging_config(data.get("logging", {})),
            scheduler=self._parse_scheduler_config(data.get("scheduler", {})),
            tag_store=self._parse_tag_store_config(data.get("tag_store", {})),
            environments=environments,
            default_environment=default_environment,
        )

    def _parse_logging_config(self, logging_data: dict[str, Any]) -> LoggingConfig:
        """Parse logging configuration; GATEDAG_LOG_* variables take precedence."""
        level = logging_data.get("level", "INFO")
        format_type = logging_data.get("format", "structured")
        output_file = logging_data.get("output_file")
        use_color = logging_data.get("use_color", True)
        include_timestamp = logging_data.get("include_timestamp", True)

        if env_level := os.getenv("GATEDAG_LOG_LEVEL"):
            level = env_level.upper()
        if env_format := os.getenv("GATEDAG_LOG_FORMAT"):
            format_type = env_format.lower()
        if env_file := os.getenv("GATEDAG_LOG_FILE"):
            output_file = env_file
        if env_color := os.getenv("GATEDAG_LOG_COLOR"):
            try:
                use_color = _parse_bool_env(env_color)
            except ValueError as e:
                logger.warning("Invalid GATEDAG_LOG_COLOR value: {error}", error=e)

        return LoggingConfig(
            level=cast("Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']", level),
            format=cast("Literal['console', 'json', 'structured', 'rich']", format_type),
            output_file=output_file,
            use_color=use_color,
            include_timestamp=include_timestamp,
        )

    def _parse_scheduler_config(self, scheduler_data: dict[str, Any]) -> SchedulerConfig:
        max_concurrent = scheduler_data.get("max_concurrent_stages", 4)
        if env_max := os.getenv("GATEDAG_MAX_CONCURRENT_STAGES"):
            try:
                max_concurrent = int(env_max)
            except ValueError as e:
                raise ConfigurationError(
                    "GATEDAG_MAX_CONCURRENT_STAGES", f"expected an integer, got {env_max!r}"
                ) from e
        return SchedulerConfig(
            max_concurrent_stages=int(max_concurrent),
            default_stage_timeout=scheduler_data.get("default_stage_timeout"),
        )

    def _parse_tag_store_config(self, store_data: dict[str, Any]) -> TagStoreConfig:
        path = os.getenv("GATEDAG_TAG_DB") or store_data.get("path", TagStoreConfig().path)
        return TagStoreConfig(path=str(path))


def load_config(path: str | Path | None = None) -> GateDAGConfig:
    """Load configuration from a TOML file, or return defaults if none is found.

    An explicitly given *path* that does not exist is an error.
    """
    loader = ConfigLoader()
    try:
        return loader.load_from_toml(path)
    except FileNotFoundError:
        if path is not None:
            raise
        logger.info("No configuration file found, using defaults")
        return get_default_config()


def get_default_config() -> GateDAGConfig:
    """Default configuration, with GATEDAG_* environment overrides applied."""
    return ConfigLoader()._parse_config({})
