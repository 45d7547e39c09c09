"""
Settings for the zonescript command line.

Resolved in three layers, later layers winning:

1. built-in defaults
2. a YAML file (``zonescript.yaml`` in the working directory, or the file
   named with ``--config``)
3. ``ZONESCRIPT_*`` environment variables

Uses Pydantic Settings v2 with a custom :class:`YamlSettingsSource` placed
between the environment and the defaults.
"""

import os
import threading
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings, NoDecode, PydanticBaseSettingsSource, SettingsConfigDict,
)

CONFIG_FILENAME = "zonescript.yaml"
ENV_PREFIX = "ZONESCRIPT_"


class ConfigError(Exception):
    """Invalid configuration file or environment value."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


def _read_file(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp)
    except OSError as exc:
        raise ConfigError(f"cannot read config: {exc.strerror}", str(path)) from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}", str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("top level must be a mapping", str(path))
    return data


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``zonescript.yaml`` file."""

    def __init__(self, settings_cls: type, yaml_path: Optional[Path]) -> None:
        super().__init__(settings_cls)
        self.yaml_path = yaml_path
        self._data: Dict[str, Any] = _read_file(yaml_path) if yaml_path is not None else {}

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> Dict[str, Any]:
        # Unknown keys are passed through so extra="forbid" reports them
        return self._data


# Thread-local storage for the YAML path during construction.
_tls = threading.local()


class Settings(BaseSettings):
    """Everything the CLI reads from the environment and the settings file."""

    model_config = SettingsConfigDict(
        frozen=True,
        env_prefix=ENV_PREFIX,
        extra="forbid",
    )

    input: str = "dnscontrol.lua"
    output: str = "dnscontrol.js"
    syntax: Optional[Literal["lua", "native"]] = None   # None: from the input extension
    indent: int = 4
    header: bool = True
    engine: str = "dnscontrol"
    # os.pathsep-separated in the environment
    include_paths: Annotated[List[str], NoDecode] = Field(default_factory=list)

    @field_validator("syntax", mode="before")
    @classmethod
    def _empty_syntax(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("indent", mode="before")
    @classmethod
    def _indent_not_bool(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError(f"must be an integer, got {value!r}")
        return value

    @field_validator("indent")
    @classmethod
    def _indent_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("include_paths", mode="before")
    @classmethod
    def _split_paths(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [p for p in value.split(os.pathsep) if p]
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type,
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Insert the YAML source between env vars and defaults."""
        return (
            init_settings,
            env_settings,
            YamlSettingsSource(settings_cls, getattr(_tls, "yaml_path", None)),
        )

    def syntax_for(self, path: str) -> str:
        if self.syntax:
            return self.syntax
        return "native" if Path(path).suffix.lower() == ".js" else "lua"


def _origin(name: str, yaml_path: Optional[Path]) -> str:
    """Where the value of a setting came from, for error messages."""
    env_name = ENV_PREFIX + name.upper()
    if any(key.upper() == env_name for key in os.environ):
        return env_name
    return str(yaml_path) if yaml_path is not None else "settings"


def _config_error(exc: ValidationError, yaml_path: Optional[Path]) -> ConfigError:
    unknown = []
    problems = []
    for err in exc.errors():
        name = str(err["loc"][0]) if err["loc"] else "?"
        if err["type"] == "extra_forbidden":
            unknown.append(name)
            continue
        if err["type"] == "value_error":
            message = str(err["ctx"]["error"])
        else:
            message = err["msg"][:1].lower() + err["msg"][1:]
        problems.append((name, f"'{name}' {message}"))

    if unknown:
        source = str(yaml_path) if yaml_path is not None else "settings"
        return ConfigError(f"unknown setting(s): {', '.join(sorted(unknown))}", source)
    first = problems[0][0]
    return ConfigError("; ".join(text for _, text in problems), _origin(first, yaml_path))


def load_settings(config_path: Optional[str] = None, cwd: Optional[Path] = None) -> Settings:
    """
    Resolve settings from defaults, the YAML file and the environment.

    Args:
        config_path: Explicit config file; it must exist
        cwd: Directory searched for zonescript.yaml (defaults to the working directory)

    Raises:
        ConfigError: On unreadable files, unknown keys or wrong value types
    """
    if config_path is not None:
        yaml_path: Optional[Path] = Path(config_path)
        if not yaml_path.is_file():
            raise ConfigError("config file not found", config_path)
    else:
        yaml_path = (cwd or Path.cwd()) / CONFIG_FILENAME
        if not yaml_path.is_file():
            yaml_path = None

    _tls.yaml_path = yaml_path
    try:
        return Settings()
    except ValidationError as exc:
        raise _config_error(exc, yaml_path) from None
    finally:
        _tls.yaml_path = None
