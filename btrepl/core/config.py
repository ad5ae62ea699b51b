"""Loading and validation of the optional YAML config file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from btrepl.core.errors import ConfigError
from btrepl.core.model import Settings, normalize_address

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    source: Path | None
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("btrepl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "btrepl" / "config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at root")
    return loaded


def build_settings(doc: dict[str, Any], source: Path | str = "<config>") -> Settings:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    settings = Settings()
    overrides: dict[str, Any] = {
        key: value for key, value in doc.items() if key not in ("fallback_addresses", "service_uuid")
    }
    if "service_uuid" in doc:
        overrides["service_uuid"] = doc["service_uuid"].lower()
    if "fallback_addresses" in doc:
        overrides["fallback_addresses"] = tuple(
            normalize_address(address) for address in doc["fallback_addresses"]
        )
    if "connect_backoff_s" in doc:
        overrides["connect_backoff_s"] = float(doc["connect_backoff_s"])
    return replace(settings, **overrides)


def load_settings(path: Path | str | None = None) -> LoadedSettings:
    """Read settings from `path` (or the default location).

    A missing default file is not an error. Any problem with a file that
    does exist is reported as a warning and the built-in defaults are used.
    """
    explicit = path is not None
    config_path = Path(path) if path is not None else default_config_path()

    if not config_path.exists():
        if explicit:
            warning = f"Config file {config_path} not found; using defaults"
            LOGGER.warning(warning)
            return LoadedSettings(settings=Settings(), source=None, warnings=(warning,))
        return LoadedSettings(settings=Settings(), source=None, warnings=())

    try:
        settings = build_settings(_read_yaml(config_path), config_path)
    except ConfigError as exc:
        warning = f"{exc}; using defaults"
        LOGGER.warning(warning)
        return LoadedSettings(settings=Settings(), source=None, warnings=(warning,))

    LOGGER.debug("Loaded config from %s", config_path)
    return LoadedSettings(settings=settings, source=config_path, warnings=())
