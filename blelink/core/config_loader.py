"""Session configuration loading and validation for YAML profiles."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from blelink.core.errors import ConfigLoadError, ConfigValidationError
from blelink.core.model import SessionConfig

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedConfig:
    config: SessionConfig
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("blelink.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def user_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "blelink" / "config.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: Path | Traversable) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def _build_config(doc: dict[str, Any]) -> SessionConfig:
    names = tuple(name.strip() for name in doc["target_names"])
    if any(not name for name in names):
        raise ConfigValidationError("target_names entries must not be blank")
    if len(set(names)) != len(names):
        raise ConfigValidationError("target_names entries must be unique")

    def _timeout(key: str) -> float | None:
        value = doc.get(key)
        return None if value is None else float(value)

    return SessionConfig(
        target_names=names,
        connect_timeout_s=_timeout("connect_timeout_s"),
        discovery_timeout_s=_timeout("discovery_timeout_s"),
        scan_timeout_s=float(doc.get("scan_timeout_s", 10.0)),
    )


def load_config(path: Path | None = None) -> LoadedConfig:
    """Load the packaged default profile, overlaid by the user's profile if present."""
    default_path = resources.files("blelink.profiles").joinpath("default.yaml")
    doc = _read_yaml(default_path)
    _validate(doc, default_path)

    warnings: list[str] = []
    override_path = path or user_config_path()
    if path is not None or override_path.is_file():
        override = _read_yaml(override_path)
        _validate(override, override_path)
        for key, value in sorted(override.items()):
            if doc.get(key) != value:
                warning = f"User config overrides '{key}'"
                LOGGER.info(warning)
                warnings.append(warning)
            doc[key] = value

    if "target_names" not in doc:
        raise ConfigValidationError("Config must define target_names")
    return LoadedConfig(config=_build_config(doc), warnings=tuple(warnings))
