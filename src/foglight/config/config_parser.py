"""Configuration loading for foglight.

Brief:
  Reads a YAML configuration file, applies FOGLIGHT_* environment overrides
  and validates the result into a FoglightConfig.

Inputs:
  - YAML config path (optional) and environment mapping

Outputs:
  - FoglightConfig
"""

from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from .config_schema import FoglightConfig

# Environment variable -> (section, key)
_ENV_OVERRIDES = {
    "FOGLIGHT_SOURCE_ADDRESS": ("transport", "source_address"),
    "FOGLIGHT_WAIT": ("discovery", "wait"),
    "FOGLIGHT_LOG_LEVEL": ("logging", "level"),
}


def _parse_yaml_value(text: str) -> Any:
    """
    Brief: Parse an environment value as YAML so numbers arrive as numbers.

    Inputs:
      - text: raw environment string

    Outputs:
      - Any: parsed value, or the original string when it is not valid YAML
    """
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def apply_env_overrides(
    cfg: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Brief: Overlay FOGLIGHT_* environment variables onto a raw config mapping.

    Inputs:
      - cfg: parsed YAML mapping (mutated in-place)
      - environ: environment mapping (defaults to os.environ)

    Outputs:
      - dict: the same mapping, for chaining

    Example:
      >>> apply_env_overrides({}, {"FOGLIGHT_WAIT": "5"})
      {'discovery': {'wait': 5}}
    """
    env = os.environ if environ is None else environ
    for var, (section, key) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        current = cfg.get(section)
        if not isinstance(current, dict):
            current = {}
            cfg[section] = current
        current[key] = _parse_yaml_value(raw)
    return cfg


def parse_config(
    data: Optional[Dict[str, Any]],
    *,
    source: str = "<config>",
) -> FoglightConfig:
    """
    Brief: Validate a raw mapping into a FoglightConfig.

    Inputs:
      - data: mapping parsed from YAML (None means "all defaults")
      - source: label used in error messages

    Outputs:
      - FoglightConfig

    Raises:
      - ValueError: the mapping does not match the schema
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"{source}: top level must be a mapping, got {type(data).__name__}")
    try:
        return FoglightConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ValueError(f"Invalid configuration in {source}: {problems}") from None


def load_config(
    config_path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> FoglightConfig:
    """
    Brief: Read, env-merge and validate a YAML configuration file.

    Inputs:
      - config_path: path to the YAML file; None uses defaults only
      - environ: environment mapping for FOGLIGHT_* overrides

    Outputs:
      - FoglightConfig

    Raises:
      - ValueError: unreadable YAML or schema violations
      - OSError: the file cannot be opened
    """
    raw: Dict[str, Any] = {}
    source = "<defaults>"
    if config_path:
        source = config_path
        with open(config_path, "r", encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc
        if loaded is not None and not isinstance(loaded, dict):
            raise ValueError(f"{config_path}: top level must be a mapping")
        raw = loaded or {}
    apply_env_overrides(raw, environ)
    return parse_config(raw, source=source)
