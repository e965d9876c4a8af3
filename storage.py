"""
Configuration Storage

Process-lifetime, in-memory configuration store used by the calculator
app, plus dict/JSON conversion that tolerates partial or stale saved
configurations by filling missing fields from the defaults.
"""

import json
import logging
import math
from dataclasses import asdict, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Union

from pydantic import TypeAdapter, ValidationError

from models import (
    DaysConfig,
    PackageConfig,
    SimulationConfig,
    default_days_configs,
    default_package_configs,
)

logger = logging.getLogger(__name__)

_config_adapter = TypeAdapter(SimulationConfig)


class ConfigValidationError(ValueError):
    """Raised when a configuration fails validation; errors lists every problem"""

    def __init__(self, errors: List[str]):
        super().__init__("Invalid configuration: " + "; ".join(errors))
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        return {'error': 'Invalid configuration', 'details': self.errors}


def config_to_dict(config: SimulationConfig) -> Dict[str, Any]:
    return asdict(config)


def _plain(value: Any) -> Any:
    """Unwrap numpy scalars and turn NaN (an empty table cell) into None"""
    if hasattr(value, "item") and not isinstance(value, (list, dict)):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _merge_rows(saved: List[Any], defaults: List[Any], row_type, key: str) -> List[Any]:
    """Back-fill each saved row from the default row with the same key; other entries pass through"""
    by_key = {getattr(d, key): asdict(d) for d in defaults}
    known = {f.name for f in fields(row_type)}
    rows = []
    for row in saved:
        if not isinstance(row, dict):
            rows.append(row)
            continue
        key_value = _plain(row.get(key))
        base = dict(by_key.get(key_value, {})) if isinstance(key_value, (int, float, str)) else {}
        for k, v in row.items():
            v = _plain(v)
            if k in known and (v is not None or k not in base):
                base[k] = v
        rows.append(base)
    return rows


def _error_messages(error: ValidationError) -> List[str]:
    """Flatten pydantic errors, splitting the combined range-check message into its parts"""
    messages = []
    for err in error.errors():
        msg = err['msg']
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        if msg.startswith("Invalid configuration: "):
            messages.extend(msg[len("Invalid configuration: "):].split("; "))
            continue
        location = ".".join(str(part) for part in err['loc'])
        messages.append(f"{location}: {msg}" if location else msg)
    return messages


def config_from_dict(data: Dict[str, Any]) -> SimulationConfig:
    """
    Build a configuration from a (possibly partial) dict

    Unknown keys are ignored and missing keys take their default values.
    Field types are checked by pydantic; range checks come from the
    configuration itself.

    Raises:
        ConfigValidationError: if the merged configuration is invalid
    """
    if not isinstance(data, dict):
        raise ConfigValidationError([f"expected a mapping, got {type(data).__name__}"])

    known = {f.name for f in fields(SimulationConfig)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown configuration keys: %s", ", ".join(sorted(map(str, unknown))))

    kwargs = {k: _plain(v) for k, v in data.items() if k in known}
    if isinstance(kwargs.get('package_configs'), list):
        kwargs['package_configs'] = _merge_rows(kwargs['package_configs'], default_package_configs(),
                                                PackageConfig, 'tier')
    if isinstance(kwargs.get('days_configs'), list):
        kwargs['days_configs'] = _merge_rows(kwargs['days_configs'], default_days_configs(),
                                             DaysConfig, 'days')

    try:
        config = _config_adapter.validate_python(kwargs)
    except ValidationError as e:
        raise ConfigValidationError(_error_messages(e)) from e
    except ValueError as e:
        # SimulationConfig reports all violations in one message
        message = str(e).replace("Invalid configuration: ", "")
        raise ConfigValidationError(message.split("; ")) from e

    errors = config.validation_errors()
    if errors:
        raise ConfigValidationError(errors)
    return config


def load_config(path: str) -> SimulationConfig:
    """Read a configuration from a JSON file"""
    with open(path) as f:
        return config_from_dict(json.load(f))


def dump_config(config: SimulationConfig, path: str) -> None:
    """Write a configuration to a JSON file"""
    with open(path, 'w') as f:
        json.dump(config_to_dict(config), f, indent=2)


class ConfigStore:
    """In-memory configuration holder; contents do not survive a restart"""

    def __init__(self, config: SimulationConfig = None):
        self._config = config if config is not None else SimulationConfig()

    def get_config(self) -> SimulationConfig:
        return self._config

    def save_config(self, data: Union[SimulationConfig, Dict[str, Any]]) -> SimulationConfig:
        """
        Validate and replace the stored configuration

        Args:
            data: A SimulationConfig or a dict in config_to_dict form

        Returns:
            The stored configuration

        Raises:
            ConfigValidationError: the stored configuration is left unchanged
        """
        if isinstance(data, SimulationConfig):
            errors = data.validation_errors()
            if errors:
                raise ConfigValidationError(errors)
            config = data
        else:
            config = config_from_dict(data)
        self._config = config
        logger.info("Configuration saved (release mode %s, %s mode)", config.release_mode, config.simulation_mode)
        return self._config

    def reset(self) -> SimulationConfig:
        self._config = SimulationConfig()
        return self._config

    @staticmethod
    def health() -> Dict[str, str]:
        return {'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()}


# Shared store for the app process
store = ConfigStore()
