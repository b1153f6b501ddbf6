"""
Editor settings.

Every configurable value is resolved in three tiers:

    1. Override mapping  (e.g. settings stored by the web UI)
    2. Environment variable  (.env or shell)
    3. Hard-coded default
"""

import os
import logging
from dataclasses import asdict, dataclass
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# Known setting keys and the environment variable behind each
SETTING_ENV_VARS: Dict[str, str] = {
    'debounce_seconds': 'SKETCH_EDITOR_DEBOUNCE_SECONDS',
    'indent_width': 'SKETCH_EDITOR_INDENT',
    'sketch_filename': 'SKETCH_EDITOR_SKETCH_NAME',
    'host': 'SKETCH_EDITOR_HOST',
    'port': 'SKETCH_EDITOR_PORT',
}


def resolve_setting(key: str, env_var: str, default: str,
                    overrides: Optional[Mapping[str, str]] = None) -> str:
    """Three-tier resolution: override → env → default."""
    if overrides:
        value = overrides.get(key)
        if value is not None:
            return value
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return env_val
    return default


@dataclass
class EditorSettings:
    """Effective configuration of an editing session."""
    debounce_seconds: float = 0.1
    indent_width: int = 2
    sketch_filename: str = "arduino_sketch.ino"
    host: str = "0.0.0.0"
    port: int = 5003

    @property
    def indent(self) -> str:
        return " " * self.indent_width

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def load(cls, overrides: Optional[Mapping[str, str]] = None) -> 'EditorSettings':
        """Build settings from overrides, the environment and defaults."""
        defaults = cls()

        def text(key):
            return resolve_setting(key, SETTING_ENV_VARS[key], str(getattr(defaults, key)), overrides)

        def number(key, cast):
            raw = text(key)
            try:
                return cast(raw)
            except ValueError:
                logger.warning("Ignoring invalid value %r for setting %s", raw, key)
                return getattr(defaults, key)

        return cls(
            debounce_seconds=number('debounce_seconds', float),
            indent_width=number('indent_width', int),
            sketch_filename=text('sketch_filename'),
            host=text('host'),
            port=number('port', int),
        )
