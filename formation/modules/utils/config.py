"""
Centralized configuration manager.
Loads config/config.yaml and provides dot-path access with defaults.

Components never hold a reference to Config: each one receives its own
section as a plain dict, so everything also runs with ``{}``.
"""

import os
import yaml
import logging

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_BASE_DIR = os.path.dirname(_PACKAGE_DIR)
_CONFIG_DIR = os.path.join(_BASE_DIR, "config")

# Schema: expected sections and the types of their critical fields
_CONFIG_SCHEMA = {
    "camera": {
        "device_id": int,
        "width": int,
        "height": int,
        "fps": int,
    },
    "mediapipe": {
        "min_detection_confidence": float,
        "min_tracking_confidence": float,
    },
    "recognition": {
        "finger_extension_ratio": float,
        "thumb_extension_ratio": float,
        "confirm_frames": int,
        "point_confirm_frames": int,
    },
    "motion": {
        "turn_rate": float,
        "cosmetics": bool,
    },
    "view": {
        "follow_rate": float,
        "auto_rotate_speed": float,
        "interaction_cooldown_s": float,
    },
    "override": {
        "policy": str,
        "require_chaos": bool,
        "debounce_ms": int,
    },
    "populations": {
        "seed": int,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Singleton configuration manager."""

    _instance = None
    _data = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load(self, config_path=None):
        """Load configuration from a YAML file. A missing file means all defaults."""
        config_path = config_path or os.path.join(_CONFIG_DIR, "config.yaml")

        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            logger.info("Loaded config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s, using defaults", config_path)
            data = {}
        except yaml.YAMLError as e:
            logger.warning("Config file %s is not valid YAML (%s), using defaults", config_path, e)
            data = {}

        if not isinstance(data, dict):
            logger.warning("Config root should be a mapping, got %s; using defaults",
                           type(data).__name__)
            data = {}

        self._data = data
        self._validate()
        return self

    def override(self, values: dict):
        """Deep-merge runtime overrides (e.g. from the command line)."""
        self._data = _deep_merge(self._data, values)
        return self

    def _validate(self):
        """Validate critical config fields against schema."""
        warnings = []
        for section_name, fields in _CONFIG_SCHEMA.items():
            section = self._data.get(section_name)
            if section is None:
                warnings.append(f"Missing config section: '{section_name}'")
                continue
            if not isinstance(section, dict):
                warnings.append(f"Section '{section_name}' should be a dict, got {type(section).__name__}")
                continue
            for field_name, expected_type in fields.items():
                if field_name not in section:
                    continue
                value = section[field_name]
                # Allow int where float is expected
                if expected_type is float and isinstance(value, (int, float)) \
                        and not isinstance(value, bool):
                    continue
                if not isinstance(value, expected_type):
                    warnings.append(
                        f"{section_name}.{field_name}: expected {expected_type.__name__}, "
                        f"got {type(value).__name__} ({value!r})"
                    )

        if warnings:
            for w in warnings:
                logger.warning("Config validation: %s", w)
        else:
            logger.debug("Config validation passed")
        return warnings

    def get(self, key_path: str, default=None):
        """Get nested config value using dot notation: 'view.follow_rate'."""
        value = self._data
        for key in key_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_section(self, section: str) -> dict:
        """Get an entire config section (empty dict if missing or malformed)."""
        value = self._data.get(section, {})
        return value if isinstance(value, dict) else {}

    @property
    def camera(self) -> dict:
        return self.get_section("camera")

    @property
    def mediapipe(self) -> dict:
        return self.get_section("mediapipe")

    @property
    def recognition(self) -> dict:
        return self.get_section("recognition")

    @property
    def motion(self) -> dict:
        return self.get_section("motion")

    @property
    def view(self) -> dict:
        return self.get_section("view")

    @property
    def override_settings(self) -> dict:
        return self.get_section("override")

    @property
    def populations(self) -> dict:
        return self.get_section("populations")

    @property
    def pipeline(self) -> dict:
        return self.get_section("pipeline")

    @property
    def performance(self) -> dict:
        return self.get_section("performance")

    @property
    def visualization(self) -> dict:
        return self.get_section("visualization")

    @property
    def logging(self) -> dict:
        return self.get_section("logging")

    @property
    def base_dir(self) -> str:
        return _BASE_DIR

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
        cls._data = {}
