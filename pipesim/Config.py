import copy
import logging
import os

import yaml

from pipesim.Errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")


def _merge(base: dict, extra: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (extra or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: str) -> dict:
    try:
        with open(path, 'r') as file:
            data = yaml.safe_load(file)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")
    return data


def validate(config: dict) -> dict:
    """
    Check geometry and timing values.

    Raises ConfigError on the first bad value; returns the config unchanged.
    """
    try:
        cache = config['cache']
        memory = config['memory']
        pipeline = config['pipeline']
    except KeyError as e:
        raise ConfigError(f"Missing config section {e}") from e

    for name in ("cache", "memory", "pipeline", "snapshot"):
        if not isinstance(config.get(name, {}), dict):
            raise ConfigError(f"Config section {name!r} must be a mapping")

    for section, key in (("cache", "lines"), ("cache", "words_per_line"), ("memory", "words")):
        value = config[section][key]
        if not isinstance(value, int) or value <= 0:
            raise ConfigError(f"{section}.{key} must be a positive integer, got {value!r}")

    for section, key in (("cache", "delay"), ("memory", "delay"), ("pipeline", "memory_timeout")):
        value = config[section][key]
        if not isinstance(value, int) or value < 0:
            raise ConfigError(f"{section}.{key} must be a non-negative integer, got {value!r}")

    if memory['words'] % cache['words_per_line']:
        raise ConfigError("memory.words must be a multiple of cache.words_per_line")

    if not isinstance(pipeline['max_cycles'], int) or pipeline['max_cycles'] <= 0:
        raise ConfigError("pipeline.max_cycles must be a positive integer")

    for section, key in (("cache", "enabled"), ("pipeline", "enabled"), ("pipeline", "hazard_interlock")):
        value = config[section][key]
        if not isinstance(value, bool):
            raise ConfigError(f"{section}.{key} must be true or false, got {value!r}")

    ranges = config.get('snapshot', {}).get('ranges', [])
    if not isinstance(ranges, list):
        raise ConfigError(f"snapshot.ranges must be a list, got {ranges!r}")
    for rng in ranges:
        if not isinstance(rng, (list, tuple)) or len(rng) != 2 \
                or not all(isinstance(v, int) and not isinstance(v, bool) for v in rng) \
                or rng[0] > rng[1]:
            raise ConfigError(f"Bad snapshot range {rng!r}")

    return config


def load_config(path: str = None, overrides: dict = None) -> dict:
    """
    Load the default YAML config, then merge a user file and overrides on top.
    """
    config = _read_yaml(DEFAULT_CONFIG_PATH)
    if path is not None:
        logger.info("Loading config from %s", path)
        config = _merge(config, _read_yaml(path))
    config = _merge(config, overrides)
    return validate(config)
