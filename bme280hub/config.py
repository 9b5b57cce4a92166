"""
Configuration for the bme280hub driver and its surrounding services.

`DeviceConfig` is the immutable per-device configuration handed to a
`BME280` handle. The JSON helpers below persist the application settings
(sensor, server and logging sections) in a `config.json` file and merge
any missing keys with the defaults.
"""

import copy
import json
import logging
import os
from dataclasses import dataclass, asdict
from typing import Dict, Any, Mapping, Optional

from .registers import Sampling, Filter, Standby, VALID_ADDRESSES

logger = logging.getLogger(__name__)

CONFIG_FILE = 'config.json'

DEFAULT_CONFIG: Dict[str, Any] = {
    "sensor": {
        "bus": 1,
        "address": "0x76",
        "elevation": 0.0,
        "temperature_oversampling": "X1",
        "pressure_oversampling": "X1",
        "humidity_oversampling": "X1",
        "filter": "X1",
        "standby": "MS_1000",
        "max_poll_attempts": 250
    },
    "server": {
        "host": "0.0.0.0",
        "port": 5000,
        "poll_interval": 60
    },
    "app": {
        "log_level": "ERROR"
    }
}


def _parse_level(enum_cls, value):
    """Accepts an enum member, its name ('X4') or its raw integer value."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Invalid {enum_cls.__name__} value: {value!r}")
    return enum_cls(int(value))


def _parse_address(value) -> int:
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


@dataclass(frozen=True)
class DeviceConfig:
    """Immutable configuration for a single BME280 device.

    Attributes:
        bus: The I2C bus number (e.g. 1 for /dev/i2c-1).
        address: The I2C device address, 0x76 or 0x77.
        elevation: Sensor elevation in metres above sea level. When positive,
            pressure readings are corrected to sea level.
        temperature_oversampling: Oversampling for temperature (osrs_t).
        pressure_oversampling: Oversampling for pressure (osrs_p).
        humidity_oversampling: Oversampling for humidity (osrs_h).
        filter: IIR filter coefficient.
        standby: Standby time between conversions in normal mode.
        startup_delay: Seconds to wait after a soft reset.
        calibration_poll_interval: Seconds between calibration-copy status polls.
        measurement_poll_interval: Seconds between measuring status polls.
        max_poll_attempts: Status polls before a polling loop gives up.
    """
    bus: int = 1
    address: int = 0x76
    elevation: float = 0.0
    temperature_oversampling: Sampling = Sampling.X1
    pressure_oversampling: Sampling = Sampling.X1
    humidity_oversampling: Sampling = Sampling.X1
    filter: Filter = Filter.X1
    standby: Standby = Standby.MS_1000
    startup_delay: float = 0.004
    calibration_poll_interval: float = 0.112
    measurement_poll_interval: float = 0.004
    max_poll_attempts: int = 250

    def __post_init__(self):
        if self.address not in VALID_ADDRESSES:
            raise ValueError(f"Invalid BME280 address: 0x{self.address:02X}. Must be 0x76 or 0x77")
        if self.max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be at least 1")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'DeviceConfig':
        """Builds a DeviceConfig from a mapping such as the 'sensor' config section.

        Unknown keys are ignored. Levels may be given by name or value and the
        address may be a hex string.
        """
        kwargs: Dict[str, Any] = {}
        if 'bus' in data:
            kwargs['bus'] = int(data['bus'])
        if 'address' in data:
            kwargs['address'] = _parse_address(data['address'])
        if 'elevation' in data and data['elevation'] is not None:
            kwargs['elevation'] = float(data['elevation'])
        for key in ('temperature_oversampling', 'pressure_oversampling', 'humidity_oversampling'):
            if key in data:
                kwargs[key] = _parse_level(Sampling, data[key])
        if 'filter' in data:
            kwargs['filter'] = _parse_level(Filter, data['filter'])
        if 'standby' in data:
            kwargs['standby'] = _parse_level(Standby, data['standby'])
        for key in ('startup_delay', 'calibration_poll_interval', 'measurement_poll_interval'):
            if key in data:
                kwargs[key] = float(data[key])
        if 'max_poll_attempts' in data:
            kwargs['max_poll_attempts'] = int(data['max_poll_attempts'])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Returns a JSON-friendly dictionary with enum names and a hex address."""
        data = asdict(self)
        data['address'] = f"0x{self.address:02X}"
        for key in ('temperature_oversampling', 'pressure_oversampling', 'humidity_oversampling',
                    'filter', 'standby'):
            data[key] = getattr(self, key).name
        return data


def load_config(path: str = CONFIG_FILE) -> Dict[str, Any]:
    """Loads the application configuration from a JSON file.

    If the configuration file does not exist, it creates one with default values.
    If the file is corrupted, it logs a warning and returns the default
    configuration. It also merges the loaded configuration with the defaults
    to ensure all necessary keys are present.

    Args:
        path: The path of the JSON configuration file.

    Returns:
        A dictionary containing the application configuration.
    """
    if os.path.exists(path):
        try:
            with open(path, 'r') as f:
                config = json.load(f)
            if not isinstance(config, dict):
                logger.warning(f"Config file {path} does not hold a JSON object, using defaults")
                return copy.deepcopy(DEFAULT_CONFIG)
            # Merge with defaults for any missing keys; a section that is not
            # an object counts as missing
            for key in DEFAULT_CONFIG:
                if key not in config or (isinstance(DEFAULT_CONFIG[key], dict)
                                         and not isinstance(config[key], dict)):
                    config[key] = copy.deepcopy(DEFAULT_CONFIG[key])
                elif isinstance(DEFAULT_CONFIG[key], dict):
                    for sub_key in DEFAULT_CONFIG[key]:
                        if sub_key not in config[key]:
                            config[key][sub_key] = DEFAULT_CONFIG[key][sub_key]
            return config
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not load config file {path}, using defaults: {e}")
            return copy.deepcopy(DEFAULT_CONFIG)

    # Create default config file
    save_config(DEFAULT_CONFIG, path)
    return copy.deepcopy(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], path: str = CONFIG_FILE) -> bool:
    """Saves the given configuration dictionary to a JSON file.

    Args:
        config: The configuration dictionary to save.
        path: The path of the JSON configuration file.

    Returns:
        True if the configuration was saved successfully, False otherwise.
    """
    try:
        with open(path, 'w') as f:
            json.dump(config, f, indent=2)
        return True
    except IOError as e:
        logger.error(f"Could not save config file {path}: {e}")
        return False


def update_config(updates: Dict[str, Any], path: str = CONFIG_FILE) -> bool:
    """Updates the configuration file with new values.

    Args:
        updates: A dictionary containing the configuration keys and values to
            update. Nested sections are merged key by key.
        path: The path of the JSON configuration file.

    Returns:
        True if the configuration was updated and saved successfully.
    """
    config = load_config(path)
    for key, value in updates.items():
        if key in config and isinstance(config[key], dict) and isinstance(value, dict):
            config[key].update(value)
        else:
            config[key] = value
    return save_config(config, path)


def device_config_from_file(path: str = CONFIG_FILE, overrides: Optional[Dict[str, Any]] = None) -> DeviceConfig:
    """Builds a DeviceConfig from the 'sensor' section of a config file.

    Args:
        path: The path of the JSON configuration file.
        overrides: Values that take precedence over the file (e.g. CLI flags).
            Keys whose value is None are ignored.
    """
    sensor = dict(load_config(path).get('sensor', {}))
    for key, value in (overrides or {}).items():
        if value is not None:
            sensor[key] = value
    return DeviceConfig.from_dict(sensor)
