import json

import pytest

from bme280hub.config import (
    DEFAULT_CONFIG,
    DeviceConfig,
    device_config_from_file,
    load_config,
    save_config,
    update_config,
)
from bme280hub.registers import Filter, Sampling, Standby


def test_defaults():
    config = DeviceConfig()

    assert config.bus == 1
    assert config.address == 0x76
    assert config.elevation == 0.0
    assert config.humidity_oversampling is Sampling.X1
    assert config.filter is Filter.X1
    assert config.standby is Standby.MS_1000


def test_rejects_unknown_address():
    with pytest.raises(ValueError):
        DeviceConfig(address=0x40)


def test_config_is_read_only():
    config = DeviceConfig()

    with pytest.raises(AttributeError):
        config.elevation = 12.0


def test_from_dict_accepts_names_and_hex():
    config = DeviceConfig.from_dict({
        'bus': '0',
        'address': '0x77',
        'elevation': 350,
        'temperature_oversampling': 'x2',
        'pressure_oversampling': 5,
        'humidity_oversampling': 'NONE',
        'filter': 'X16',
        'standby': 'MS_62_5',
        'unknown_key': True,
    })

    assert config.bus == 0
    assert config.address == 0x77
    assert config.elevation == 350.0
    assert config.temperature_oversampling is Sampling.X2
    assert config.pressure_oversampling is Sampling.X16
    assert config.humidity_oversampling is Sampling.NONE
    assert config.filter is Filter.X16
    assert config.standby is Standby.MS_62_5


def test_from_dict_rejects_unknown_level():
    with pytest.raises(ValueError):
        DeviceConfig.from_dict({'filter': 'X3'})


def test_to_dict_round_trips_through_from_dict():
    config = DeviceConfig(address=0x77, standby=Standby.MS_20, elevation=12.5)

    data = config.to_dict()

    assert data['address'] == '0x77'
    assert data['standby'] == 'MS_20'
    assert DeviceConfig.from_dict(data) == config


def test_load_config_creates_default_file(tmp_path):
    path = tmp_path / 'config.json'

    config = load_config(str(path))

    assert config == DEFAULT_CONFIG
    assert json.loads(path.read_text()) == DEFAULT_CONFIG


def test_load_config_merges_missing_keys(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'sensor': {'address': '0x77'}}))

    config = load_config(str(path))

    assert config['sensor']['address'] == '0x77'
    assert config['sensor']['bus'] == 1
    assert config['server'] == DEFAULT_CONFIG['server']


def test_load_config_replaces_non_object_sections(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'sensor': None, 'server': [1, 2], 'app': {'log_level': 'DEBUG'}}))

    config = load_config(str(path))

    assert config['sensor'] == DEFAULT_CONFIG['sensor']
    assert config['server'] == DEFAULT_CONFIG['server']
    assert config['app']['log_level'] == 'DEBUG'


def test_load_config_falls_back_on_non_object_file(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text('[]')

    assert load_config(str(path)) == DEFAULT_CONFIG


def test_load_config_falls_back_on_corrupt_file(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text('{not json')

    config = load_config(str(path))

    assert config == DEFAULT_CONFIG
    config['sensor']['bus'] = 9
    assert DEFAULT_CONFIG['sensor']['bus'] == 1


def test_update_config(tmp_path):
    path = str(tmp_path / 'config.json')
    save_config(DEFAULT_CONFIG, path)

    assert update_config({'sensor': {'elevation': 120.0}, 'extra': 1}, path)

    config = load_config(path)
    assert config['sensor']['elevation'] == 120.0
    assert config['sensor']['address'] == '0x76'
    assert config['extra'] == 1


def test_device_config_from_file_with_overrides(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'sensor': {'address': '0x77', 'elevation': 50}}))

    config = device_config_from_file(str(path), overrides={'elevation': 200.0, 'bus': None})

    assert config.address == 0x77
    assert config.elevation == 200.0
    assert config.bus == 1
