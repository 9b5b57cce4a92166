import logging

import pytest

from bme280hub import registers as reg
from bme280hub.app import SensorMonitor, create_app, shutdown_app
from bme280hub.device import DeviceState


@pytest.fixture
def app(device):
    return create_app(device, start_scheduler=False)


@pytest.fixture
def client(app):
    return app.test_client()


def test_reading_endpoint(client):
    response = client.get('/api/reading')

    assert response.status_code == 200
    data = response.get_json()
    assert data['temperature_c'] == 25.1
    assert data['pressure_hpa'] == 1006.53
    assert data['humidity_percent'] == 55.0
    assert data['sensor_id'] == 'bme280-1-0x76'


@pytest.mark.parametrize('path,key,value', [
    ('/api/temperature', 'temperature_c', 25.1),
    ('/api/pressure', 'pressure_hpa', 1006.53),
    ('/api/humidity', 'humidity_percent', 55.0),
])
def test_single_quantity_endpoints(client, path, key, value):
    response = client.get(path)

    assert response.status_code == 200
    assert response.get_json()[key] == value


def test_failed_measurement_returns_503(client, bus):
    bus.fail_reads.add(reg.PRESSURE_DATA)

    assert client.get('/api/reading').status_code == 503
    assert client.get('/api/pressure').status_code == 503
    assert client.get('/api/temperature').status_code == 200

    status = client.get('/api/status').get_json()
    assert status['error_count'] == 1
    assert 'Could not wake device up' in status['last_error']


def test_status_reports_last_reading(client):
    assert client.get('/api/status').get_json()['last_reading'] is None

    client.get('/api/reading')
    status = client.get('/api/status').get_json()

    assert status['sensor']['state'] == 'ready'
    assert status['last_reading']['humidity_percent'] == 55.0
    assert status['last_error'] is None


def test_graphql_query(client):
    query = '{ currentReading { temperatureC pressureHpa humidityPercent } sensorInfo { state calibrationLoaded } temperature }'

    response = client.post('/graphql', json={'query': query})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['currentReading'] == {'temperatureC': 25.1, 'pressureHpa': 1006.53, 'humidityPercent': 55.0}
    assert data['sensorInfo'] == {'state': 'ready', 'calibrationLoaded': True}
    assert data['temperature'] == 25.1


def test_graphql_reports_measurement_errors(client, bus):
    bus.fail_reads.add(reg.TEMPERATURE_DATA)

    response = client.post('/graphql', json={'query': '{ humidity }'})

    body = response.get_json()
    assert body['data']['humidity'] is None
    assert body['errors']


def test_graphql_requires_query(client):
    assert client.post('/graphql', json={}).status_code == 400
    assert client.post('/graphql', json={'variables': {}}).status_code == 400


def test_refresh_logs_failures(device, bus, caplog):
    monitor = SensorMonitor(device)
    monitor.refresh()
    assert monitor.last_reading.temperature_c == 25.1

    bus.fail_reads.add(reg.PRESSURE_DATA)
    with caplog.at_level(logging.ERROR, logger='bme280hub.app'):
        monitor.refresh()

    assert monitor.error_count == 1
    assert 'Scheduled BME280 reading failed' in caplog.text
    # the last good reading is kept
    assert monitor.last_reading.temperature_c == 25.1


def test_scheduler_lifecycle(device):
    app = create_app(device, poll_interval=3600)
    assert app.extensions['bme280_scheduler'].running

    shutdown_app(app)

    assert 'bme280_scheduler' not in app.extensions
    assert device.state is DeviceState.CLOSED
