"""
Flask application exposing BME280 readings over HTTP.

Features:
- JSON endpoints for the combined reading and each single quantity.
- GraphQL API using Graphene for flexible querying of the sensor.
- Background refresh of the latest reading with APScheduler. Readings are
  kept in memory only.
"""

import logging
import os
import threading
import time
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, Response, current_app, jsonify, request
from flask_cors import CORS
from graphene import Boolean, Field, Float, ObjectType, Schema, String

from .bus import SimulatedBus
from .config import CONFIG_FILE, DeviceConfig, load_config
from .device import BME280, SensorReading
from .errors import BME280Error

logger = logging.getLogger(__name__)


class SensorMonitor:
    """Serializes access to a BME280 and remembers the latest reading.

    Attributes:
        device: The initialized BME280 handle.
        last_reading: The most recent successful SensorReading, if any.
        last_error: The message of the most recent failure, if any.
        error_count: The number of failed readings so far.
    """

    def __init__(self, device: BME280):
        self.device = device
        self.last_reading: Optional[SensorReading] = None
        self.last_error: Optional[str] = None
        self.error_count = 0
        self._lock = threading.Lock()

    def take_reading(self) -> SensorReading:
        """Takes a fresh combined reading and caches it.

        Raises:
            BME280Error: If the measurement fails.
        """
        with self._lock:
            try:
                reading = self.device.read_all()
            except BME280Error as e:
                self.error_count += 1
                self.last_error = str(e)
                raise
            self.last_reading = reading
            self.last_error = None
            return reading

    def refresh(self) -> None:
        """Scheduled job: refresh the cached reading, logging failures."""
        try:
            reading = self.take_reading()
            logger.debug(f"Refreshed reading: {reading}")
        except BME280Error as e:
            logger.error(f"Scheduled BME280 reading failed: {e}")

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            last = self.last_reading.to_dict() if self.last_reading else None
            return {
                'sensor': self.device.get_sensor_info(),
                'last_reading': last,
                'seconds_since_last_reading': time.time() - self.last_reading.timestamp if self.last_reading else None,
                'last_error': self.last_error,
                'error_count': self.error_count,
            }


# GraphQL Types
class Reading(ObjectType):
    """GraphQL type for a combined sensor reading."""
    temperature_c = Float()
    pressure_hpa = Float()
    humidity_percent = Float()
    sensor_id = String()
    timestamp = Float()


class SensorInfo(ObjectType):
    """GraphQL type describing the sensor handle."""
    sensor_type = String()
    sensor_id = String()
    state = String()
    initialized = Boolean()
    calibration_loaded = Boolean()


class Query(ObjectType):
    """Defines the root GraphQL queries."""
    current_reading = Field(Reading)
    temperature = Float()
    pressure = Float()
    humidity = Float()
    sensor_info = Field(SensorInfo)

    def resolve_current_reading(self, info: Any) -> Reading:
        reading = info.context['monitor'].take_reading()
        return Reading(**reading.to_dict())

    def resolve_temperature(self, info: Any) -> float:
        return info.context['monitor'].device.get_temperature()

    def resolve_pressure(self, info: Any) -> float:
        return info.context['monitor'].device.get_pressure()

    def resolve_humidity(self, info: Any) -> float:
        return info.context['monitor'].device.get_humidity()

    def resolve_sensor_info(self, info: Any) -> SensorInfo:
        data = info.context['monitor'].device.get_sensor_info()
        return SensorInfo(
            sensor_type=data['sensor_type'],
            sensor_id=data['sensor_id'],
            state=data['state'],
            initialized=data['initialized'],
            calibration_loaded=data['calibration_loaded'],
        )


schema = Schema(query=Query)


def _monitor() -> SensorMonitor:
    return current_app.extensions['bme280_monitor']


def _single_value(key: str, read) -> Response:
    monitor = _monitor()
    try:
        value = read()
    except BME280Error as e:
        logger.error(f"Reading {key} failed: {e}")
        return jsonify({'error': str(e)}), 503
    return jsonify({
        key: value,
        'sensor_id': monitor.device.sensor_id,
        'timestamp': time.time(),
    })


def create_app(device: BME280, poll_interval: Optional[float] = None, start_scheduler: bool = True) -> Flask:
    """Builds the Flask application around an initialized device.

    Args:
        device: The BME280 handle to serve. It must already be initialized.
        poll_interval: Seconds between background refreshes of the cached
            reading. None disables the background job.
        start_scheduler: Set to False to build the app without starting the
            scheduler (e.g. under test).

    Returns:
        The configured Flask application.
    """
    app = Flask(__name__)

    allowed_origins = os.environ.get('ALLOWED_ORIGINS', 'http://localhost:5000').split(',')
    CORS(app, resources={
        r"/*": {
            "origins": allowed_origins,
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "max_age": 3600
        }
    })

    monitor = SensorMonitor(device)
    app.extensions['bme280_monitor'] = monitor

    if poll_interval and start_scheduler:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            monitor.refresh,
            'interval',
            seconds=poll_interval,
            id='bme280_refresh',
            name=f'BME280 reading every {poll_interval}s'
        )
        scheduler.start()
        app.extensions['bme280_scheduler'] = scheduler
        logger.info(f"Scheduler started - refreshing reading every {poll_interval}s")

    @app.route('/api/reading')
    def reading() -> Response:
        try:
            result = _monitor().take_reading()
        except BME280Error as e:
            logger.error(f"Reading failed: {e}")
            return jsonify({'error': str(e)}), 503
        return jsonify(result.to_dict())

    @app.route('/api/temperature')
    def temperature() -> Response:
        return _single_value('temperature_c', _monitor().device.get_temperature)

    @app.route('/api/pressure')
    def pressure() -> Response:
        return _single_value('pressure_hpa', _monitor().device.get_pressure)

    @app.route('/api/humidity')
    def humidity() -> Response:
        return _single_value('humidity_percent', _monitor().device.get_humidity)

    @app.route('/api/status')
    def status() -> Response:
        return jsonify(_monitor().get_status())

    @app.route('/graphql', methods=['POST'])
    def graphql_endpoint() -> Response:
        """Handles incoming GraphQL queries."""
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'No JSON data provided'}), 400

        query = data.get('query')
        variables = data.get('variables', {})
        if not query:
            return jsonify({'error': 'No query provided'}), 400

        result = schema.execute(query, variable_values=variables, context_value={'monitor': _monitor()})

        response_data = {'data': result.data}
        if result.errors:
            response_data['errors'] = [str(error) for error in result.errors]
        return jsonify(response_data)

    return app


def shutdown_app(app: Flask) -> None:
    """Stops the scheduler and releases the device."""
    scheduler = app.extensions.pop('bme280_scheduler', None)
    if scheduler:
        scheduler.shutdown()
        logger.info("Scheduler shutdown complete")
    app.extensions['bme280_monitor'].device.close()


def create_device(config: DeviceConfig, mock: bool = False) -> BME280:
    """Creates and initializes a BME280 handle, simulated when `mock` is set."""
    if mock:
        logger.warning("Using simulated BME280")
        device = BME280(config, bus=SimulatedBus(address=config.address), sleep=lambda _: None)
    else:
        device = BME280(config)
    try:
        device.initialize()
    except BME280Error:
        device.close()
        raise
    return device


def create_app_from_config(path: str = CONFIG_FILE, mock: Optional[bool] = None) -> Flask:
    """Builds the application from a config.json file.

    `mock` defaults to the BME280_MOCK environment variable.
    """
    cfg = load_config(path)
    if mock is None:
        mock = os.environ.get('BME280_MOCK', '').lower() in ('1', 'true', 'yes')
    device = create_device(DeviceConfig.from_dict(cfg.get('sensor', {})), mock=mock)
    return create_app(device, poll_interval=cfg.get('server', {}).get('poll_interval'))
