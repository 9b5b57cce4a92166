"""
WSGI entry point for bme280hub.

Builds the Flask app from config.json in the working directory. Set
BME280_MOCK=1 to serve a simulated sensor.
"""

from .app import create_app_from_config

application = create_app_from_config()

# Example Gunicorn entrypoint command (one worker: the device handle is per process):
# gunicorn -w 1 -k gthread -b 0.0.0.0:5000 bme280hub.wsgi:application --log-level info
