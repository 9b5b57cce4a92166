"""
Command-line entry point for bme280hub.

    bme280hub read [--combined] [--json]
    bme280hub serve [--host H] [--port P] [--interval S]

Device options (--bus, --address, --elevation) override the 'sensor' section
of the JSON config file. --mock runs against a simulated sensor.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .app import create_app, create_device, shutdown_app
from .config import CONFIG_FILE, device_config_from_file, load_config
from .errors import BME280Error

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.ERROR),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    for name in ['werkzeug', 'apscheduler']:
        logging.getLogger(name).setLevel(logging.ERROR)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='bme280hub', description='BME280 temperature/pressure/humidity reader')
    parser.add_argument('--config', default=CONFIG_FILE, help='Path to the JSON config file')
    parser.add_argument('--bus', type=int, help='I2C bus number (default from config: 1)')
    parser.add_argument('--address', help='I2C address, 0x76 or 0x77')
    parser.add_argument('--elevation', type=float, help='Sensor elevation in metres for sea-level pressure')
    parser.add_argument('--mock', action='store_true', help='Use a simulated sensor instead of the I2C bus')
    parser.add_argument('--log-level', help='Logging level (default from config: ERROR)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    read = subparsers.add_parser('read', help='Take a reading and print it')
    read.add_argument('--combined', action='store_true',
                      help='Derive all values from one conversion instead of one per quantity')
    read.add_argument('--json', action='store_true', help='Print the reading as JSON')

    serve = subparsers.add_parser('serve', help='Serve readings over HTTP')
    serve.add_argument('--host', help='Host to bind to')
    serve.add_argument('--port', type=int, help='Port to listen on')
    serve.add_argument('--interval', type=float, help='Seconds between background readings')
    return parser


def _read(device, args) -> int:
    if args.combined:
        result = device.read_all().to_dict()
    else:
        result = {
            'temperature_c': device.get_temperature(),
            'pressure_hpa': device.get_pressure(),
            'humidity_percent': device.get_humidity(),
            'sensor_id': device.sensor_id,
        }

    if args.json:
        print(json.dumps(result))
    else:
        print(f"Temperature: {result['temperature_c']:.1f} °C")
        print(f"Pressure:    {result['pressure_hpa']:.2f} hPa")
        print(f"Humidity:    {result['humidity_percent']:.1f} %")
    return 0


def _serve(device, args, server_cfg) -> int:
    host = args.host or server_cfg.get('host', '0.0.0.0')
    port = args.port or server_cfg.get('port', 5000)
    interval = args.interval if args.interval is not None else server_cfg.get('poll_interval')

    app = create_app(device, poll_interval=interval)
    logger.info(f"Starting bme280hub server on {host}:{port}")
    try:
        app.run(host=host, port=port, use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
    finally:
        shutdown_app(app)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_config(args.config)
    setup_logging(args.log_level or cfg.get('app', {}).get('log_level', 'ERROR'))

    try:
        config = device_config_from_file(args.config, overrides={
            'bus': args.bus,
            'address': args.address,
            'elevation': args.elevation,
        })
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        device = create_device(config, mock=args.mock)
    except BME280Error as e:
        logger.error(f"BME280 initialization failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == 'serve':
        return _serve(device, args, cfg.get('server', {}))

    try:
        return _read(device, args)
    except BME280Error as e:
        logger.error(f"BME280 reading failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        device.close()


if __name__ == '__main__':
    sys.exit(main())
