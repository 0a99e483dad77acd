#
# Copyright 2025 The EchonetLocal contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""Command-line interface for Echonet Local."""

import asyncio
import argparse
import logging
import logging.handlers
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from .api import EchonetLocalAPI
from .config import BridgeConfig, DEFAULT_DISCOVERY_TIMEOUT, DEFAULT_REFRESH_INTERVAL
from .gateway import EchonetGateway
from .routes import create_app, register_routes

# Logger will be configured in main() based on daemon/console mode
logger = logging.getLogger(__name__)

# Global variables
echonet_api: Optional[EchonetLocalAPI] = None
server: Optional[uvicorn.Server] = None
shutdown_event: Optional[asyncio.Event] = None


def build_config(args) -> BridgeConfig:
    return BridgeConfig(
        refresh_interval=args.refresh_interval,
        request_timeout=args.request_timeout,
        devices=list(args.device or []),
        discovery_timeout=args.discovery_timeout,
    )


def uvicorn_log_config(args) -> dict:
    """uvicorn logging that matches our own format and avoids duplicate lines."""
    loggers = {
        "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.access": {"handlers": ["default"], "level": "INFO", "propagate": False},
    }

    if args.syslog:
        # Hand everything to the root logger, which only has the syslog handler
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "loggers": {
                "uvicorn": {"handlers": [], "level": "INFO", "propagate": True},
                "uvicorn.error": {"handlers": [], "level": "INFO", "propagate": True},
                "uvicorn.access": {"handlers": [], "level": "WARNING", "propagate": True},
            },
        }

    if args.daemon:
        formatter = {"format": "%(levelname)-8s %(message)s"}
    else:
        formatter = {"format": "%(asctime)s %(levelname)s %(message)s", "datefmt": "%Y-%m-%d %H:%M:%S"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": loggers,
    }


async def run_server(args):
    """Run the Echonet Local server."""
    global echonet_api, server, shutdown_event

    shutdown_event = asyncio.Event()

    def handle_signal(signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

        # Immediately close SSE streams
        if echonet_api and echonet_api.event_listeners:
            logger.info("Closing SSE event streams...")
            for queue in list(echonet_api.event_listeners):
                queue.put_nowait(None)

        if server:
            server.should_exit = True

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        db_path = Path(os.path.expanduser(args.state))
        config = build_config(args)

        # An invalid configuration leaves the API inert; the server still runs
        # so /status can report the problem.
        echonet_api = EchonetLocalAPI(str(db_path), config)

        app = create_app()
        register_routes(app, lambda: echonet_api)

        if not echonet_api.disabled:
            gateway = EchonetGateway(request_timeout=config.request_timeout_seconds, bind_address=args.bind)
            try:
                await gateway.start()
            except OSError as e:
                logger.error(f"Failed to open ECHONET Lite port {gateway.port}: {e}")
                raise
            await echonet_api.initialize(gateway)

        logger.info("*** Echonet Local ready! ***")
        logger.info(f"API Server: http://0.0.0.0:{args.port}")
        logger.info(f"Documentation: http://0.0.0.0:{args.port}/docs")
        logger.info(f"Status: http://0.0.0.0:{args.port}/status")
        logger.info(f"Accessories: http://0.0.0.0:{args.port}/accessories")
        logger.info(f"Live Events: http://0.0.0.0:{args.port}/events")

        server_config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=args.port,
            log_config=uvicorn_log_config(args),
            access_log=True
        )
        server = uvicorn.Server(server_config)
        await server.serve()

    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down gracefully...")
    except Exception as e:
        logger.error(f"ERROR: Failed to start Echonet Local: {e}")
        raise
    finally:
        if echonet_api:
            logger.info("Performing cleanup...")
            await echonet_api.cleanup()

        if args.pid_file:
            pid_path = Path(args.pid_file)
            try:
                if pid_path.exists():
                    pid_path.unlink()
                    logger.info(f"PID file removed: {pid_path}")
            except OSError as e:
                logger.warning(f"Failed to remove PID file: {e}")


def setup_logging(args):
    """Configure the root logger for console, daemon or syslog mode."""
    if args.syslog:
        syslog_address = args.syslog
        if ':' in syslog_address and not syslog_address.startswith('/'):
            # Network address (host:port)
            host, port = syslog_address.rsplit(':', 1)
            syslog_address = (host, int(port))

        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=syslog_address,
                facility=logging.handlers.SysLogHandler.LOG_DAEMON
            )
            syslog_handler.setFormatter(logging.Formatter(
                'echonet-local[%(process)d]: %(levelname)s %(message)s'
            ))

            root_logger = logging.getLogger()
            root_logger.setLevel(logging.INFO)
            root_logger.handlers = [syslog_handler]

            logger.info("Logging to syslog: %s", args.syslog)
        except OSError as e:
            # Fall back to console if syslog fails
            logging.basicConfig(
                level=logging.INFO,
                format='%(asctime)s %(levelname)s %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S',
                stream=sys.stdout,
                force=True
            )
            logger.error(f"Failed to connect to syslog ({args.syslog}): {e}")
            logger.info("Falling back to console logging")
    elif args.daemon:
        # No timestamp, syslog adds it
        logging.basicConfig(
            level=logging.INFO,
            format='%(levelname)s %(message)s',
            stream=sys.stdout,
            force=True
        )
    else:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s %(levelname)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
            stream=sys.stdout,
            force=True
        )

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.info("Verbose logging enabled")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Echonet Local - REST API for ECHONET Lite air conditioners",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Discover air conditioners on the local network (console mode)
  python -m echonet_local
  echonet-local

  # Also query appliances that do not answer multicast discovery
  echonet-local --device 192.168.1.50 --device 192.168.1.51

  # Poll every 5 minutes and give up on a request after 10 seconds
  echonet-local --refresh-interval 5 --request-timeout 10

  # Run as system daemon
  echonet-local --daemon --pid-file /var/run/echonet-local.pid

  # Send logs to local syslog
  echonet-local --syslog /dev/log

  # Debug mode with verbose logging (includes raw ECHONET Lite frames)
  echonet-local --verbose

API Endpoints:
  GET  /                                  - API information
  GET  /status                            - System status
  GET  /accessories                       - All air conditioners
  GET  /accessories/{id}/{characteristic} - One characteristic value
  POST /accessories/{id}/set              - Change power, mode, thresholds, swing
  GET  /events                            - Server-Sent Events for real-time updates
  POST /refresh                           - Refresh all appliances now
        """
    )
    parser.add_argument("--state", default="~/.echonet-local.db",
                        help="Path to state database (default: ~/.echonet-local.db)")
    parser.add_argument("--port", type=int, default=4410,
                        help="Port for REST API server (default: 4410)")
    parser.add_argument("--bind", default="0.0.0.0",
                        help="Local address for ECHONET Lite traffic (default: 0.0.0.0)")
    parser.add_argument("--refresh-interval", type=float, default=DEFAULT_REFRESH_INTERVAL,
                        help=f"Minutes between status polls, at least 1 (default: {DEFAULT_REFRESH_INTERVAL})")
    parser.add_argument("--request-timeout",
                        help="Seconds to wait for an appliance to answer (default: 60)")
    parser.add_argument("--device", action="append", metavar="IP",
                        help="Address of an appliance to query directly during discovery (repeatable)")
    parser.add_argument("--discovery-timeout", type=float, default=DEFAULT_DISCOVERY_TIMEOUT,
                        help=f"Seconds to listen for appliances after start-up (default: {DEFAULT_DISCOVERY_TIMEOUT:g})")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable verbose logging (DEBUG level)")
    parser.add_argument("--daemon", action="store_true",
                        help="Run in daemon mode (logging without timestamps, auto-enables --pid-file)")
    parser.add_argument("--syslog",
                        help="Send logs to syslog instead of stdout (e.g., /dev/log, localhost:514, or remote.server:514)")
    parser.add_argument("--pid-file",
                        help="Write process ID to specified file (useful for daemon mode)")
    return parser


def main():
    """Main entry point for the CLI."""
    args = build_parser().parse_args()

    # Daemon mode implies PID file if not specified
    if args.daemon and not args.pid_file:
        args.pid_file = "/var/run/echonet-local.pid" if sys.platform != "win32" else "echonet-local.pid"

    setup_logging(args)

    if args.pid_file:
        pid_path = Path(args.pid_file)
        try:
            pid_path.write_text(str(os.getpid()))
            logger.info(f"PID file written: {pid_path}")
        except OSError as e:
            logger.error(f"Failed to write PID file: {e}")
            sys.exit(1)

    try:
        asyncio.run(run_server(args))
    except KeyboardInterrupt:
        logger.info("*** Shutdown complete ***")
    except Exception as e:
        logger.error(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
