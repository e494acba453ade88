"""Keepalive process entry point.

Cluster keepalive: periodic liveness operations against a MongoDB cluster.

Exit codes:
    0  clean shutdown after SIGINT/SIGTERM
    1  missing credentials, failed connection or failed liveness probe
"""

import logging
import os
import signal
import sys
import threading
import time
from typing import Any, Callable, Dict, Optional

from pymongo import MongoClient

from keepalive.config import ConfigError, load_env_file, load_settings
from keepalive.connector import ClusterConnection, ConnectionSetupError
from keepalive.operations import OperationExecutor
from keepalive.scheduler import KeepaliveScheduler
from keepalive.utils.durations import format_duration
from keepalive.utils.logging import configure_logging

EXIT_OK = 0
EXIT_FATAL = 1

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
SHUTDOWN_POLL_SECONDS = 0.2


def install_signal_handlers(shutdown: threading.Event) -> Dict[int, Any]:
    """
    Route termination signals to the shutdown event.

    Args:
        shutdown: Event set when a termination signal arrives

    Returns:
        Previous handlers, for restore_signal_handlers
    """
    def _handle(signum, frame):
        logging.info(f"Received {signal.Signals(signum).name}, shutting down")
        shutdown.set()

    previous = {}
    for sig in SHUTDOWN_SIGNALS:
        previous[sig] = signal.getsignal(sig)
        signal.signal(sig, _handle)
    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def run(shutdown: Optional[threading.Event] = None,
        client_factory: Callable[..., Any] = MongoClient,
        environ=None) -> int:
    """
    Load settings, connect, and keep the cluster alive until shutdown.

    Args:
        shutdown: Event that ends the run (default: set by SIGINT/SIGTERM)
        client_factory: Callable creating the MongoDB client
        environ: Environment mapping (default: os.environ)

    Returns:
        Process exit code
    """
    try:
        settings = load_settings(environ)
    except ConfigError as e:
        logging.critical(f"Invalid configuration: {e}")
        return EXIT_FATAL

    if shutdown is None:
        shutdown = threading.Event()
    previous_handlers = {}
    if threading.current_thread() is threading.main_thread():
        previous_handlers = install_signal_handlers(shutdown)

    try:
        with ClusterConnection(settings, client_factory=client_factory) as connection:
            logging.info("Successfully connected to cluster")
            logging.info(f"Bucket: {settings.bucket_name}, Scope: {settings.scope_name}, "
                         f"Collection: {settings.collection_name}")
            logging.info(f"Operation mode: {settings.operation_mode}, read policy: {settings.read_policy}, "
                         f"timeout: {format_duration(settings.operation_timeout)}")

            executor = OperationExecutor(connection.collection, settings)
            scheduler = KeepaliveScheduler(executor, settings.interval)
            scheduler.start()
            try:
                # Poll; the signal handler sets the event
                while not shutdown.is_set():
                    time.sleep(SHUTDOWN_POLL_SECONDS)
            finally:
                scheduler.stop()
                logging.info(
                    f"Keepalive stopped after {scheduler.tick_count} tick(s), "
                    f"{scheduler.failure_count} failure(s)"
                )
    except ConnectionSetupError as e:
        logging.critical(f"Failed to connect to cluster: {e}")
        return EXIT_FATAL
    finally:
        restore_signal_handlers(previous_handlers)

    return EXIT_OK


def main() -> None:
    """Console entry point."""
    configure_logging(os.getenv("LOG_LEVEL"))
    load_env_file()
    # .env may set LOG_LEVEL too
    if os.getenv("LOG_LEVEL"):
        configure_logging(os.getenv("LOG_LEVEL"))
    sys.exit(run())


if __name__ == "__main__":
    main()
