#!/usr/bin/env python3
"""
Smoke test script that runs each keepalive operation once against the cluster.

This script:
1. Connects and probes the configured collection
2. Writes a keepalive document and reads it back
3. Increments the counter document
4. Exits non-zero on any failure or if the written document is not readable
"""

import sys
import logging
from pathlib import Path

# Add parent directory to path to import keepalive modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from keepalive.config import ConfigError, get_settings
from keepalive.connector import ClusterConnection, ConnectionSetupError
from keepalive.operations import OperationError, OperationExecutor
from keepalive.utils.logging import configure_logging


def run_smoke(executor: OperationExecutor) -> bool:
    """
    Run write, read-back and increment once each.

    Args:
        executor: Executor bound to the target collection

    Returns:
        True if every step passed
    """
    try:
        written = executor.write()
        print(f"  ✓ {written.describe()}")

        read_back = executor.read()
        if not read_back.found or read_back.document_id != written.document_id:
            print(f"  ✗ document {written.document_id} not readable after write")
            return False
        print(f"  ✓ {read_back.describe()}")

        incremented = executor.increment()
        print(f"  ✓ {incremented.describe()}")
    except OperationError as e:
        print(f"  ✗ {e}")
        return False

    return True


def main():
    configure_logging("INFO")
    try:
        settings = get_settings()
    except ConfigError as e:
        logging.error(str(e))
        sys.exit(1)

    print(f"Smoke run against {settings.cluster_id} ({settings.bucket_name}/{settings.collection_path})")
    try:
        with ClusterConnection(settings) as connection:
            ok = run_smoke(OperationExecutor(connection.collection, settings))
    except ConnectionSetupError as e:
        logging.error(str(e))
        sys.exit(1)

    print("✓ Smoke run passed" if ok else "✗ Smoke run failed")
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
