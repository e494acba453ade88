#!/usr/bin/env python3
"""
Quick cluster connection test script.

Usage:
    USERNAME=... PASSWORD=... CONNECTION_STRING='mongodb+srv://...' python quick_check_cluster.py

Prints "ok <cluster>" and exits 0 when the liveness probe succeeds.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from keepalive.config import ConfigError, get_settings
from keepalive.connector import ClusterConnection, ConnectionSetupError


def main():
    try:
        settings = get_settings()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print("Usage: USERNAME=... PASSWORD=... python quick_check_cluster.py", file=sys.stderr)
        sys.exit(1)

    try:
        with ClusterConnection(settings):
            print(f"ok {settings.cluster_id} {settings.bucket_name}/{settings.collection_path}")
        sys.exit(0)
    except ConnectionSetupError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
