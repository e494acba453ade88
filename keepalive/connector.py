"""MongoDB cluster connection and liveness probe.

Cluster keepalive: periodic liveness operations against a MongoDB cluster.
"""

import logging
import math
from typing import Any, Callable, Optional

import certifi
import pymongo
from pymongo import MongoClient
from pymongo.errors import OperationFailure, PyMongoError

from keepalive.config import Settings

APP_NAME = "cluster-keepalive"

# TTL index on keepalive documents; the store deletes them once expire_at passes
EXPIRY_FIELD = "expire_at"
EXPIRY_INDEX_NAME = "keepalive_expire_at"


class ConnectionSetupError(Exception):
    """Raised when the initial connection or liveness probe fails."""


def build_client_options(settings: Settings) -> dict:
    """
    Build MongoClient keyword options from settings.

    Args:
        settings: Keepalive settings

    Returns:
        Keyword arguments for MongoClient
    """
    # Sub-millisecond timeouts round up; 0 would disable the connect timeout
    timeout_ms = max(1, math.ceil(settings.operation_timeout * 1000))
    options = {
        "username": settings.username,
        "password": settings.password,
        "appname": APP_NAME,
        "serverSelectionTimeoutMS": timeout_ms,
        "connectTimeoutMS": timeout_ms,
    }
    if settings.tls_enabled:
        # Configure TLS with the certifi CA bundle
        options.update(
            tls=True,
            tlsCAFile=certifi.where(),
            tlsAllowInvalidCertificates=False,
            tlsAllowInvalidHostnames=False,
        )
    return options


class ClusterConnection:
    """One client connection to the cluster plus handles for the target collection.

    Use as a context manager; the client is released on every exit path,
    including a failed connect.
    """

    def __init__(self, settings: Settings, client_factory: Callable[..., Any] = MongoClient):
        self.settings = settings
        self._client_factory = client_factory
        self.client: Optional[Any] = None
        self.database = None
        self.collection = None

    def connect(self) -> "ClusterConnection":
        """Open the client, resolve handles and probe the target collection.

        Raises:
            ConnectionSetupError: If the client cannot be created or the probe fails
        """
        settings = self.settings
        logging.info(f"Connecting to cluster {settings.cluster_id}")
        try:
            self.client = self._client_factory(settings.connection_string, **build_client_options(settings))
        except (PyMongoError, ValueError, TypeError) as e:
            raise ConnectionSetupError(f"failed to create cluster connection: {e}") from e

        try:
            self.database = self.client[settings.bucket_name]
            self.collection = self.database[settings.collection_path]
            self.probe()
        except PyMongoError as e:
            # Invalid database or collection name
            self.close()
            raise ConnectionSetupError(f"failed to open bucket '{settings.bucket_name}': {e}") from e
        except BaseException:
            self.close()
            raise

        self.ensure_expiry_index()
        return self

    def probe(self) -> None:
        """Ping the bucket database and read from the target collection.

        Raises:
            ConnectionSetupError: If either call fails or times out
        """
        settings = self.settings
        try:
            with pymongo.timeout(settings.operation_timeout):
                self.database.command("ping")
                self.collection.find_one({}, projection={"_id": 1})
        except OperationFailure as e:
            if e.code == 18:
                logging.error(
                    f"Authentication failed for user '{settings.username}' on {settings.cluster_id}. "
                    "Check USERNAME and PASSWORD."
                )
            raise ConnectionSetupError(
                f"failed to ping scope '{settings.scope_name}', collection '{settings.collection_name}': {e}"
            ) from e
        except PyMongoError as e:
            raise ConnectionSetupError(
                f"failed to ping scope '{settings.scope_name}', collection '{settings.collection_name}': {e}"
            ) from e

    def ensure_expiry_index(self) -> bool:
        """Create the TTL index on the expiry field if it is missing.

        Returns:
            True if the index exists afterwards
        """
        try:
            with pymongo.timeout(self.settings.operation_timeout):
                self.collection.create_index(EXPIRY_FIELD, expireAfterSeconds=0, name=EXPIRY_INDEX_NAME)
            return True
        except PyMongoError as e:
            # Keepalive still works without it; documents just won't self-clean
            logging.warning(f"Could not create expiry index on '{self.settings.collection_path}': {e}")
            return False

    def close(self) -> None:
        """Release the client connection (idempotent)."""
        if self.client is not None:
            self.client.close()
            self.client = None
            self.database = None
            self.collection = None
            logging.info("Disconnected from cluster")

    def __enter__(self) -> "ClusterConnection":
        return self.connect()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
