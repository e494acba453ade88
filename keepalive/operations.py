"""Keepalive operations: read, write and atomic increment.

Cluster keepalive: periodic liveness operations against a MongoDB cluster.
"""

import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pymongo
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from keepalive.config import (
    MODE_INCREMENT,
    MODE_RANDOM,
    MODE_READ,
    MODE_WRITE,
    READ_RANDOM,
    Settings,
)
from keepalive.connector import EXPIRY_FIELD

OP_READ = "read"
OP_WRITE = "write"
OP_INCREMENT = "increment"


class OperationError(Exception):
    """A keepalive operation failed; recoverable, the scheduler keeps going."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} operation failed: {message}")
        self.operation = operation


class DocumentCounter:
    """Monotonic in-process document counter, safe across threads."""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def advance(self) -> int:
        """Increment and return the new value."""
        with self._lock:
            self._value += 1
            return self._value

    def current(self) -> int:
        with self._lock:
            return self._value


@dataclass
class OperationOutcome:
    """Result of a single keepalive operation."""

    operation: str
    document_id: str
    counter: int
    found: bool = True
    elapsed_seconds: float = 0.0

    def describe(self) -> str:
        if self.operation == OP_READ:
            state = "retrieved" if self.found else "not found (ok)"
            return f"read document {self.document_id}: {state}"
        if self.operation == OP_WRITE:
            return f"created document with counter: {self.counter}"
        return f"incremented {self.document_id} to {self.counter}"


def build_keepalive_document(counter: int, cluster_id: str, expiry_seconds: float,
                             now: Optional[float] = None) -> Dict[str, Any]:
    """
    Build the keepalive document for a counter value.

    Args:
        counter: Counter value used as the document identity
        cluster_id: Masked connection string of the writing cluster
        expiry_seconds: Retention window before the store deletes the document
        now: Epoch seconds to stamp (default: current time)

    Returns:
        Document ready for insert_one
    """
    if now is None:
        now = time.time()
    doc_id = str(counter)
    return {
        "_id": doc_id,
        "id": doc_id,
        "timestamp": int(now),
        "value": f"keepalive-value-{counter}",
        "operation": "keepalive",
        "cluster": cluster_id,
        EXPIRY_FIELD: datetime.fromtimestamp(now, tz=timezone.utc) + timedelta(seconds=expiry_seconds),
    }


class OperationExecutor:
    """Runs keepalive operations against one collection.

    The executor owns its DocumentCounter; pass one in to share it between
    executors.
    """

    def __init__(self, collection, settings: Settings, counter: Optional[DocumentCounter] = None,
                 rng: Optional[random.Random] = None):
        self.collection = collection
        self.settings = settings
        self.counter = counter if counter is not None else DocumentCounter()
        self.rng = rng if rng is not None else random.Random()

    def choose_operation(self) -> str:
        """Pick the operation for this tick according to the operation mode."""
        mode = self.settings.operation_mode
        if mode == MODE_RANDOM:
            # 50% chance to perform read or write
            return OP_READ if self.rng.randint(0, 1) == 0 else OP_WRITE
        if mode == MODE_READ:
            return OP_READ
        if mode == MODE_WRITE:
            return OP_WRITE
        if mode == MODE_INCREMENT:
            return OP_INCREMENT
        raise ValueError(f"unknown operation mode {mode!r}")

    def run_once(self) -> OperationOutcome:
        """Run one keepalive operation chosen by the operation mode.

        Raises:
            OperationError: If the operation fails
        """
        operation = self.choose_operation()
        if operation == OP_READ:
            return self.read()
        if operation == OP_WRITE:
            return self.write()
        return self.increment()

    def read_target(self) -> int:
        """Counter value the next read targets, per the read policy."""
        current = self.counter.current()
        if self.settings.read_policy == READ_RANDOM and current > 0:
            return self.rng.randint(1, current)
        return current

    def read(self) -> OperationOutcome:
        """Fetch a keepalive document by id; a missing document is not an error."""
        target = self.read_target()
        doc_id = str(target)
        started = time.monotonic()
        try:
            with pymongo.timeout(self.settings.operation_timeout):
                doc = self.collection.find_one({"_id": doc_id})
        except PyMongoError as e:
            raise OperationError(OP_READ, str(e)) from e

        elapsed = time.monotonic() - started
        if doc is None:
            logging.debug(f"Document {doc_id} not found; read path exercised")
        return OperationOutcome(OP_READ, doc_id, target, found=doc is not None, elapsed_seconds=elapsed)

    def write(self) -> OperationOutcome:
        """Insert a new keepalive document under the next counter value."""
        counter = self.counter.advance()
        document = build_keepalive_document(counter, self.settings.cluster_id, self.settings.document_expiry)
        started = time.monotonic()
        try:
            with pymongo.timeout(self.settings.operation_timeout):
                self.collection.insert_one(document)
        except PyMongoError as e:
            raise OperationError(OP_WRITE, str(e)) from e

        return OperationOutcome(OP_WRITE, document["_id"], counter, elapsed_seconds=time.monotonic() - started)

    def increment(self) -> OperationOutcome:
        """Atomically increment the shared counter document, creating it at 1."""
        doc_id = self.settings.counter_document_id
        started = time.monotonic()
        try:
            with pymongo.timeout(self.settings.operation_timeout):
                doc = self.collection.find_one_and_update(
                    {"_id": doc_id},
                    {
                        "$inc": {"value": 1},
                        "$set": {"updated_at": datetime.now(timezone.utc)},
                    },
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
        except PyMongoError as e:
            raise OperationError(OP_INCREMENT, str(e)) from e

        value = int(doc["value"]) if doc else 1
        return OperationOutcome(OP_INCREMENT, doc_id, value, elapsed_seconds=time.monotonic() - started)
