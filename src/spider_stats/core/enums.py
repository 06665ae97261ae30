"""Enumerations used across the statistics service."""

from enum import Enum


class EventKind(str, Enum):
    """Statistics message kinds understood by the decoder."""

    SUCCESS = "Success"
    FAILED = "Failed"
    START = "Start"
    EXIT = "Exit"
    TOTAL = "Total"
    DOWNLOAD_SUCCESS = "DownloadSuccess"
    DOWNLOAD_FAILED = "DownloadFailed"
    PRINT = "Print"


class OwnerState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"


class ServiceState(str, Enum):
    STOPPED = "stopped"
    INITIALIZING = "initializing"
    RUNNING = "running"
    DRAINING = "draining"


class BusBackend(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"


class StoreBackend(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"
    POSTGRES = "postgres"


class DropReason(str, Enum):
    """Why a statistics message was discarded (metrics label)."""

    MALFORMED = "malformed"
    EMPTY = "empty"
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_OWNER = "invalid_owner"
    STORE_UNAVAILABLE = "store_unavailable"
    NOT_RUNNING = "not_running"
