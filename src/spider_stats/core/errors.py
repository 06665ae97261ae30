"""Custom exception hierarchy for the statistics service."""


class StatisticsError(Exception):
    """Base exception for all statistics service errors."""


# --- Configuration ---
class ConfigError(StatisticsError):
    """Invalid or missing configuration."""


# --- Messages ---
class MessageError(StatisticsError):
    """A statistics message could not be turned into a command."""


class MalformedPayload(MessageError):
    """Payload fields do not match the kind's grammar."""

    def __init__(self, kind: str, payload: str, reason: str):
        self.kind = kind
        self.payload = payload
        self.reason = reason
        super().__init__(f"Malformed {kind} payload {payload!r}: {reason}")


# --- Validation ---
class ValidationError(StatisticsError):
    """A decoded command failed semantic validation."""


class InvalidQuantity(ValidationError):
    """Negative count or byte quantity."""

    def __init__(self, owner_id: str, field: str, value: int):
        self.owner_id = owner_id
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field} for owner {owner_id!r}: {value}")


class InvalidOwnerId(ValidationError):
    """Owner id is empty or whitespace."""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"Invalid owner id: {owner_id!r}")


# --- Storage ---
class StoreError(StatisticsError):
    """Counter store error."""


class StoreUnavailable(StoreError):
    """A counter store call failed."""


# --- Lifecycle ---
class StartupFailure(StatisticsError):
    """Counter store could not be made ready; the service did not start."""
