"""Statistics message decoder.

Turns a raw ``{kind, payload}`` message into a typed command.

Payload grammar:

  - ``Success``, ``Start``, ``Exit``, ``Print``: the whole payload is the
    owner id.
  - ``Failed``, ``Total``: ``owner_id,count``
  - ``DownloadSuccess``, ``DownloadFailed``: ``owner_id,count,bytes``

Unknown kinds and empty payloads decode to ``None``; a payload that does
not fit its kind's grammar raises :class:`MalformedPayload`.
"""

from __future__ import annotations

import logging
import re

from spider_stats.core.commands import (
    Command,
    RecordDownloadFailed,
    RecordDownloadSuccess,
    RecordExit,
    RecordFailed,
    RecordStart,
    RecordSuccess,
    RecordTotal,
    RequestSnapshot,
)
from spider_stats.core.enums import EventKind
from spider_stats.core.errors import MalformedPayload
from spider_stats.core.models import StatisticsMessage

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"\s*[+-]?\d+\s*")

# kind → (command class, number of integer fields after the owner id)
_GRAMMAR: dict[EventKind, tuple[type[Command], int]] = {
    EventKind.SUCCESS: (RecordSuccess, 0),
    EventKind.START: (RecordStart, 0),
    EventKind.EXIT: (RecordExit, 0),
    EventKind.PRINT: (RequestSnapshot, 0),
    EventKind.FAILED: (RecordFailed, 1),
    EventKind.TOTAL: (RecordTotal, 1),
    EventKind.DOWNLOAD_SUCCESS: (RecordDownloadSuccess, 2),
    EventKind.DOWNLOAD_FAILED: (RecordDownloadFailed, 2),
}


def _parse_int(kind: str, payload: str, raw: str) -> int:
    if not _INTEGER.fullmatch(raw):
        raise MalformedPayload(kind, payload, f"{raw!r} is not an integer")
    return int(raw)


def parse_command(kind: str, payload: str | None) -> Command | None:
    """Decode one ``kind``/``payload`` pair.

    Returns ``None`` for unknown kinds and empty payloads.

    Raises:
        MalformedPayload: wrong field count or non-integer numeric field.
    """
    try:
        event_kind = EventKind(kind)
    except ValueError:
        logger.debug("Ignoring unknown statistics kind %r", kind)
        return None

    if not payload:
        logger.warning("Statistics message %s has an empty payload", kind)
        return None

    command_cls, numeric_fields = _GRAMMAR[event_kind]
    if numeric_fields == 0:
        return command_cls(owner_id=payload)

    fields = payload.split(",")
    if len(fields) != numeric_fields + 1:
        raise MalformedPayload(
            kind,
            payload,
            f"expected {numeric_fields + 1} fields, got {len(fields)}",
        )

    owner_id, *raw_numbers = fields
    numbers = [_parse_int(kind, payload, raw) for raw in raw_numbers]
    if numeric_fields == 1:
        return command_cls(owner_id=owner_id, count=numbers[0])
    return command_cls(owner_id=owner_id, count=numbers[0], bytes=numbers[1])


def decode_message(message: StatisticsMessage | None) -> Command | None:
    """Decode a message delivered by the event channel."""
    if message is None:
        logger.warning("Statistics center received an empty message")
        return None
    return parse_command(message.kind, message.payload)
