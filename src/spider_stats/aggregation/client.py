"""Producer-side statistics client.

Crawl tasks use this to publish their lifecycle and outcome events onto
the statistics topic, encoded in the grammar the decoder reads.
"""

from __future__ import annotations

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
from spider_stats.core.interfaces import IEventBus
from spider_stats.core.models import StatisticsMessage

_KINDS: dict[type[Command], EventKind] = {
    RecordSuccess: EventKind.SUCCESS,
    RecordFailed: EventKind.FAILED,
    RecordStart: EventKind.START,
    RecordExit: EventKind.EXIT,
    RecordTotal: EventKind.TOTAL,
    RecordDownloadSuccess: EventKind.DOWNLOAD_SUCCESS,
    RecordDownloadFailed: EventKind.DOWNLOAD_FAILED,
    RequestSnapshot: EventKind.PRINT,
}


def encode_command(command: Command) -> StatisticsMessage:
    """Encode a command as the message the decoder turns back into it."""
    kind = _KINDS[type(command)]
    if isinstance(command, (RecordDownloadSuccess, RecordDownloadFailed)):
        payload = f"{command.owner_id},{command.count},{command.bytes}"
    elif isinstance(command, (RecordFailed, RecordTotal)):
        payload = f"{command.owner_id},{command.count}"
    else:
        payload = command.owner_id
    return StatisticsMessage(kind=kind.value, payload=payload)


class StatisticsClient:
    """Publishes statistics events for crawl tasks."""

    def __init__(self, bus: IEventBus, topic: str = "statistics-service") -> None:
        self._bus = bus
        self._topic = topic

    async def send(self, command: Command) -> StatisticsMessage:
        message = encode_command(command)
        await self._bus.publish(self._topic, message)
        return message

    async def start(self, owner_id: str) -> None:
        await self.send(RecordStart(owner_id))

    async def exit(self, owner_id: str) -> None:
        await self.send(RecordExit(owner_id))

    async def increment_success(self, owner_id: str) -> None:
        await self.send(RecordSuccess(owner_id))

    async def increment_failed(self, owner_id: str, count: int = 1) -> None:
        await self.send(RecordFailed(owner_id, count))

    async def increment_total(self, owner_id: str, count: int) -> None:
        await self.send(RecordTotal(owner_id, count))

    async def increment_download_success(
        self, owner_id: str, count: int, bytes_: int
    ) -> None:
        await self.send(RecordDownloadSuccess(owner_id, count, bytes_))

    async def increment_download_failed(
        self, owner_id: str, count: int, bytes_: int
    ) -> None:
        await self.send(RecordDownloadFailed(owner_id, count, bytes_))

    async def print_statistics(self, owner_id: str) -> None:
        await self.send(RequestSnapshot(owner_id))
