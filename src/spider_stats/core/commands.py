"""Typed commands produced by the message decoder.

Every statistics message kind maps to exactly one frozen command class.
The engine dispatches on the class, never on the raw kind string.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Command:
    """Base for every aggregation command."""

    owner_id: str


@dataclass(frozen=True)
class RecordSuccess(Command):
    pass


@dataclass(frozen=True)
class RecordFailed(Command):
    count: int


@dataclass(frozen=True)
class RecordStart(Command):
    pass


@dataclass(frozen=True)
class RecordExit(Command):
    pass


@dataclass(frozen=True)
class RecordTotal(Command):
    count: int


@dataclass(frozen=True)
class RecordDownloadSuccess(Command):
    count: int
    bytes: int


@dataclass(frozen=True)
class RecordDownloadFailed(Command):
    count: int
    bytes: int


@dataclass(frozen=True)
class RequestSnapshot(Command):
    pass
