"""core/mixer/ports.py — Contracts between the engine and its collaborators.

The engine reads group configuration through :class:`LayoutSource` and emits
console writes through :class:`CommandSink`. Concrete implementations live in
``ingestion/`` (JSON layout store, console bridge); tests supply fakes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.mixer.layout import LayoutView
from core.mixer.types import BusContext, ConsoleCommand, FloorMode, GroupKey


@runtime_checkable
class LayoutSource(Protocol):
    """Read-mostly access to group configuration, re-resolved on every event."""

    def view(self, ctx: BusContext) -> LayoutView:
        """Return the normalized layout for one bus context."""
        ...

    def set_master(self, key: GroupKey, offset_db: float) -> None:
        """Persist a group's new master offset."""
        ...

    def set_mode(self, key: GroupKey, mode: FloorMode) -> None:
        """Persist a group's floor policy."""
        ...


@runtime_checkable
class CommandSink(Protocol):
    """Fire-and-forget outbound console writes."""

    def send(self, command: ConsoleCommand) -> None:
        """Queue one command. Must not block waiting for confirmation.

        Raises:
            ConnectionError: If the command could not be handed to the console.
        """
        ...
