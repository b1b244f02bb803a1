"""State store: the single writer of reconciled per-image state.

The store owns the mapping name -> ImageState. Every other component either
reads snapshots or asks the store to apply a change; all writes are
serialized through one asyncio.Lock.

Records are immutable pydantic models. A write replaces a record wholesale,
so a reader holding a snapshot never observes a half-applied update.

Transient membership kept next to the records:
    starting / stopping   in-flight start or stop (never both for one image)
    verifying             launch awaiting confirmation; periodic reconciliation
                          leaves these images alone so the optimistic state
                          is not overwritten before the image had time to boot

Listeners are called synchronously after a write that changed something, with
the set of affected names.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable

from avd_manager._logging import get_logger
from avd_manager.constants import (
    NO_IMAGES_PLACEHOLDER_NAME,
    TIMEOUT_PLACEHOLDER_NAME,
)
from avd_manager.models import ImageState, InventoryStatus, TransitionIntent, VirtualDeviceImage

logger = get_logger(__name__)

StoreListener = Callable[[frozenset[str]], None]

_PLACEHOLDERS: dict[InventoryStatus, VirtualDeviceImage] = {
    InventoryStatus.EMPTY: VirtualDeviceImage(
        name=NO_IMAGES_PLACEHOLDER_NAME,
        device="Check Android SDK",
        api_level="??",
        target="Create AVDs in Android Studio",
        metadata_source="placeholder",
    ),
    InventoryStatus.TIMED_OUT: VirtualDeviceImage(
        name=TIMEOUT_PLACEHOLDER_NAME,
        device="SDK Configuration Needed",
        api_level="??",
        target="Check Android SDK Setup",
        metadata_source="placeholder",
    ),
}


class StateStore:
    """Authoritative, serialized mapping of image name to observed state."""

    def __init__(self) -> None:
        self._records: dict[str, ImageState] = {}
        self._starting: set[str] = set()
        self._stopping: set[str] = set()
        self._verifying: set[str] = set()
        self._status = InventoryStatus.LOADING
        self._version = 0
        self._lock = asyncio.Lock()
        self._listeners: list[StoreListener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def status(self) -> InventoryStatus:
        return self._status

    @property
    def version(self) -> int:
        """Incremented on every write that changed something."""
        return self._version

    @property
    def has_images(self) -> bool:
        return bool(self._records)

    def snapshot(self) -> list[ImageState]:
        """Consistent copy of all records, in enumeration order."""
        return list(self._records.values())

    def get(self, name: str) -> ImageState | None:
        return self._records.get(name)

    def names(self) -> list[str]:
        return list(self._records)

    def is_running(self, name: str) -> bool:
        record = self._records.get(name)
        return record.is_running if record is not None else False

    def intent_of(self, name: str) -> TransitionIntent | None:
        if name in self._starting:
            return TransitionIntent.STARTING
        if name in self._stopping:
            return TransitionIntent.STOPPING
        return None

    def is_verifying(self, name: str) -> bool:
        return name in self._verifying

    @property
    def placeholder(self) -> VirtualDeviceImage | None:
        """Sentinel entry for an empty or timed-out inventory, if one applies."""
        if self._records:
            return None
        return _PLACEHOLDERS.get(self._status)

    def view(self) -> list[ImageState]:
        """Snapshot for presentation: the records, or the placeholder entry."""
        if placeholder := self.placeholder:
            return [ImageState(image=placeholder)]
        return self.snapshot()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_status(self, status: InventoryStatus) -> None:
        async with self._lock:
            if self._status is status:
                return
            self._status = status
            self._notify(frozenset())

    async def replace_images(self, images: Iterable[VirtualDeviceImage]) -> None:
        """Rebuild the mapping from a full enumeration.

        Known names keep their last observed ``is_running`` until the next
        detection pass; intent flags are re-applied from the intent sets.
        """
        async with self._lock:
            previous = self._records
            self._records = {
                image.name: ImageState(
                    image=image,
                    is_running=previous[image.name].is_running if image.name in previous else False,
                    starting=image.name in self._starting,
                    stopping=image.name in self._stopping,
                )
                for image in images
            }
            self._status = InventoryStatus.READY if self._records else InventoryStatus.EMPTY
            self._notify(frozenset(previous) | frozenset(self._records))

    async def begin_intent(self, name: str, intent: TransitionIntent) -> bool:
        """Claim an in-flight operation for *name*.

        Returns False (and changes nothing) if the image already has a start
        or stop in flight.
        """
        async with self._lock:
            if name in self._starting or name in self._stopping:
                return False
            target = self._starting if intent is TransitionIntent.STARTING else self._stopping
            target.add(name)
            self._patch(name, **{intent.value: True})
            self._notify(frozenset({name}))
            return True

    async def end_intent(self, name: str, intent: TransitionIntent) -> None:
        async with self._lock:
            target = self._starting if intent is TransitionIntent.STARTING else self._stopping
            if name not in target:
                return
            target.discard(name)
            self._patch(name, **{intent.value: False})
            self._notify(frozenset({name}))

    async def set_verifying(self, name: str, verifying: bool) -> None:
        async with self._lock:
            if verifying:
                self._verifying.add(name)
            else:
                self._verifying.discard(name)

    async def set_running(self, name: str, running: bool) -> bool:
        """Patch one image's running flag. Returns True if it changed."""
        async with self._lock:
            record = self._records.get(name)
            if record is None or record.is_running == running:
                return False
            self._patch(name, is_running=running)
            logger.debug("Running state updated", extra={"image": name, "is_running": running})
            self._notify(frozenset({name}))
            return True

    async def apply_running_set(self, running: set[str]) -> frozenset[str]:
        """Merge a detection pass: patch only records whose flag differs.

        Images with an in-flight operation or a pending launch verification
        are skipped. Listeners are notified only if at least one record changed.

        Returns:
            Names whose ``is_running`` changed
        """
        async with self._lock:
            busy = self._starting | self._stopping | self._verifying
            changed = frozenset(
                name
                for name, record in self._records.items()
                if name not in busy and record.is_running != (name in running)
            )
            for name in changed:
                self._patch(name, is_running=name in running)
            if changed:
                logger.info(
                    "Reconciled running state",
                    extra={"changed": sorted(changed), "running": sorted(running & changed)},
                )
                self._notify(changed)
            return changed

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _patch(self, name: str, **changes: bool) -> None:
        record = self._records.get(name)
        if record is not None:
            self._records[name] = record.model_copy(update=changes)

    def _notify(self, changed: frozenset[str]) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception:
                logger.exception("State listener failed", extra={"listener": getattr(listener, "__name__", repr(listener))})
