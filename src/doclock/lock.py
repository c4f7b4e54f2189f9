# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
The client-side handle for a lease held inside a stored document.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

from .data import LockData
from .exceptions import (
    AcquireLockError,
    DistributedLockError,
    InvalidLockArgumentError,
    NoSelectorConfiguredError,
    RefreshLockError,
    ReleaseLockError,
)
from .interface import LockStore, require
from .selector import DIRECT, ID_FIELD, FieldSelector

DEFAULT_STALE_LOCK_MULTIPLIER = 5
DEFAULT_RETRY_INTERVAL_SEC = 1.0


class LockState(Enum):
    """Enumeration for the lifecycle states of a lock handle."""
    UNACQUIRED = "UNACQUIRED"
    ACQUIRING = "ACQUIRING"
    HELD = "HELD"
    REFRESHING = "REFRESHING"
    RELEASING = "RELEASING"
    DISPOSED = "DISPOSED"


def _record_id(value: Any, name: str) -> Any:
    """Accepts either a document or a bare id and returns the id."""
    require(value, name)
    if isinstance(value, dict):
        require(value.get(ID_FIELD), f"{name}.{ID_FIELD}")
        return value[ID_FIELD]
    return value


class DistributedLock:
    """
    A handle on one lease over a lockable record.

    The handle is created per acquisition attempt. It walks through
    acquire -> (refresh)* -> release and becomes permanently inert once it is
    disposed. The only state it keeps is a cached copy of what the store
    returned; ownership is decided solely by the store's conditional updates.

    Failing to acquire, refresh, or release is reported through the return
    value. Pass `throw_on_failure=True` to get an exception instead.

    Usage:
        async with DistributedLock(store, CollectionField("items")) as lock:
            order = await lock.acquire(order_doc, order_doc["items"][1], timeout=5)
            if order is not None:
                ...
    """

    def __init__(
        self,
        store: LockStore,
        selector: Optional[FieldSelector] = None,
        stale_lock_multiplier: int = DEFAULT_STALE_LOCK_MULTIPLIER,
        retry_interval: float = DEFAULT_RETRY_INTERVAL_SEC,
        cancel_event: Optional[asyncio.Event] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initializes the DistributedLock.

        Args:
            store: The store holding the documents to lock.
            selector: Where the lock fields live inside the parent document.
                      None means the parent document is itself lockable.
            stale_lock_multiplier: How many lease lengths past expiry a lease
                                   must be before it may be taken over. Setting
                                   this too low lets one lock overwrite another.
            retry_interval: Seconds to wait between acquisition attempts.
            cancel_event: When set, stops any acquisition loop at its next
                          iteration.
            logger: Receives the lifecycle debug events. Defaults to this
                    module's logger.
        """
        require(store, "store")
        if stale_lock_multiplier is None or stale_lock_multiplier < 0:
            raise InvalidLockArgumentError("stale_lock_multiplier must be zero or greater.")
        if retry_interval <= 0:
            raise InvalidLockArgumentError("retry_interval must be positive.")
        self._store = store
        self._selector = selector
        self._stale_lock_multiplier = stale_lock_multiplier
        self._retry_interval = retry_interval
        self._cancel_event = cancel_event
        self._logger = logger or logging.getLogger(__name__)

        self._state = LockState.UNACQUIRED
        self._base_object: Optional[Dict[str, Any]] = None
        self._locked_object: Optional[Dict[str, Any]] = None
        self._held_selector: FieldSelector = selector or DIRECT
        self._parent_id: Any = None
        self._locked_object_id: Any = None
        self._lock_id: Optional[str] = None
        self._lease_expiry: Optional[float] = None

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def lock_acquired(self) -> bool:
        return self._lock_id is not None

    @property
    def disposed(self) -> bool:
        return self._state is LockState.DISPOSED

    @property
    def lease_duration(self) -> float:
        return self._store.lease_duration

    @property
    def locked_object_id(self) -> Any:
        return self._locked_object_id

    @property
    def locked_object_lock_id(self) -> Optional[str]:
        return self._lock_id

    @property
    def lease_expiry(self) -> Optional[float]:
        """Local view of when the held lease runs out (Unix seconds)."""
        return self._lease_expiry

    @property
    def lease_expired(self) -> bool:
        """True when no lease is held or the held lease has run out locally."""
        if self._locked_object is None:
            return True
        return LockData(raw=self._locked_object).is_expired

    @property
    def base_object(self) -> Optional[Dict[str, Any]]:
        """The parent document as returned by the last successful acquire."""
        return self._base_object

    @property
    def locked_object(self) -> Optional[Dict[str, Any]]:
        """The lockable record inside `base_object`."""
        return self._locked_object

    def __str__(self) -> str:
        if not self.lock_acquired:
            return "No lock acquired."
        return f"LockId: {self._lock_id}, Locked ObjectId: {self._locked_object_id}."

    def _effective_selector(self, parent_id: Any, target_id: Any) -> FieldSelector:
        if self._selector is not None:
            return self._selector
        if target_id != parent_id:
            raise NoSelectorConfiguredError(
                f"Target {target_id} is nested inside {parent_id}, but this lock has no field selector."
            )
        return DIRECT

    def _target_type(self) -> str:
        return self._held_selector.describe()

    def _remember(self, parent_id: Any, target_id: Any, document: Dict[str, Any]) -> None:
        locked_object = self._held_selector.find(document, target_id)
        if locked_object is None:
            raise DistributedLockError(f"Store returned a document without target {target_id}.")
        lock_data = LockData(raw=locked_object)
        self._base_object = document
        self._locked_object = locked_object
        self._parent_id = parent_id
        self._locked_object_id = target_id
        self._lock_id = lock_data.lock_id
        self._lease_expiry = lock_data.lease_expiry
        self._state = LockState.HELD

    def _forget(self) -> None:
        self._base_object = None
        self._locked_object = None
        self._lock_id = None
        self._lease_expiry = None
        self._state = LockState.UNACQUIRED

    async def _abandon(
        self, parent_id: Any, target_id: Any, selector: FieldSelector, document: Dict[str, Any]
    ) -> None:
        """Gives back a lease won after the handle was disposed."""
        locked_object = selector.find(document, target_id)
        if locked_object is None:
            return
        lock_id = LockData(raw=locked_object).lock_id
        self._logger.info(f"Lock on {target_id} was won after dispose, releasing lease {lock_id}.")
        await self._store.release_lock(parent_id, target_id, lock_id, selector)

    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def acquire(
        self,
        record: Any,
        target: Any = None,
        timeout: Optional[float] = None,
        throw_on_failure: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Acquires the lease, polling the store until it succeeds or gives up.

        Args:
            record: The parent document, or its `_id`.
            target: The lockable record inside the parent, or its `_id`.
                    Defaults to the parent itself.
            timeout: Seconds to keep retrying. Defaults to
                     `lease_duration * (stale_lock_multiplier + 1)`, enough to
                     outlast one abandoned lease.
            throw_on_failure: Raise AcquireLockError instead of returning None.

        Returns:
            The parent document after the lock fields were set, or None.

        Raises:
            AcquireLockError: If `throw_on_failure` is set and the lock was not
                              acquired before the timeout or cancellation.
            NoSelectorConfiguredError: If the target is nested and this handle
                                       has no field selector.
        """
        if self.disposed:
            raise DistributedLockError("Cannot acquire through a disposed lock.")
        parent_id = _record_id(record, "record")
        target_id = _record_id(target, "target") if target is not None else parent_id
        selector = self._effective_selector(parent_id, target_id)

        if self.lock_acquired:
            if (parent_id, target_id) == (self._parent_id, self._locked_object_id):
                return self._base_object
            raise DistributedLockError(f"This lock already holds {self._locked_object_id}.")

        if timeout is None:
            timeout = self.lease_duration * (self._stale_lock_multiplier + 1)
        deadline = time.monotonic() + timeout

        self._held_selector = selector
        self._parent_id = parent_id
        self._locked_object_id = target_id
        self._state = LockState.ACQUIRING
        try:
            while not self._cancelled() and not self.disposed:
                document = await self._store.acquire_lock(
                    parent_id, target_id, selector, self._stale_lock_multiplier
                )
                if document is not None and self.disposed:
                    await self._abandon(parent_id, target_id, selector, document)
                    break
                if document is not None:
                    self._remember(parent_id, target_id, document)
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(self._retry_interval, remaining))
        finally:
            if self._state is LockState.ACQUIRING:
                self._state = LockState.UNACQUIRED

        self._logger.debug(
            f"Lock attempt complete on {self._target_type()} with id {target_id} "
            f"and lease expiry {self._lease_expiry}. Lock acquired? {self.lock_acquired}",
            extra={"target_type": self._target_type(), "target_id": target_id, "lock_acquired": self.lock_acquired},
        )

        if not self.lock_acquired:
            if throw_on_failure:
                raise AcquireLockError(f"Failed to acquire lock on {target_id} within {timeout} seconds.")
            return None
        return self._base_object

    async def refresh(self, throw_on_failure: bool = False) -> bool:
        """
        Extends the held lease by one lease duration.

        A failed refresh means the lease was lost; the cached state is cleared
        and the handle goes back to UNACQUIRED.
        """
        if not self.lock_acquired:
            if throw_on_failure:
                raise RefreshLockError("Failed to refresh lock, no lock is held.")
            return False

        if self.lease_expired:
            self._logger.warning(f"Refreshing lock on {self._locked_object_id} after its lease ran out locally.")
        self._state = LockState.REFRESHING
        lease_until = time.time() + self.lease_duration
        try:
            refreshed = await self._store.refresh_lock(
                self._parent_id, self._locked_object_id, self._lock_id, self._held_selector
            )
        finally:
            self._state = LockState.HELD

        if refreshed:
            self._lease_expiry = lease_until
            if self._locked_object is not None:
                LockData(raw=self._locked_object).extend(lease_until)
        else:
            self._forget()

        self._logger.debug(
            f"Lock refresh complete on {self._target_type()} with id {self._locked_object_id}. "
            f"Lock acquired? {self.lock_acquired}",
            extra={
                "target_type": self._target_type(),
                "target_id": self._locked_object_id,
                "lock_acquired": self.lock_acquired,
            },
        )

        if not refreshed and throw_on_failure:
            raise RefreshLockError("Failed to refresh lock.")
        return refreshed

    async def release(self, throw_on_failure: bool = False) -> bool:
        """
        Releases the held lease.

        Releasing when nothing is held succeeds trivially, as does releasing a
        lease that was already taken over by someone else.
        """
        if not self.lock_acquired:
            return True

        self._state = LockState.RELEASING
        try:
            released = await self._store.release_lock(
                self._parent_id, self._locked_object_id, self._lock_id, self._held_selector
            )
        finally:
            self._state = LockState.HELD

        if released:
            self._forget()

        self._logger.debug(
            f"Lock release complete on {self._target_type()} with id {self._locked_object_id}. "
            f"Lock acquired? {self.lock_acquired}",
            extra={
                "target_type": self._target_type(),
                "target_id": self._locked_object_id,
                "lock_acquired": self.lock_acquired,
            },
        )

        if not released and throw_on_failure:
            raise ReleaseLockError("Failed to release lock.")
        return released

    async def get_object(self, throw_on_failure: bool = False) -> Optional[Dict[str, Any]]:
        """
        Reads the current parent document, provided this handle still holds the lease.
        """
        if not self.lock_acquired:
            if throw_on_failure:
                raise DistributedLockError("No lock is held, cannot read the locked object.")
            return None
        return await self._store.get_locked_object(
            self._parent_id, self._locked_object_id, self._lock_id, self._held_selector
        )

    async def dispose(self) -> None:
        """
        Makes one release attempt if a lease is held, then marks the handle disposed.

        Safe to call repeatedly and on handles that never acquired anything.
        """
        if self.disposed:
            return
        try:
            if self.lock_acquired:
                await self.release()
        except Exception:
            self._logger.exception(f"Error releasing lock on {self._locked_object_id} during dispose.")
        finally:
            self._forget()
            self._state = LockState.DISPOSED

    async def __aenter__(self) -> "DistributedLock":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()
