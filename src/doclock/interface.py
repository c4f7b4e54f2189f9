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
Defines the abstract store interface behind the document lock.

This module provides the `LockStore` abstract base class, which serves as a
contract for every backend that can hold lock fields inside a stored document
(an in-memory store for tests, a GCS bucket of JSON documents, a MongoDB
collection). The `DistributedLock` handle only ever talks to this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from .exceptions import InvalidLockArgumentError
from .selector import FieldSelector


def require(value: Any, name: str) -> None:
    if value is None:
        raise InvalidLockArgumentError(f"{name} cannot be None.")


class LockStore(ABC):
    """
    An interface for a store that can atomically lock a record inside a document.

    Every mutation of the `lockId` / `leaseExpiry` fields goes through one of the
    three conditional operations below. Implementations must make each of them a
    single atomic compare-and-set against one parent document.
    """

    def __init__(self, lease_duration: float):
        if lease_duration is None or lease_duration <= 0:
            raise InvalidLockArgumentError("lease_duration must be a positive number of seconds.")
        self._lease_duration = float(lease_duration)

    @property
    def lease_duration(self) -> float:
        """The lease length in seconds applied on acquire and refresh."""
        return self._lease_duration

    @abstractmethod
    async def acquire_lock(
        self,
        parent_id: Any,
        target_id: Any,
        selector: FieldSelector,
        stale_multiplier: int,
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically locks the target if it is free or its lease is stale.

        Args:
            parent_id: The `_id` of the parent document.
            target_id: The `_id` of the lockable record addressed by `selector`.
            selector: Where the lockable record lives inside the parent.
            stale_multiplier: How many lease lengths past expiry a lease must be
                              before it may be taken over.

        Returns:
            A copy of the parent document after the update, or None if no record
            matched (held by a live lease, or absent).
        """
        pass

    @abstractmethod
    async def refresh_lock(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> bool:
        """
        Extends the lease if the target still carries `lock_id`.

        Returns:
            True if the lease was extended, False if it is no longer held.
        """
        pass

    @abstractmethod
    async def release_lock(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> bool:
        """
        Clears the lock fields if the target still carries `lock_id`.

        This method is idempotent: if the lease was already released or taken
        over, there is nothing to release and it returns True.
        """
        pass

    @abstractmethod
    async def get_locked_object(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> Optional[Dict[str, Any]]:
        """
        Reads the parent document if the target still carries `lock_id`.
        """
        pass

    def _validate(
        self,
        parent_id: Any,
        target_id: Any,
        selector: Optional[FieldSelector],
        lock_id: Any = None,
        lock_id_required: bool = False,
    ) -> None:
        require(parent_id, "parent_id")
        require(target_id, "target_id")
        require(selector, "selector")
        if lock_id_required:
            require(lock_id, "lock_id")

    def _lease_window(self, now: float, stale_multiplier: int) -> Tuple[float, float]:
        """Returns `(lease_until, stale_before)` for an acquisition at `now`."""
        if stale_multiplier is None or stale_multiplier < 0:
            raise InvalidLockArgumentError("stale_multiplier must be zero or greater.")
        lease_until = now + self._lease_duration
        stale_before = now - self._lease_duration * stale_multiplier
        return lease_until, stale_before
