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
In-memory implementation of the lock store for testing and single-process use.
"""
import asyncio
import copy
import logging
import time
from typing import Any, Dict, Iterable, Optional, Tuple

from ..data import LockData, new_lock_id
from ..interface import LockStore, require
from ..selector import ID_FIELD, FieldSelector

logger = logging.getLogger(__name__)


class InMemoryLockStore(LockStore):
    """
    A lock store over application-owned dictionaries.

    The store keeps references to the documents it is given, so the owner can
    inspect them directly. Each (parent, target) pair has its own asyncio.Lock
    and every check-then-set runs inside it. Returned documents are deep copies.
    """

    def __init__(self, records: Iterable[Dict[str, Any]] = (), lease_duration: float = 30):
        super().__init__(lease_duration)
        self._records: Dict[Any, Dict[str, Any]] = {}
        self._guards: Dict[Tuple[Any, Any], asyncio.Lock] = {}
        for record in records:
            self.add(record)

    def add(self, record: Dict[str, Any]) -> None:
        """Registers a parent document. Its `_id` must be set."""
        require(record, "record")
        require(record.get(ID_FIELD), ID_FIELD)
        self._records[record[ID_FIELD]] = record

    def get(self, parent_id: Any) -> Optional[Dict[str, Any]]:
        """Returns a copy of a stored parent document, lock state included."""
        record = self._records.get(parent_id)
        return copy.deepcopy(record) if record is not None else None

    def _guard(self, parent_id: Any, target_id: Any) -> asyncio.Lock:
        key = (parent_id, target_id)
        if key not in self._guards:
            self._guards[key] = asyncio.Lock()
        return self._guards[key]

    def _locate(
        self, parent_id: Any, target_id: Any, selector: FieldSelector
    ) -> Tuple[Optional[Dict[str, Any]], Optional[LockData]]:
        parent = self._records.get(parent_id)
        if parent is None:
            return None, None
        target = selector.find(parent, target_id)
        if target is None:
            return None, None
        return parent, LockData(raw=target)

    async def acquire_lock(
        self,
        parent_id: Any,
        target_id: Any,
        selector: FieldSelector,
        stale_multiplier: int,
    ) -> Optional[Dict[str, Any]]:
        self._validate(parent_id, target_id, selector)
        async with self._guard(parent_id, target_id):
            lease_until, stale_before = self._lease_window(time.time(), stale_multiplier)
            parent, lock_data = self._locate(parent_id, target_id, selector)
            if lock_data is None or not lock_data.is_free(stale_before):
                return None
            if lock_data.is_locked:
                logger.info(f"Taking over stale lease {lock_data.lock_id} on {selector.describe()} {target_id}.")
            lock_data.lock(new_lock_id(), lease_until)
            return copy.deepcopy(parent)

    async def refresh_lock(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> bool:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)
        async with self._guard(parent_id, target_id):
            _, lock_data = self._locate(parent_id, target_id, selector)
            if lock_data is None or not lock_data.is_held_by(lock_id):
                return False
            lock_data.extend(time.time() + self.lease_duration)
            return True

    async def release_lock(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> bool:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)
        async with self._guard(parent_id, target_id):
            _, lock_data = self._locate(parent_id, target_id, selector)
            if lock_data is None or not lock_data.is_held_by(lock_id):
                # Already released or taken over, nothing left to release.
                return True
            lock_data.clear()
            return True

    async def get_locked_object(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> Optional[Dict[str, Any]]:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)
        parent, lock_data = self._locate(parent_id, target_id, selector)
        if lock_data is None or not lock_data.is_held_by(lock_id):
            return None
        return copy.deepcopy(parent)
