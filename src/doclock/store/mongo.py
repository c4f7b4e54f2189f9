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
Implementation of the lock store on a MongoDB collection.

MongoDB updates a single document atomically, so every lock operation is one
`find_one_and_update` / `update_one` whose filter carries the lock predicate.
No client-side locking is involved.
"""
import logging
import time
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument

from ..data import LEASE_EXPIRY_FIELD, LOCK_ID_FIELD, new_lock_id
from ..interface import LockStore
from ..selector import ID_FIELD, CollectionField, Direct, FieldSelector, SingleField

logger = logging.getLogger(__name__)


class MongoLockStore(LockStore):
    """A lock store backed by a motor collection of parent documents."""

    def __init__(self, collection: AsyncIOMotorCollection, lease_duration: float = 30):
        super().__init__(lease_duration)
        self._collection = collection

    def _filter(self, parent_id: Any, target_id: Any, selector: FieldSelector, predicate: Dict[str, Any]) -> Dict[str, Any]:
        """
        Builds a filter matching the parent and the addressed record.

        `predicate` is expressed against the lockable record's own field names.
        """
        if isinstance(selector, CollectionField):
            element = {ID_FIELD: target_id}
            element.update(predicate)
            return {ID_FIELD: parent_id, selector.field: {"$elemMatch": element}}

        if isinstance(selector, SingleField):
            query = {ID_FIELD: parent_id, f"{selector.field}.{ID_FIELD}": target_id}
            query.update(_prefixed(predicate, f"{selector.field}."))
            return query

        if isinstance(selector, Direct):
            query = {ID_FIELD: parent_id}
            query.update(predicate)
            return query

        raise TypeError(f"Unsupported selector {selector!r} for MongoLockStore.")

    @staticmethod
    def _update_path(selector: FieldSelector, name: str) -> str:
        if isinstance(selector, CollectionField):
            return f"{selector.field}.$.{name}"
        if isinstance(selector, SingleField):
            return f"{selector.field}.{name}"
        return name

    @staticmethod
    def _targets_other_document(parent_id: Any, target_id: Any, selector: FieldSelector) -> bool:
        return isinstance(selector, Direct) and parent_id != target_id

    async def acquire_lock(
        self,
        parent_id: Any,
        target_id: Any,
        selector: FieldSelector,
        stale_multiplier: int,
    ) -> Optional[Dict[str, Any]]:
        self._validate(parent_id, target_id, selector)
        lease_until, stale_before = self._lease_window(time.time(), stale_multiplier)
        if self._targets_other_document(parent_id, target_id, selector):
            return None

        query = self._filter(
            parent_id,
            target_id,
            selector,
            {"$or": [{LOCK_ID_FIELD: None}, {LEASE_EXPIRY_FIELD: {"$lte": stale_before}}]},
        )
        update = {
            "$set": {
                self._update_path(selector, LOCK_ID_FIELD): new_lock_id(),
                self._update_path(selector, LEASE_EXPIRY_FIELD): lease_until,
            }
        }
        logger.debug(f"Acquire lock query: {query}, update: {update}")
        return await self._collection.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )

    async def refresh_lock(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> bool:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)
        if self._targets_other_document(parent_id, target_id, selector):
            return False

        query = self._filter(parent_id, target_id, selector, {LOCK_ID_FIELD: lock_id})
        update = {"$set": {self._update_path(selector, LEASE_EXPIRY_FIELD): time.time() + self.lease_duration}}
        logger.debug(f"Refresh lock query: {query}, update: {update}")
        result = await self._collection.update_one(query, update)
        return result.matched_count == 1 and result.modified_count == 1

    async def release_lock(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> bool:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)
        if self._targets_other_document(parent_id, target_id, selector):
            return True

        query = self._filter(parent_id, target_id, selector, {LOCK_ID_FIELD: lock_id})
        update = {
            "$set": {
                self._update_path(selector, LOCK_ID_FIELD): None,
                self._update_path(selector, LEASE_EXPIRY_FIELD): None,
            }
        }
        logger.debug(f"Release lock query: {query}, update: {update}")
        result = await self._collection.update_one(query, update)
        if result.matched_count == 0:
            logger.debug(f"Lease {lock_id} on {target_id} was already gone.")
        return True

    async def get_locked_object(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> Optional[Dict[str, Any]]:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)
        if self._targets_other_document(parent_id, target_id, selector):
            return None
        query = self._filter(parent_id, target_id, selector, {LOCK_ID_FIELD: lock_id})
        return await self._collection.find_one(query)


def _prefixed(predicate: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    """Rewrites field names in a predicate, descending into $or / $and lists."""
    rewritten: Dict[str, Any] = {}
    for key, value in predicate.items():
        if key in ("$or", "$and"):
            rewritten[key] = [_prefixed(clause, prefix) for clause in value]
        else:
            rewritten[f"{prefix}{key}"] = value
    return rewritten
