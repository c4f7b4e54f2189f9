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
Implementation of the lock store using Google Cloud Storage.
"""
import enum
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from ..data import LockData, new_lock_id
from ..exceptions import InvalidLockArgumentError
from ..interface import LockStore, require
from ..selector import ID_FIELD, FieldSelector

logger = logging.getLogger(__name__)


class _CasOutcome(enum.Enum):
    APPLIED = "applied"
    UNMATCHED = "unmatched"
    CONTENDED = "contended"


class GCSLockStore(LockStore):
    """
    A lock store whose documents are JSON objects in a GCS bucket.

    **Core Mechanism**

    Every parent document is stored as a single object named
    `<prefix>/<parent_id>.json`. The lock fields live inside that JSON, either at
    the top level or nested under the field addressed by a selector.

    GCS has no server-side conditional update on object content, so each lock
    operation is a read-evaluate-write cycle where the write carries
    `if_generation_match` with the generation that was read. If anyone else
    wrote the object in between (including a write to a sibling element of the
    same document), the upload fails with `PreconditionFailed` and the cycle
    starts over from a fresh read, at most `max_cas_attempts` times.
    """

    def __init__(
        self,
        bucket: storage.Bucket,
        prefix: str = "locks",
        lease_duration: float = 30,
        max_cas_attempts: int = 5,
    ):
        """
        Initializes the GCSLockStore.

        Args:
            bucket: The GCS bucket where the documents reside.
            prefix: The object name prefix under which documents are stored.
            lease_duration: The duration of a lease in seconds.
            max_cas_attempts: How many read-evaluate-write cycles a single
                              operation may run before giving up on contention.
        """
        super().__init__(lease_duration)
        if max_cas_attempts < 1:
            raise InvalidLockArgumentError("max_cas_attempts must be at least 1.")
        self._bucket = bucket
        self._prefix = prefix.strip("/")
        self._max_cas_attempts = max_cas_attempts

    @classmethod
    def from_path(
        cls,
        gcs_path: str,
        lease_duration: float = 30,
        client: Optional[storage.Client] = None,
    ) -> "GCSLockStore":
        """
        Creates a GCSLockStore instance from a GCS path string.

        Example:
            store = GCSLockStore.from_path("gs://my-bucket/locks/orders")

        Args:
            gcs_path: The bucket and prefix under which documents are stored.
            lease_duration: The duration of a lease in seconds.
            client: An optional GCS storage client.
        """
        parsed_path = urlparse(gcs_path)
        bucket_name = parsed_path.netloc
        prefix = parsed_path.path.strip("/")

        if parsed_path.scheme != "gs" or not bucket_name:
            raise InvalidLockArgumentError(
                f'Invalid GCS path "{gcs_path}". Path must be in the format "gs://<bucket_name>[/<prefix>]".'
            )

        if not client:
            client = storage.Client()

        bucket = client.bucket(bucket_name)
        return cls(bucket=bucket, prefix=prefix, lease_duration=lease_duration)

    def blob_name(self, parent_id: Any) -> str:
        if self._prefix:
            return f"{self._prefix}/{parent_id}.json"
        return f"{parent_id}.json"

    def _read_document(self, parent_id: Any) -> Optional[Tuple[Dict[str, Any], int]]:
        """
        Reads and parses a document from its GCS blob.

        Returns:
            The document and its generation if the blob exists, otherwise None.
        """
        blob = self._bucket.blob(self.blob_name(parent_id))
        try:
            # download_as_bytes() reloads metadata, so the generation is current.
            content = blob.download_as_bytes()
        except gcs_exceptions.NotFound:
            return None
        return json.loads(content), blob.generation

    def _write_document(self, parent_id: Any, document: Dict[str, Any], generation: Optional[int]) -> bool:
        """
        Writes a document to its GCS blob with a generation condition.

        Returns:
            True if the write was successful, False if a precondition failed.
        """
        blob = self._bucket.blob(self.blob_name(parent_id))
        try:
            blob.upload_from_string(
                json.dumps(document),
                content_type="application/json",
                if_generation_match=generation,
            )
            return True
        except gcs_exceptions.PreconditionFailed:
            return False

    def put_document(self, document: Dict[str, Any]) -> None:
        """Creates or overwrites a parent document. Application-side helper."""
        require(document, "document")
        require(document.get(ID_FIELD), ID_FIELD)
        self._write_document(document[ID_FIELD], document, generation=None)

    def read_document(self, parent_id: Any) -> Optional[Dict[str, Any]]:
        loaded = self._read_document(parent_id)
        return loaded[0] if loaded else None

    def _conditional_update(
        self,
        parent_id: Any,
        target_id: Any,
        selector: FieldSelector,
        apply: Callable[[LockData], bool],
    ) -> Tuple[_CasOutcome, Optional[Dict[str, Any]]]:
        """
        Applies `apply` to the addressed record and writes it back atomically.

        `apply` mutates the record and returns True, or returns False without
        mutating anything when the record does not satisfy its predicate.
        """
        blob_name = self.blob_name(parent_id)
        for attempt in range(1, self._max_cas_attempts + 1):
            loaded = self._read_document(parent_id)
            if loaded is None:
                return _CasOutcome.UNMATCHED, None
            document, generation = loaded
            target = selector.find(document, target_id)
            if target is None or not apply(LockData(raw=target)):
                return _CasOutcome.UNMATCHED, document
            if self._write_document(parent_id, document, generation):
                return _CasOutcome.APPLIED, document
            logger.info(f"Lost race writing {blob_name} (attempt {attempt}/{self._max_cas_attempts}). Re-reading.")

        logger.warning(f"Giving up on {blob_name} after {self._max_cas_attempts} contended writes.")
        return _CasOutcome.CONTENDED, None

    async def acquire_lock(
        self,
        parent_id: Any,
        target_id: Any,
        selector: FieldSelector,
        stale_multiplier: int,
    ) -> Optional[Dict[str, Any]]:
        self._validate(parent_id, target_id, selector)
        lease_until, stale_before = self._lease_window(time.time(), stale_multiplier)

        def take(lock_data: LockData) -> bool:
            if not lock_data.is_free(stale_before):
                return False
            lock_data.lock(new_lock_id(), lease_until)
            return True

        outcome, document = self._conditional_update(parent_id, target_id, selector, take)
        if outcome is _CasOutcome.APPLIED:
            return document
        return None

    async def refresh_lock(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> bool:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)
        lease_until = time.time() + self.lease_duration

        def extend(lock_data: LockData) -> bool:
            if not lock_data.is_held_by(lock_id):
                return False
            lock_data.extend(lease_until)
            return True

        outcome, _ = self._conditional_update(parent_id, target_id, selector, extend)
        return outcome is _CasOutcome.APPLIED

    async def release_lock(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> bool:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)

        def clear(lock_data: LockData) -> bool:
            if not lock_data.is_held_by(lock_id):
                return False
            lock_data.clear()
            return True

        outcome, _ = self._conditional_update(parent_id, target_id, selector, clear)
        # UNMATCHED means the lease is already gone, which is a valid released state.
        return outcome is not _CasOutcome.CONTENDED

    async def get_locked_object(
        self,
        parent_id: Any,
        target_id: Any,
        lock_id: str,
        selector: FieldSelector,
    ) -> Optional[Dict[str, Any]]:
        self._validate(parent_id, target_id, selector, lock_id, lock_id_required=True)
        document = self.read_document(parent_id)
        if document is None:
            return None
        target = selector.find(document, target_id)
        if target is None or not LockData(raw=target).is_held_by(lock_id):
            return None
        return document
