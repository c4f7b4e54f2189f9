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
Data class for representing and interpreting the lock fields of a record.
"""
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .selector import ID_FIELD

LOCK_ID_FIELD = "lockId"
LEASE_EXPIRY_FIELD = "leaseExpiry"


def new_lock_id() -> str:
    return str(uuid.uuid4())


@dataclass
class LockData:
    """
    Wraps the raw lockable record dictionary and provides helper properties for
    easy state checking.
    """

    raw: Dict[str, Any]

    @property
    def id(self) -> Any:
        return self.raw.get(ID_FIELD)

    @property
    def lock_id(self) -> Optional[str]:
        return self.raw.get(LOCK_ID_FIELD)

    @property
    def lease_expiry(self) -> Optional[float]:
        return self.raw.get(LEASE_EXPIRY_FIELD)

    @property
    def is_locked(self) -> bool:
        return self.lock_id is not None

    @property
    def is_expired(self) -> bool:
        """Checks if the lease has run out (a stale lease is always expired)."""
        return self.lease_expiry is None or self.lease_expiry < time.time()

    def is_stale(self, stale_before: float) -> bool:
        """Checks if a held lease expired at or before `stale_before`."""
        expiry = self.lease_expiry
        return expiry is None or expiry <= stale_before

    def is_free(self, stale_before: float) -> bool:
        """True if an acquisition may overwrite these lock fields."""
        return not self.is_locked or self.is_stale(stale_before)

    def is_held_by(self, lock_id: str) -> bool:
        return self.lock_id is not None and self.lock_id == lock_id

    def lock(self, lock_id: str, lease_until: float) -> None:
        self.raw[LOCK_ID_FIELD] = lock_id
        self.raw[LEASE_EXPIRY_FIELD] = lease_until

    def extend(self, lease_until: float) -> None:
        self.raw[LEASE_EXPIRY_FIELD] = lease_until

    def clear(self) -> None:
        self.raw[LOCK_ID_FIELD] = None
        self.raw[LEASE_EXPIRY_FIELD] = None
