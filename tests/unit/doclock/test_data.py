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

import time
import uuid

from src.doclock.data import LockData, new_lock_id


def test_lock_data_properties():
    """Tests basic property access."""
    raw_data = {"_id": "rec-1", "lockId": "lock-1", "leaseExpiry": 123.0}
    lock_data = LockData(raw=raw_data)
    assert lock_data.id == "rec-1"
    assert lock_data.lock_id == "lock-1"
    assert lock_data.lease_expiry == 123.0
    assert lock_data.is_locked is True
    assert lock_data.is_held_by("lock-1") is True
    assert lock_data.is_held_by("lock-2") is False


def test_unlocked_record_is_free():
    lock_data = LockData(raw={"_id": "rec-1"})
    assert lock_data.is_locked is False
    assert lock_data.is_free(stale_before=time.time()) is True
    assert lock_data.is_held_by(None) is False


def test_is_expired():
    """Tests the is_expired property."""
    expired_data = LockData(raw={"lockId": "a", "leaseExpiry": time.time() - 100})
    assert expired_data.is_expired is True

    active_data = LockData(raw={"lockId": "a", "leaseExpiry": time.time() + 100})
    assert active_data.is_expired is False


def test_staleness_uses_the_stale_boundary():
    now = time.time()
    lock_data = LockData(raw={"lockId": "a", "leaseExpiry": now - 10})
    # Expired, but not yet far enough in the past to be taken over.
    assert lock_data.is_free(stale_before=now - 20) is False
    assert lock_data.is_free(stale_before=now - 10) is True


def test_lock_extend_and_clear_move_fields_together():
    raw = {"_id": "rec-1", "lockId": None, "leaseExpiry": None}
    lock_data = LockData(raw=raw)
    lock_data.lock("lock-1", 50.0)
    assert raw == {"_id": "rec-1", "lockId": "lock-1", "leaseExpiry": 50.0}
    lock_data.extend(60.0)
    assert raw["leaseExpiry"] == 60.0
    lock_data.clear()
    assert raw["lockId"] is None and raw["leaseExpiry"] is None


def test_new_lock_id_is_a_uuid():
    first, second = new_lock_id(), new_lock_id()
    assert first != second
    assert str(uuid.UUID(first)) == first
