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

import uuid

import pytest
from google.api_core import exceptions as gcs_exceptions


def _lockable(record_id):
    return {"_id": record_id, "someVal": "abcd1234", "lockId": None, "leaseExpiry": None}


@pytest.fixture
def make_record():
    """Builds a parent document that is lockable itself and holds nested lockables."""

    def _make(record_id=None):
        record_id = record_id or f"record-{uuid.uuid4()}"
        record = _lockable(record_id)
        record["inner"] = _lockable("inner-1")
        record["items"] = [_lockable("item-1"), _lockable("item-2")]
        return record

    return _make


class FakeBlob:
    def __init__(self, bucket, name):
        self._bucket = bucket
        self.name = name
        self.generation = None

    def download_as_bytes(self):
        entry = self._bucket.objects.get(self.name)
        if entry is None:
            raise gcs_exceptions.NotFound("not found")
        content, self.generation = entry
        return content

    def upload_from_string(self, data, content_type=None, if_generation_match=None):
        entry = self._bucket.objects.get(self.name)
        current = entry[1] if entry else 0
        if self._bucket.pending_conflicts > 0:
            # Someone else wrote the object between our read and this write.
            self._bucket.pending_conflicts -= 1
            self._bucket.bump(self.name)
            raise gcs_exceptions.PreconditionFailed("conflict")
        if if_generation_match is not None and if_generation_match != current:
            raise gcs_exceptions.PreconditionFailed("generation mismatch")
        self._bucket.counter += 1
        self._bucket.objects[self.name] = (data.encode(), self._bucket.counter)
        self._bucket.uploads += 1


class FakeBucket:
    """A bucket that honours `if_generation_match` like GCS does."""

    def __init__(self):
        self.objects = {}
        self.counter = 0
        self.uploads = 0
        self.pending_conflicts = 0

    def blob(self, name):
        return FakeBlob(self, name)

    def bump(self, name):
        content, _ = self.objects[name]
        self.counter += 1
        self.objects[name] = (content, self.counter)


@pytest.fixture
def fake_bucket():
    return FakeBucket()
