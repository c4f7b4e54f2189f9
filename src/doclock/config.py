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

from dataclasses import dataclass
import os
from typing import Optional


@dataclass
class LockConfig:
    """
    Configuration for the lock store and the handles created on top of it.
    """
    lease_sec: float = 30
    stale_lock_multiplier: int = 5
    retry_interval_sec: float = 1.0
    gcs_bucket: Optional[str] = None
    gcs_prefix: str = "locks"
    mongo_uri: Optional[str] = None
    mongo_database: str = "doclock"
    mongo_collection: str = "records"

    @classmethod
    def from_env(cls) -> "LockConfig":
        """
        Creates a LockConfig instance from environment variables.
        """
        return cls(
            lease_sec=float(os.environ.get("DOCLOCK_LEASE_SEC", 30)),
            stale_lock_multiplier=int(os.environ.get("DOCLOCK_STALE_MULTIPLIER", 5)),
            retry_interval_sec=float(os.environ.get("DOCLOCK_RETRY_INTERVAL_SEC", 1.0)),
            gcs_bucket=os.environ.get("DOCLOCK_GCS_BUCKET"),
            gcs_prefix=os.environ.get("DOCLOCK_GCS_PREFIX", "locks"),
            mongo_uri=os.environ.get("DOCLOCK_MONGO_URI"),
            mongo_database=os.environ.get("DOCLOCK_MONGO_DATABASE", "doclock"),
            mongo_collection=os.environ.get("DOCLOCK_MONGO_COLLECTION", "records"),
        )
