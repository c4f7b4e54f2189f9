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

import asyncio
import logging
from typing import Optional

from google.cloud import storage
from motor.motor_asyncio import AsyncIOMotorClient

from .config import LockConfig
from .interface import LockStore
from .lock import DistributedLock
from .selector import FieldSelector
from .store.gcs import GCSLockStore
from .store.memory import InMemoryLockStore
from .store.mongo import MongoLockStore

logger = logging.getLogger(__name__)


class LockStoreFactory:
    def __init__(
        self,
        config: Optional[LockConfig] = None,
        gcs_client: Optional[storage.Client] = None,
        mongo_client: Optional[AsyncIOMotorClient] = None,
    ):
        self._config = config or LockConfig.from_env()
        self._gcs_client = gcs_client
        self._mongo_client = mongo_client
        self._store: Optional[LockStore] = None

    @property
    def config(self) -> LockConfig:
        return self._config

    def create_store(self) -> LockStore:
        config = self._config
        if config.gcs_bucket:
            client = self._gcs_client or storage.Client()
            logger.info(f"Using GCS lock store in gs://{config.gcs_bucket}/{config.gcs_prefix}")
            return GCSLockStore(
                bucket=client.bucket(config.gcs_bucket),
                prefix=config.gcs_prefix,
                lease_duration=config.lease_sec,
            )
        if config.mongo_uri:
            client = self._mongo_client or AsyncIOMotorClient(config.mongo_uri)
            logger.info(f"Using MongoDB lock store on {config.mongo_database}.{config.mongo_collection}")
            return MongoLockStore(
                collection=client[config.mongo_database][config.mongo_collection],
                lease_duration=config.lease_sec,
            )
        # Fall back to an in-memory store if no backend is configured
        logger.info("No lock backend configured, using an in-memory lock store.")
        return InMemoryLockStore(lease_duration=config.lease_sec)

    @property
    def store(self) -> LockStore:
        """The store shared by every lock this factory creates."""
        if self._store is None:
            self._store = self.create_store()
        return self._store

    def create_lock(
        self,
        selector: Optional[FieldSelector] = None,
        cancel_event: Optional[asyncio.Event] = None,
        lock_logger: Optional[logging.Logger] = None,
    ) -> DistributedLock:
        return DistributedLock(
            self.store,
            selector=selector,
            stale_lock_multiplier=self._config.stale_lock_multiplier,
            retry_interval=self._config.retry_interval_sec,
            cancel_event=cancel_event,
            logger=lock_logger,
        )
