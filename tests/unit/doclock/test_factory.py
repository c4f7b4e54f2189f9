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

import unittest
from unittest.mock import MagicMock, patch
import asyncio

from src.doclock.config import LockConfig
from src.doclock.factory import LockStoreFactory
from src.doclock.selector import SingleField
from src.doclock.store.gcs import GCSLockStore
from src.doclock.store.memory import InMemoryLockStore
from src.doclock.store.mongo import MongoLockStore


class TestLockConfig(unittest.TestCase):
    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            config = LockConfig.from_env()
        self.assertEqual(config, LockConfig())
        self.assertEqual(config.lease_sec, 30)
        self.assertEqual(config.stale_lock_multiplier, 5)
        self.assertIsNone(config.gcs_bucket)
        self.assertIsNone(config.mongo_uri)

    def test_from_env(self):
        env = {
            "DOCLOCK_LEASE_SEC": "12.5",
            "DOCLOCK_STALE_MULTIPLIER": "3",
            "DOCLOCK_RETRY_INTERVAL_SEC": "0.25",
            "DOCLOCK_GCS_BUCKET": "my-bucket",
            "DOCLOCK_GCS_PREFIX": "orders",
            "DOCLOCK_MONGO_URI": "mongodb://localhost:27017",
            "DOCLOCK_MONGO_DATABASE": "shop",
            "DOCLOCK_MONGO_COLLECTION": "orders",
        }
        with patch.dict("os.environ", env, clear=True):
            config = LockConfig.from_env()
        self.assertEqual(config.lease_sec, 12.5)
        self.assertEqual(config.stale_lock_multiplier, 3)
        self.assertEqual(config.retry_interval_sec, 0.25)
        self.assertEqual(config.gcs_bucket, "my-bucket")
        self.assertEqual(config.gcs_prefix, "orders")
        self.assertEqual(config.mongo_uri, "mongodb://localhost:27017")
        self.assertEqual(config.mongo_database, "shop")
        self.assertEqual(config.mongo_collection, "orders")


class TestLockStoreFactory(unittest.TestCase):
    def test_in_memory_store_when_nothing_is_configured(self):
        factory = LockStoreFactory(LockConfig(lease_sec=7))
        store = factory.create_store()
        self.assertIsInstance(store, InMemoryLockStore)
        self.assertEqual(store.lease_duration, 7)

    def test_gcs_store_when_bucket_is_configured(self):
        gcs_client = MagicMock()
        config = LockConfig(gcs_bucket="my-bucket", gcs_prefix="orders", mongo_uri="mongodb://ignored")
        store = LockStoreFactory(config, gcs_client=gcs_client).create_store()

        self.assertIsInstance(store, GCSLockStore)
        gcs_client.bucket.assert_called_once_with("my-bucket")
        self.assertEqual(store.blob_name("o-1"), "orders/o-1.json")

    def test_mongo_store_when_uri_is_configured(self):
        mongo_client = MagicMock()
        config = LockConfig(mongo_uri="mongodb://localhost", mongo_database="shop", mongo_collection="orders")
        store = LockStoreFactory(config, mongo_client=mongo_client).create_store()

        self.assertIsInstance(store, MongoLockStore)
        mongo_client.__getitem__.assert_called_once_with("shop")
        mongo_client.__getitem__.return_value.__getitem__.assert_called_once_with("orders")

    @patch("src.doclock.factory.AsyncIOMotorClient")
    def test_mongo_client_is_created_from_uri(self, MockMotorClient):
        config = LockConfig(mongo_uri="mongodb://localhost")
        LockStoreFactory(config).create_store()
        MockMotorClient.assert_called_once_with("mongodb://localhost")

    def test_locks_share_one_store_and_the_configuration(self):
        factory = LockStoreFactory(LockConfig(stale_lock_multiplier=2, retry_interval_sec=0.01))
        cancel_event = asyncio.Event()
        first = factory.create_lock()
        second = factory.create_lock(SingleField("inner"), cancel_event=cancel_event)

        self.assertIs(first._store, second._store)
        self.assertEqual(second._stale_lock_multiplier, 2)
        self.assertEqual(second._retry_interval, 0.01)
        self.assertIs(second._cancel_event, cancel_event)

    def test_locks_created_by_factory_acquire(self):
        factory = LockStoreFactory(LockConfig(retry_interval_sec=0.01))
        record = {"_id": "rec-1", "lockId": None, "leaseExpiry": None}
        factory.store.add(record)

        async def scenario():
            async with factory.create_lock() as lock:
                self.assertIsNotNone(await lock.acquire(record, timeout=0.1))
                self.assertIsNone(await factory.create_lock().acquire(record, timeout=0.05))

        asyncio.run(scenario())
        self.assertIsNone(record["lockId"])
