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

import pytest

from src.doclock.exceptions import InvalidLockArgumentError
from src.doclock.selector import DIRECT, CollectionField, SingleField


def test_direct_selector_matches_parent(make_record):
    record = make_record("rec-1")
    assert DIRECT.find(record, "rec-1") is record
    assert DIRECT.find(record, "other") is None
    assert DIRECT.describe() == "<document>"


def test_single_field_selector(make_record):
    record = make_record()
    selector = SingleField("inner")
    assert selector.find(record, "inner-1") is record["inner"]
    assert selector.find(record, "item-1") is None
    assert selector.find({"_id": "x"}, "inner-1") is None


def test_collection_field_selector_picks_element_by_id(make_record):
    record = make_record()
    selector = CollectionField("items")
    assert selector.find(record, "item-2") is record["items"][1]
    assert selector.find(record, "missing") is None
    assert selector.find({"_id": "x", "items": "not-a-list"}, "item-1") is None
    assert selector.describe() == "items[]"


def test_collection_field_with_duplicate_ids_returns_first(make_record):
    record = make_record()
    record["items"][1]["_id"] = "item-1"
    assert CollectionField("items").find(record, "item-1") is record["items"][0]


@pytest.mark.parametrize("selector_cls", [SingleField, CollectionField])
def test_empty_field_name_is_rejected(selector_cls):
    with pytest.raises(InvalidLockArgumentError):
        selector_cls("")
