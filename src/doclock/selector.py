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
Field selectors describe where the lock fields live inside a parent document.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import InvalidLockArgumentError

ID_FIELD = "_id"


class FieldSelector(ABC):
    """Locates the lockable record inside a parent document."""

    @abstractmethod
    def find(self, parent: Dict[str, Any], target_id: Any) -> Optional[Dict[str, Any]]:
        """Returns the lockable record whose `_id` is `target_id`, or None."""
        pass

    @abstractmethod
    def describe(self) -> str:
        pass


@dataclass(frozen=True)
class Direct(FieldSelector):
    """The parent document is itself the lockable record."""

    def find(self, parent: Dict[str, Any], target_id: Any) -> Optional[Dict[str, Any]]:
        if parent.get(ID_FIELD) == target_id:
            return parent
        return None

    def describe(self) -> str:
        return "<document>"


def _check_field(field: str) -> None:
    if not field:
        raise InvalidLockArgumentError("A field selector needs a non-empty field name.")


@dataclass(frozen=True)
class SingleField(FieldSelector):
    """A single lockable sub-document stored under `field`."""

    field: str

    def __post_init__(self):
        _check_field(self.field)

    def find(self, parent: Dict[str, Any], target_id: Any) -> Optional[Dict[str, Any]]:
        child = parent.get(self.field)
        if isinstance(child, dict) and child.get(ID_FIELD) == target_id:
            return child
        return None

    def describe(self) -> str:
        return self.field


@dataclass(frozen=True)
class CollectionField(FieldSelector):
    """A list of lockable sub-documents stored under `field`, addressed by `_id`."""

    field: str

    def __post_init__(self):
        _check_field(self.field)

    def find(self, parent: Dict[str, Any], target_id: Any) -> Optional[Dict[str, Any]]:
        children = parent.get(self.field)
        if not isinstance(children, list):
            return None
        for child in children:
            if isinstance(child, dict) and child.get(ID_FIELD) == target_id:
                return child
        return None

    def describe(self) -> str:
        return f"{self.field}[]"


DIRECT = Direct()
