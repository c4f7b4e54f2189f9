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

class DistributedLockError(Exception):
    """Base exception for all lock-related errors."""
    pass

class AcquireLockError(DistributedLockError):
    """Raised when a lock could not be acquired before the timeout or cancellation."""
    pass

class RefreshLockError(DistributedLockError):
    """Raised when the lease is no longer held at refresh time."""
    pass

class ReleaseLockError(DistributedLockError):
    """Raised when the store could not confirm that the lease was released."""
    pass

class NoSelectorConfiguredError(DistributedLockError):
    """Raised when a nested target is locked through a handle without a field selector."""
    pass

class InvalidLockArgumentError(DistributedLockError, ValueError):
    """Raised when an id, target, or selector is missing or malformed."""
    pass
