"""Named mutual exclusion for read-modify-write against shared parents.

Several resources are really entries embedded in a parent resource (an
application security group membership lives in a network interface's IP
configurations, an authorization lives under an ExpressRoute circuit).
Writing one of them means reading the parent, changing it and writing it
back, so two concurrent writers on the same parent would lose an update.
Every such section holds the parent's named lock.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generator

from metrics import LOCK_WAIT_SECONDS
from models import OperationTimeoutError

if TYPE_CHECKING:
    from polling import Deadline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamedLock:
    """Handle for an acquired lock, returned by acquire()."""

    name: str
    resource_type: str
    _lock: threading.Lock

    @property
    def key(self) -> str:
        return f"{self.resource_type}.{self.name}"


class NamedLockRegistry:
    """Registry of locks keyed by (resource type, name).

    Locks are created lazily on first use and live as long as the registry.
    The registry is owned by the operator state next to the Azure client, so
    tests can create isolated registries.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, name: str, resource_type: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get((resource_type, name))
            if lock is None:
                lock = threading.Lock()
                self._locks[(resource_type, name)] = lock
            return lock

    def acquire(
        self,
        name: str,
        resource_type: str,
        timeout: float | None = None,
        deadline: "Deadline | None" = None,
    ) -> NamedLock:
        """Block until the lock for ``name`` is held.

        Raises OperationTimeoutError if ``timeout`` seconds pass first. With a
        ``deadline`` the wait is sliced and also ends when the handler is
        cancelled.
        """
        lock = self._lock_for(name, resource_type)
        wait_start = time.monotonic()
        logger.debug("Locking %s %r", resource_type, name)

        try:
            if deadline is not None:
                while not lock.acquire(timeout=deadline.slice()):
                    deadline.check(f"waiting for lock on {resource_type} {name!r}")
            elif timeout is not None:
                if not lock.acquire(timeout=timeout):
                    raise OperationTimeoutError(
                        f"timed out after {timeout:.0f}s waiting for lock on "
                        f"{resource_type} {name!r}"
                    )
            else:
                lock.acquire()
        finally:
            waited = time.monotonic() - wait_start
            LOCK_WAIT_SECONDS.labels(resource_type=resource_type).observe(waited)

        return NamedLock(name=name, resource_type=resource_type, _lock=lock)

    def release(self, handle: NamedLock) -> None:
        """Release a lock obtained from acquire()."""
        logger.debug("Unlocking %s %r", handle.resource_type, handle.name)
        handle._lock.release()

    @contextmanager
    def hold(
        self, name: str, resource_type: str, deadline: "Deadline | None" = None
    ) -> Generator[NamedLock, None, None]:
        """Hold the lock for the duration of the block (context manager).

        Usage:
            with registry.hold(nic_name, "networkInterface", deadline):
                # read, modify and write the parent
        """
        handle = self.acquire(name, resource_type, deadline=deadline)
        try:
            yield handle
        finally:
            self.release(handle)
