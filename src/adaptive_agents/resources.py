"""Session-scoped ownership of releasable agent handles."""

import logging
from typing import Any, Optional

from .errors import ResourceReleaseError
from .interfaces import AgentHandle

logger = logging.getLogger(__name__)


class ResourceScope:
    """Collects agent handles for one session and releases them all on exit.

    Use as a context manager so release runs on success, on recoverable
    failure and on a propagated error alike::

        with ResourceScope("planning") as resources:
            handle = resources.track(factory.create(...))

    A value stored in ``result`` travels on any ResourceReleaseError raised
    at exit, so a finished session's outcome is not lost.
    """

    def __init__(self, label: str = "session"):
        self.label = label
        self._handles: list[AgentHandle] = []
        self._released: list[AgentHandle] = []
        self.result: Any = None

    def track(self, handle: AgentHandle) -> AgentHandle:
        """Take ownership of a handle and return it."""
        self._handles.append(handle)
        return handle

    @property
    def active(self) -> list[AgentHandle]:
        """Handles not yet released."""
        return list(self._handles)

    @property
    def released(self) -> list[AgentHandle]:
        return list(self._released)

    def release_all(self) -> list[tuple[str, BaseException]]:
        """Release every tracked handle in reverse order; returns the failures."""
        failures: list[tuple[str, BaseException]] = []
        while self._handles:
            handle = self._handles.pop()
            name = getattr(handle, "name", repr(handle))
            try:
                handle.release()
            except Exception as e:
                failures.append((name, e))
                logger.error("Failed to release agent %s in %s: %s", name, self.label, e)
            else:
                self._released.append(handle)
        if self._released:
            logger.info("Released %d agent(s) for %s", len(self._released), self.label)
        return failures

    def __enter__(self) -> "ResourceScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        failures = self.release_all()
        if failures and exc_type is None:
            raise ResourceReleaseError(failures, result=self.result)
        return None


def release_abandoned(handle: AgentHandle) -> None:
    """Release a handle that arrived after its creating call was abandoned."""
    name = getattr(handle, "name", repr(handle))
    try:
        handle.release()
    except Exception as e:
        logger.error("Failed to release abandoned agent %s: %s", name, e)
    else:
        logger.info("Released abandoned agent %s", name)
