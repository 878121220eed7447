"""
Error taxonomy for the agent loop.

Exceptions raised by collaborators are mapped to an ``ErrorKind`` so the
loop can decide between retrying, surfacing and propagating without
inspecting exception types itself.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

OVERFLOW_MARKERS = ("context", "token", "too long")


class StorageError(Exception):
    """Reading or writing persisted sessions or turns failed."""


class SandboxError(Exception):
    """The command sandbox could not be created or driven."""


class SandboxGoneError(SandboxError):
    """The sandbox container crashed or was removed."""


class ErrorKind(str, Enum):
    """Kinds of failure the agent loop distinguishes."""
    STORAGE = "storage"
    CONTEXT_OVERFLOW = "context_overflow"
    TRANSPORT = "transport"
    SANDBOX = "sandbox"


@dataclass
class AgentError:
    """A classified failure."""

    kind: ErrorKind
    message: str
    exception: BaseException | None = None

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.CONTEXT_OVERFLOW


OverflowClassifier = Callable[[BaseException], bool]


def is_context_overflow(exc: BaseException) -> bool:
    """Guess whether a request failed because the context window overflowed.

    Providers expose no dedicated error code, so this matches on the
    error message. Pass a different classifier to the agent to use a
    structured code instead.
    """
    message = str(exc).lower()
    return any(marker in message for marker in OVERFLOW_MARKERS)


def classify_error(
    exc: BaseException,
    overflow_classifier: OverflowClassifier | None = None,
) -> AgentError:
    """Map an exception raised during a turn to an ``AgentError``."""
    classifier = overflow_classifier or is_context_overflow

    if isinstance(exc, StorageError):
        return AgentError(ErrorKind.STORAGE, str(exc), exc)
    if isinstance(exc, SandboxError):
        return AgentError(ErrorKind.SANDBOX, str(exc), exc)
    if classifier(exc):
        return AgentError(ErrorKind.CONTEXT_OVERFLOW, str(exc), exc)
    return AgentError(ErrorKind.TRANSPORT, str(exc), exc)
