"""
Typed error classes for flow-ix.

Every pipeline stage raises one of the classes below so callers can catch a
specific failure mode while still being able to catch the base `FlowIxError`.

Each error carries:
  - message     : human-readable description
  - interaction : snapshot of the Interaction at failure time (may be None when
                  the failure happened before an Interaction existed)
  - stage       : name of the pipeline stage that failed (e.g. "accounts")

`NodeError` is the access-node client's own error; resolvers translate it into
`ResolutionError`, and `send` translates it into `TransportError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .interaction import Interaction

__all__ = [
    "FlowIxError",
    "BuildError",
    "ResolutionError",
    "SigningError",
    "ValidationError",
    "TransportError",
    "NodeError",
]


@dataclass(slots=True, eq=False)
class FlowIxError(Exception):
    """Base class for all flow-ix errors."""

    message: str
    interaction: Optional["Interaction"] = None
    stage: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f"[{self.stage}]" if self.stage else ""
        return f"{type(self).__name__}{where}: {self.message}"

    @property
    def reason(self) -> str:
        """Diagnostic string as stored on an INVALID Interaction."""
        return f"{self.stage}: {self.message}" if self.stage else self.message

    def with_context(
        self, *, interaction: Optional["Interaction"] = None, stage: Optional[str] = None
    ) -> "FlowIxError":
        """Fill snapshot/stage if they are not set yet; returns self for re-raising."""
        if self.interaction is None and interaction is not None:
            self.interaction = interaction
        if self.stage is None and stage is not None:
            self.stage = stage
        return self


class BuildError(FlowIxError):
    """Malformed builder input or patch (e.g. unrecognized argument type tag)."""


class ResolutionError(FlowIxError):
    """
    Account/authorization resolution failed, a network-dependent field could not
    be fetched (reference block, sequence number), or an argument could not be
    encoded.
    """


class SigningError(FlowIxError):
    """A signing capability failed or returned a malformed/mismatched signature."""


class ValidationError(FlowIxError):
    """A validator rejected the Interaction."""


class TransportError(FlowIxError):
    """Sending the Interaction failed or was refused before any I/O."""


@dataclass(slots=True, eq=False)
class NodeError(Exception):
    """
    Raised by the access-node HTTP client.

    Fields:
      - message     : human-readable description
      - url         : request URL if known
      - http_status : HTTP status code if a response was received
      - data        : response body excerpt or underlying transport error text
    """

    message: str
    url: Optional[str] = None
    http_status: Optional[int] = None
    data: Optional[Any] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"NodeError: {self.message}"]
        if self.url:
            parts.append(f"url={self.url}")
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)
