"""Data models for website metadata lookup."""

from dataclasses import dataclass
from enum import Enum

MANUAL_ENTRY_MESSAGE = "Could not fetch website metadata. Please enter description manually."


class LookupErrorKind(str, Enum):
    """Classification of a failed lookup."""

    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    MALFORMED_INPUT = "malformed_input"


@dataclass
class MetadataResponse:
    """What the metadata collaborator hands back for a URL."""

    title: str | None = None
    description: str | None = None
    error: str | None = None

    @property
    def is_usable(self) -> bool:
        """A response counts only if it carries a title or description."""
        if self.error:
            return False
        return bool((self.title or "").strip() or (self.description or "").strip())


@dataclass
class LookupFailure:
    """A classified, recoverable lookup failure."""

    kind: LookupErrorKind
    detail: str = ""
    message: str = MANUAL_ENTRY_MESSAGE


@dataclass
class LookupResult:
    """
    Outcome of one lookup request.

    Exactly one of `metadata` / `error` is set. `stale` is True once a newer
    query has been issued; stale results are never applied.
    """

    query: str
    metadata: MetadataResponse | None = None
    error: LookupFailure | None = None
    stale: bool = False

    @property
    def success(self) -> bool:
        return self.metadata is not None and self.error is None
