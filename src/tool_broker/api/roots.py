"""Root allow-listing and resolution.

A request may name the working directory its tool runs in. Only directories
listed in the configured root table are accepted, compared by exact string
equality, and the directory must exist at the moment of the request. No
result is cached: directories can appear or vanish between requests.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union

from .models import RootDescriptor

logger = logging.getLogger(__name__)


class DenialKind(str, Enum):
    """Why a root could not be used, with the HTTP status it maps to."""

    SERVER_MISCONFIGURATION = "server_misconfiguration"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    DenialKind.SERVER_MISCONFIGURATION: 500,
    DenialKind.FORBIDDEN: 403,
    DenialKind.NOT_FOUND: 404,
}


@dataclass(frozen=True)
class Resolved:
    """The root may be used; ``root`` is the configured string, unmodified."""

    root: str


@dataclass(frozen=True)
class Denied:
    """The root may not be used."""

    kind: DenialKind
    reason: str
    attempted_root: str

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_body(self) -> dict:
        return {"error": self.reason, "root": self.attempted_root}


ResolutionOutcome = Union[Resolved, Denied]


def root_exists(path: str) -> bool:
    """Return True if ``path`` is an existing directory."""
    return os.path.isdir(path)


class RootResolver:
    """Resolves requested working directories against the root table."""

    def __init__(self, default_root: str, roots: Sequence[RootDescriptor]):
        """Initialize resolver.

        Args:
            default_root: Directory used when a request names no root
            roots: Allow-listed root descriptors
        """
        self.default_root = default_root
        self.roots = tuple(roots)
        self._allowed = frozenset(root.path for root in self.roots)

    def is_allowed(self, path: str) -> bool:
        return path in self._allowed

    def resolve(self, requested: Optional[str]) -> ResolutionOutcome:
        """Resolve a requested root.

        Args:
            requested: Root path named by the caller, or None/empty for the default

        Returns:
            Resolved with the root to use, or Denied with the reason
        """
        if not requested:
            if not root_exists(self.default_root):
                logger.error(f"Default root does not exist: {self.default_root}")
                return Denied(
                    DenialKind.SERVER_MISCONFIGURATION,
                    "default root does not exist",
                    self.default_root,
                )
            return Resolved(self.default_root)

        if not self.is_allowed(requested):
            logger.warning(f"Rejected root not in allow-list: {requested}")
            return Denied(DenialKind.FORBIDDEN, "root not allowed", requested)

        if not root_exists(requested):
            logger.warning(f"Allowed root does not exist: {requested}")
            return Denied(DenialKind.NOT_FOUND, "root does not exist", requested)

        return Resolved(requested)

    def resolve_forced(self, root: str) -> ResolutionOutcome:
        """Resolve a root pinned by the tool definition itself.

        Pinned roots come from configuration, so they skip the allow-list,
        but they must still exist.
        """
        if not root_exists(root):
            logger.error(f"Configured tool root does not exist: {root}")
            return Denied(
                DenialKind.SERVER_MISCONFIGURATION, "configured root does not exist", root
            )
        return Resolved(root)
