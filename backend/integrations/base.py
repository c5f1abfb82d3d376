"""
Remote File Transport: Abstract Base Class

Trading partners exchange EDI documents as files on a shared drop
(usually SFTP). Every transport implements this interface so the
reconciliation engine and the outbound send path are transport-agnostic.

Lifecycle:
    1. __init__(vendor_id, config)   load credentials and dirs
    2. async with transport          open the connection
    3. list / download / archive / upload
    4. exit                          close the connection
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, TypeVar

import structlog

from integrations.errors import TransportError
from integrations.partner_config import PartnerEDIConfig

logger = structlog.get_logger()

T = TypeVar("T")


# ── Transport types ───────────────────────────────────────────────────────


class TransportType(str, Enum):
    """Supported file transports."""

    SFTP = "sftp"  # Partner-hosted SFTP drop (production)
    LOCAL = "local"  # Filesystem root (development, tests)


class PollStatus(str, Enum):
    """Result status of a poll cycle."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some files or documents failed
    FAILED = "failed"
    NO_DATA = "no_data"


# ── Containers ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RemoteFile:
    name: str
    size: int
    modified_at: datetime | None
    path: str


@dataclass
class FileOutcome:
    """What happened to one discovered file."""

    filename: str
    state: str  # archived | archive_failed | failed | skipped_duplicate
    documents: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    archived_to: str | None = None


@dataclass
class PollSummary:
    """Standardized return from a poll cycle."""

    status: PollStatus = PollStatus.NO_DATA
    files_found: int = 0
    files_processed: int = 0
    files_skipped: int = 0
    errors: list[str] = field(default_factory=list)
    by_type: dict[str, int] = field(default_factory=dict)
    files: list[FileOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    def count_document(self, document_type: str) -> None:
        self.by_type[document_type] = self.by_type.get(document_type, 0) + 1

    def complete(self) -> "PollSummary":
        if self.status != PollStatus.FAILED:
            if self.errors and self.files_processed:
                self.status = PollStatus.PARTIAL
            elif self.errors:
                self.status = PollStatus.FAILED
            elif self.files_processed:
                self.status = PollStatus.SUCCESS
            else:
                self.status = PollStatus.NO_DATA
        self.completed_at = datetime.now(timezone.utc)
        return self

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "files_found": self.files_found,
            "files_processed": self.files_processed,
            "files_skipped": self.files_skipped,
            "errors": list(self.errors),
            "by_type": dict(self.by_type),
            "files": [
                {
                    "filename": f.filename,
                    "state": f.state,
                    "documents": f.documents,
                    "error": f.error,
                    "archived_to": f.archived_to,
                }
                for f in self.files
            ],
        }


def archive_name(filename: str, at: datetime | None = None) -> str:
    """Timestamped archive filename, e.g. 2026-03-01T10-15-00-000000+00-00_855_1.edi."""
    stamp = (at or datetime.now(timezone.utc)).isoformat().replace(":", "-").replace(".", "-")
    return f"{stamp}_{filename}"


def has_extension(filename: str, extensions: list[str]) -> bool:
    if not extensions:
        return True
    suffix = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return suffix in extensions


# ── Abstract transport ────────────────────────────────────────────────────


class RemoteFileTransport(ABC):
    """
    Base class for partner file drops.

    Every call made through ``_guard`` is bounded by the partner's
    timeout; timeouts and transport-level failures surface as
    TransportError.
    """

    def __init__(self, vendor_id: str, config: PartnerEDIConfig):
        self.vendor_id = vendor_id
        self.config = config
        self.timeout = config.timeout_seconds
        self.logger = logger.bind(
            transport=self.transport_type.value,
            vendor_id=str(vendor_id),
        )

    @property
    @abstractmethod
    def transport_type(self) -> TransportType:
        """Return the transport type this class handles."""
        ...

    async def __aenter__(self) -> "RemoteFileTransport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the underlying connection. No-op by default."""

    async def close(self) -> None:
        """Release the underlying connection. No-op by default."""

    @abstractmethod
    async def list(self, directory: str, extensions: list[str]) -> list[RemoteFile]:
        """Regular files in ``directory`` whose extension is in ``extensions``."""
        ...

    @abstractmethod
    async def download(self, path: str) -> bytes:
        ...

    @abstractmethod
    async def archive(self, path: str, archive_dir: str) -> str:
        """Move ``path`` into ``archive_dir`` under a timestamped name; return the new path."""
        ...

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> None:
        ...

    async def _guard(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            self.logger.warning("edi.transport.timeout", operation=operation, timeout=self.timeout)
            raise TransportError(f"{operation} timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise TransportError(f"{operation} failed: {exc}") from exc


# ── Transport registry ────────────────────────────────────────────────────

_TRANSPORT_REGISTRY: dict[TransportType, type[RemoteFileTransport]] = {}


def register_transport(transport_cls: type[RemoteFileTransport]):
    """Decorator: register a transport class for its transport type."""
    _TRANSPORT_REGISTRY[transport_cls.transport_type.fget(None)] = transport_cls  # type: ignore
    return transport_cls


def get_transport(vendor_id: str, config: PartnerEDIConfig) -> RemoteFileTransport:
    """Factory: return the right transport instance for a partner config."""
    try:
        transport_type = TransportType(config.transport)
    except ValueError:
        raise ValueError(f"No transport registered for type: {config.transport}") from None
    transport_cls = _TRANSPORT_REGISTRY.get(transport_type)
    if transport_cls is None:
        raise ValueError(f"No transport registered for type: {transport_type.value}")
    return transport_cls(vendor_id=vendor_id, config=config)
