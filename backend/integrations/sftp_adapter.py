"""
SFTP Trading-Partner Transport

Partners such as Shaw host an SFTP drop with two folders:
  - /Inbox:  we upload 850 purchase orders here
  - /Outbox: the partner leaves 855 / 856 / 810 / 832 documents here

Typical cycle:
  1. Poll /Outbox every 30 minutes
  2. Download each new EDI file and reconcile it
  3. Move it to /Outbox/Archive under a timestamped name

Connections are opened once per cycle (``async with transport``) and
every remote call is bounded by the partner timeout.
"""

from __future__ import annotations

import posixpath
import stat
from datetime import datetime, timezone
from typing import Awaitable, TypeVar

import asyncssh

from integrations.base import (
    RemoteFile,
    RemoteFileTransport,
    TransportType,
    archive_name,
    has_extension,
    register_transport,
)
from integrations.errors import TransportError

T = TypeVar("T")


@register_transport
class SFTPTransport(RemoteFileTransport):
    """
    asyncssh-backed SFTP transport.

    Config expects (PartnerEDIConfig):
        host, port, username, and either password_encrypted (Fernet,
        see core.security) or key_path.
    """

    @property
    def transport_type(self) -> TransportType:
        return TransportType.SFTP

    def __init__(self, vendor_id, config):
        super().__init__(vendor_id, config)
        self._conn: asyncssh.SSHClientConnection | None = None
        self._sftp: asyncssh.SFTPClient | None = None

    async def connect(self) -> None:
        if self._sftp is not None:
            return
        if not self.config.host:
            raise TransportError("SFTP host is not configured")

        options: dict = {
            "port": self.config.port,
            "username": self.config.username,
            "known_hosts": None,
        }
        if self.config.password_encrypted:
            from core.security import decrypt

            options["password"] = decrypt(self.config.password_encrypted)
        if self.config.key_path:
            options["client_keys"] = [self.config.key_path]

        self._conn = await self._guard("connect", asyncssh.connect(self.config.host, **options))
        self._sftp = await self._guard("start_sftp", self._conn.start_sftp_client())
        self.logger.info("edi.sftp.connected", host=self.config.host, port=self.config.port)

    async def close(self) -> None:
        if self._sftp is not None:
            self._sftp.exit()
            self._sftp = None
        if self._conn is not None:
            self._conn.close()
            await self._conn.wait_closed()
            self._conn = None

    @property
    def sftp(self) -> asyncssh.SFTPClient:
        if self._sftp is None:
            raise TransportError("SFTP transport used outside of its connection context")
        return self._sftp

    async def _guard(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await super()._guard(operation, awaitable)
        except asyncssh.Error as exc:
            raise TransportError(f"{operation} failed: {exc}") from exc

    async def list(self, directory: str, extensions: list[str]) -> list[RemoteFile]:
        entries = await self._guard("list", self.sftp.readdir(directory))
        files: list[RemoteFile] = []
        for entry in entries:
            attrs = entry.attrs
            if attrs.permissions is not None and not stat.S_ISREG(attrs.permissions):
                continue
            if entry.filename in (".", "..") or not has_extension(entry.filename, extensions):
                continue
            files.append(
                RemoteFile(
                    name=entry.filename,
                    size=attrs.size or 0,
                    modified_at=datetime.fromtimestamp(attrs.mtime, tz=timezone.utc) if attrs.mtime else None,
                    path=posixpath.join(directory, entry.filename),
                )
            )
        files.sort(key=lambda f: f.name)
        self.logger.debug("edi.sftp.listed", directory=directory, files=len(files))
        return files

    async def download(self, path: str) -> bytes:
        async def _read() -> bytes:
            async with self.sftp.open(path, "rb") as handle:
                return await handle.read()

        return await self._guard("download", _read())

    async def archive(self, path: str, archive_dir: str) -> str:
        target = posixpath.join(archive_dir, archive_name(posixpath.basename(path)))
        await self._guard("makedirs", self.sftp.makedirs(archive_dir, exist_ok=True))
        await self._guard("archive", self.sftp.rename(path, target))
        return target

    async def upload(self, path: str, data: bytes) -> None:
        async def _write() -> None:
            async with self.sftp.open(path, "wb") as handle:
                await handle.write(data)

        await self._guard("upload", _write())
        self.logger.info("edi.sftp.uploaded", path=path, size=len(data))
