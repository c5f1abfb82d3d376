"""
Local directory transport.

Mirrors a partner SFTP drop under a filesystem root (``local_root``),
so /Outbox maps to ``{local_root}/Outbox``. Used for development and
tests; blocking file I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

from integrations.base import (
    RemoteFile,
    RemoteFileTransport,
    TransportType,
    archive_name,
    has_extension,
    register_transport,
)


@register_transport
class LocalDirectoryTransport(RemoteFileTransport):
    @property
    def transport_type(self) -> TransportType:
        return TransportType.LOCAL

    def __init__(self, vendor_id, config):
        super().__init__(vendor_id, config)
        self.root = Path(config.local_root)

    def _resolve(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def _remote_path(self, local: Path) -> str:
        return "/" + local.relative_to(self.root).as_posix()

    async def list(self, directory: str, extensions: list[str]) -> list[RemoteFile]:
        def _scan() -> list[RemoteFile]:
            base = self._resolve(directory)
            if not base.is_dir():
                return []
            files = []
            for entry in sorted(base.iterdir()):
                if not entry.is_file() or not has_extension(entry.name, extensions):
                    continue
                info = entry.stat()
                files.append(
                    RemoteFile(
                        name=entry.name,
                        size=info.st_size,
                        modified_at=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
                        path=self._remote_path(entry),
                    )
                )
            return files

        return await self._guard("list", asyncio.to_thread(_scan))

    async def download(self, path: str) -> bytes:
        return await self._guard("download", asyncio.to_thread(self._resolve(path).read_bytes))

    async def archive(self, path: str, archive_dir: str) -> str:
        def _move() -> str:
            source = self._resolve(path)
            target_dir = self._resolve(archive_dir)
            target_dir.mkdir(parents=True, exist_ok=True)
            target = target_dir / archive_name(source.name)
            source.rename(target)
            return self._remote_path(target)

        return await self._guard("archive", asyncio.to_thread(_move))

    async def upload(self, path: str, data: bytes) -> None:
        def _write() -> None:
            target = self._resolve(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await self._guard("upload", asyncio.to_thread(_write))
        self.logger.info("edi.local.uploaded", path=path, size=len(data))
