"""
Append-only, line-delimited Issue store.

One fresh file per category per run. Each Issue is serialised completely
before a single write, so a reader never sees a partial record.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from .models import Issue

logger = logging.getLogger(__name__)


class IssueStreamWriter:
    """
    Потоковая запись находок в JSONL.

    Использование:
        async with IssueStreamWriter(path) as stream:
            await stream.write(issue)
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.count = 0
        self._handle = None
        self._lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self._handle is None

    async def open(self) -> "IssueStreamWriter":
        """Удалить файл прошлого запуска и открыть новый на дозапись."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            await aiofiles.os.remove(self.path)
        self._handle = await aiofiles.open(self.path, mode="a", encoding="utf-8")
        self.count = 0
        return self

    async def write(self, issue: Issue) -> None:
        """Дописать одну запись."""
        if self.closed:
            raise RuntimeError(f"Stream {self.path} is not open")

        line = json.dumps(issue.to_dict(), ensure_ascii=False) + "\n"
        async with self._lock:
            await self._handle.write(line)
            self.count += 1

    async def close(self) -> None:
        if self._handle is None:
            return
        async with self._lock:
            await self._handle.flush()
            await self._handle.close()
            self._handle = None

    async def __aenter__(self) -> "IssueStreamWriter":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False


async def read_issue_stream(path: Path) -> AsyncIterator[Issue]:
    """Прочитать поток построчно; битые строки логируются и пропускаются."""
    path = Path(path)
    if not path.exists():
        return

    async with aiofiles.open(path, mode="r", encoding="utf-8") as handle:
        line_number = 0
        async for raw_line in handle:
            line_number += 1
            line = raw_line.strip()
            if not line:
                continue
            try:
                yield Issue.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping corrupt record {path.name}:{line_number}: {e}")
