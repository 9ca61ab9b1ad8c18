"""Remote store clients used by the sync scheduler."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import aiohttp

from pymyozen.exceptions import MyozenSyncError
from pymyozen.models.session import SessionRecord

_logger = logging.getLogger(__name__)


class RemotePusher(Protocol):
    """Structural interface for pushing one session record upstream.

    Implementations must be idempotent per record id: the same record may be
    pushed twice (a forced sync overlapping a scheduled run).
    """

    async def push(self, record: SessionRecord) -> None:
        ...


class SimulatedRemotePusher:
    """Stand-in remote store that accepts every record after a fixed latency."""

    def __init__(self, *, latency: float = 0.2, logger: logging.Logger | None = None) -> None:
        self._latency = latency
        self._logger = logger or _logger
        self.pushed: list[str] = []

    async def push(self, record: SessionRecord) -> None:
        await asyncio.sleep(self._latency)
        self.pushed.append(record.id or "")
        self._logger.debug("Simulated push of %s record=%s", record.kind, record.id)


class HttpRemotePusher:
    """Push records with ``PUT {base_url}/sessions/{kind}/{id}``.

    PUT keyed by record id makes a repeated push an overwrite, never a
    duplicate.
    """

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._logger = logger or _logger

    def url_for(self, record: SessionRecord) -> str:
        return f"{self._base_url}/sessions/{record.kind}/{record.id}"

    async def push(self, record: SessionRecord) -> None:
        if not record.id:
            raise MyozenSyncError("cannot push a record without id")
        url = self.url_for(record)
        body = record.model_dump_json(by_alias=True, exclude={"sync_status"})
        self._logger.debug("PUT %s", url)
        try:
            async with self._http.put(url, data=body, headers={"content-type": "application/json"}) as resp:
                if resp.status >= 300:
                    text = await resp.text()
                    raise MyozenSyncError(
                        f"HTTP {resp.status} from remote store: {text[:200]}",
                        record_id=record.id,
                        status_code=resp.status,
                    )
        except MyozenSyncError:
            raise
        except aiohttp.ClientError as exc:
            raise MyozenSyncError(f"Push of {record.id} failed: {exc}", record_id=record.id) from exc
