from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, Protocol
from urllib.request import Request, urlopen

TransportFn = Callable[[str, dict[str, str], dict[str, Any], float], int]

_logger = logging.getLogger("tradejournal.rtp")


class AssetDeletionError(RuntimeError):
    pass


class AssetDeleter(Protocol):
    def delete(self, refs: list[str]) -> None: ...


def urllib_post(url: str, headers: dict[str, str], payload: dict[str, Any], timeout_seconds: float) -> int:
    request = Request(url=url, data=json.dumps(payload).encode("utf-8"), method="POST")
    for key, value in headers.items():
        request.add_header(key, value)
    with urlopen(request, timeout=timeout_seconds) as response:
        return int(response.getcode())


class LoggingAssetDeleter:
    """Default deleter when no storage backend is configured."""

    def delete(self, refs: list[str]) -> None:
        _logger.info("Asset deletion skipped, no backend configured: count=%s", len(refs))


class HttpAssetDeleter:
    def __init__(
        self,
        endpoint: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: TransportFn | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._transport = transport or urllib_post

    def delete(self, refs: list[str]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        status_code = self._transport(self.endpoint, headers, {"urls": refs}, self.timeout_seconds)
        if status_code >= 400:
            raise AssetDeletionError(f"asset deletion failed with HTTP {status_code}")


def clean_refs(refs: Iterable[object]) -> list[str]:
    clean: list[str] = []
    for ref in refs:
        if not isinstance(ref, str) or not ref.strip():
            continue
        if ref not in clean:
            clean.append(ref)
    return clean


def best_effort_delete(deleter: AssetDeleter, refs: Iterable[object]) -> bool:
    """Ask ``deleter`` to remove ``refs``; failures are logged and reported as False."""
    clean = clean_refs(refs)
    if not clean:
        return True
    try:
        deleter.delete(clean)
    except Exception:
        _logger.warning("Asset deletion failed: count=%s", len(clean), exc_info=True)
        return False
    _logger.info("Assets deleted: count=%s", len(clean))
    return True
