"""
httpx binding for the CouchDB HTTP API.

Implements ``ServerScope``/``DatabaseScope``. Reads that are safe to repeat
retry 5xx answers and transport failures; writes never retry.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx

from couchkit.couch.errors import CouchServerError, CouchTransportError, error_from_response
from couchkit.couch.protocols import JsonDict
from couchkit.utils.logging import get_logger
from couchkit.utils.retry import async_retry

logger = get_logger(__name__)

# View parameters CouchDB expects as JSON values rather than plain strings.
_JSON_PARAMS = frozenset({"key", "keys", "start_key", "end_key", "startkey", "endkey"})

_TRANSIENT = (CouchServerError, CouchTransportError)


def encode_query_params(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Serialize view/list parameters the way CouchDB reads them."""
    out: Dict[str, str] = {}
    for name, value in (params or {}).items():
        if value is None:
            continue
        if name in _JSON_PARAMS:
            out[name] = json.dumps(value)
        elif isinstance(value, bool):
            out[name] = "true" if value else "false"
        else:
            out[name] = str(value)
    return out


def quote_doc_id(doc_id: str) -> str:
    if doc_id.startswith("_design/"):
        return "_design/" + quote(doc_id[len("_design/"):], safe="")
    return quote(doc_id, safe="")


class CouchServer:
    """Connection to one CouchDB cluster."""

    def __init__(
        self,
        url: str,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url.rstrip("/")
        auth = httpx.BasicAuth(username, password) if username and password is not None else None
        self.client = httpx.AsyncClient(
            base_url=self.url,
            auth=auth,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        try:
            response = await self.client.request(
                method,
                path,
                params=encode_query_params(params),
                json=body,
            )
        except httpx.TransportError as exc:
            raise CouchTransportError(f"{method} {path}: {exc}") from exc

        payload = _decode_body(response.content)
        if response.status_code >= 400:
            raise error_from_response(response.status_code, payload, f"{method} {path}")
        return payload

    @async_retry(max_attempts=3, retry_on=_TRANSIENT)
    async def all_dbs(self) -> List[str]:
        return list(await self.request("GET", "/_all_dbs"))

    async def create_db(self, name: str, options: Optional[JsonDict] = None) -> None:
        await self.request("PUT", f"/{quote(name, safe='')}", params=options)
        logger.info("database_created", database=name, options=options or {})

    def use(self, name: str) -> "CouchDatabase":
        return CouchDatabase(self, name)

    async def aclose(self) -> None:
        await self.client.aclose()


class CouchDatabase:
    """One database on a ``CouchServer``."""

    def __init__(self, server: CouchServer, name: str) -> None:
        self.server = server
        self.name = name
        self._base = f"/{quote(name, safe='')}"

    def _scoped(self, partition: Optional[str]) -> str:
        if partition is None:
            return self._base
        return f"{self._base}/_partition/{quote(partition, safe='')}"

    @async_retry(max_attempts=3, retry_on=_TRANSIENT)
    async def get(self, doc_id: str) -> JsonDict:
        return dict(await self.server.request("GET", f"{self._base}/{quote_doc_id(doc_id)}"))

    async def insert(self, doc: JsonDict) -> JsonDict:
        doc_id = doc.get("_id")
        if doc_id is None:
            return dict(await self.server.request("POST", self._base, body=doc))
        path = f"{self._base}/{quote_doc_id(doc_id)}"
        return dict(await self.server.request("PUT", path, body=doc))

    async def delete(self, doc_id: str, rev: str) -> JsonDict:
        path = f"{self._base}/{quote_doc_id(doc_id)}"
        return dict(await self.server.request("DELETE", path, params={"rev": rev}))

    async def bulk(self, docs: List[JsonDict]) -> List[JsonDict]:
        return list(await self.server.request("POST", f"{self._base}/_bulk_docs", body={"docs": docs}))

    @async_retry(max_attempts=3, retry_on=_TRANSIENT)
    async def find(self, query: JsonDict, partition: Optional[str] = None) -> JsonDict:
        path = f"{self._scoped(partition)}/_find"
        return dict(await self.server.request("POST", path, body=query))

    @async_retry(max_attempts=3, retry_on=_TRANSIENT)
    async def list(self, params: JsonDict, partition: Optional[str] = None) -> JsonDict:
        return await self._rows(f"{self._scoped(partition)}/_all_docs", params)

    @async_retry(max_attempts=3, retry_on=_TRANSIENT)
    async def view(
        self, design: str, view: str, params: JsonDict, partition: Optional[str] = None
    ) -> JsonDict:
        path = (
            f"{self._scoped(partition)}/_design/{quote(design, safe='')}"
            f"/_view/{quote(view, safe='')}"
        )
        return await self._rows(path, params)

    async def _rows(self, path: str, params: JsonDict) -> JsonDict:
        params = dict(params)
        keys = params.pop("keys", None)
        if keys is not None:
            return dict(await self.server.request("POST", path, params=params, body={"keys": keys}))
        return dict(await self.server.request("GET", path, params=params))

    async def changes(self, since: str = "now") -> AsyncIterator[JsonDict]:
        """
        Follow ``_changes?feed=continuous`` until the server closes the stream.

        Heartbeat blank lines and the trailing ``last_seq`` line are skipped.
        """
        params = encode_query_params(
            {"feed": "continuous", "since": since, "include_docs": True, "heartbeat": 30000}
        )
        path = f"{self._base}/_changes"
        try:
            async with self.server.client.stream(
                "GET", path, params=params, timeout=httpx.Timeout(None, connect=10.0)
            ) as response:
                if response.status_code >= 400:
                    payload = _decode_body(await response.aread())
                    raise error_from_response(response.status_code, payload, f"GET {path}")
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    change = json.loads(line)
                    if isinstance(change, dict) and "id" in change:
                        yield change
        except httpx.TransportError as exc:
            raise CouchTransportError(f"GET {path}: {exc}") from exc


def _decode_body(content: bytes) -> Any:
    if not content:
        return None
    try:
        return json.loads(content)
    except ValueError:
        return None


__all__ = ["CouchServer", "CouchDatabase", "encode_query_params", "quote_doc_id"]
