"""
Named connections to several CouchDB clusters.

A ``CouchPool`` is created once by the service and handed to whatever needs
to reach other clusters. Connections are cached on the pool instance.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Union
from urllib.parse import unquote, urlsplit, urlunsplit

from pydantic import BaseModel

from couchkit.couch.client import CouchServer
from couchkit.couch.errors import CouchError


class CouchCredential(BaseModel):
    """Where and how to reach one cluster."""

    url: str
    username: Optional[str] = None
    password: Optional[str] = None


CredentialEntry = Union[str, CouchCredential, Mapping[str, str]]


def split_url_credentials(url: str) -> CouchCredential:
    """Move ``user:pass@`` out of a URL into separate fields."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    clean = urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))
    return CouchCredential(
        url=clean,
        username=unquote(parts.username) if parts.username else None,
        password=unquote(parts.password) if parts.password else None,
    )


class CouchPool:
    """A table of CouchDB connections with one highlighted as the default."""

    def __init__(
        self,
        default_name: str,
        credentials: Mapping[str, CredentialEntry],
        timeout: float = 30.0,
    ) -> None:
        self.default_name = default_name
        self.timeout = timeout
        self._credentials: Dict[str, CouchCredential] = {}
        for name, entry in credentials.items():
            self._credentials[name] = _normalize(entry)
        self._connections: Dict[str, CouchServer] = {}
        if default_name not in self._credentials:
            raise CouchError(f"Cannot find cluster '{default_name}'")

    @property
    def cluster_names(self) -> List[str]:
        return list(self._credentials)

    @property
    def default(self) -> CouchServer:
        return self.connect(self.default_name)

    def get_credential(self, name: str) -> Optional[CouchCredential]:
        return self._credentials.get(name)

    def maybe_connect(self, name: str) -> Optional[CouchServer]:
        cached = self._connections.get(name)
        if cached is not None:
            return cached

        credential = self._credentials.get(name)
        if credential is None:
            return None
        connection = CouchServer(
            credential.url,
            username=credential.username,
            password=credential.password,
            timeout=self.timeout,
        )
        self._connections[name] = connection
        return connection

    def connect(self, name: str) -> CouchServer:
        connection = self.maybe_connect(name)
        if connection is None:
            raise CouchError(f"Cannot find cluster '{name}'")
        return connection

    async def aclose(self) -> None:
        for connection in self._connections.values():
            await connection.aclose()
        self._connections.clear()


def _normalize(entry: CredentialEntry) -> CouchCredential:
    if isinstance(entry, str):
        return split_url_credentials(entry)
    if not isinstance(entry, CouchCredential):
        entry = CouchCredential.model_validate(dict(entry))
    # Explicit fields win over credentials embedded in the URL.
    from_url = split_url_credentials(entry.url)
    return CouchCredential(
        url=from_url.url,
        username=entry.username if entry.username is not None else from_url.username,
        password=entry.password if entry.password is not None else from_url.password,
    )


def connect_couch(
    url_or_default_name: str,
    credentials: Optional[Mapping[str, CredentialEntry]] = None,
    timeout: float = 30.0,
) -> CouchPool:
    """
    Build a ``CouchPool``.

    ``connect_couch(url)`` gives a pool with a single cluster called
    ``"default"``; ``connect_couch(name, credentials)`` uses ``name`` as the
    default cluster among ``credentials``.
    """
    if credentials is None:
        return CouchPool("default", {"default": url_or_default_name}, timeout=timeout)
    return CouchPool(url_or_default_name, credentials, timeout=timeout)


__all__ = ["CouchCredential", "CouchPool", "connect_couch", "split_url_credentials"]
