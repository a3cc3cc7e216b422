"""
CouchDB access: protocols, errors, the httpx binding and document helpers.
"""

from .client import CouchDatabase, CouchServer
from .documents import CouchDoc, encode_model, heal_mapping, heal_model
from .errors import (
    AlreadyExistsError,
    ConflictError,
    CouchError,
    CouchServerError,
    CouchTransportError,
    NotFoundError,
)
from .pool import CouchCredential, CouchPool, connect_couch
from .protocols import DatabaseScope, JsonDict, ServerScope

__all__ = [
    "CouchServer",
    "CouchDatabase",
    "CouchDoc",
    "encode_model",
    "heal_model",
    "heal_mapping",
    "CouchError",
    "NotFoundError",
    "ConflictError",
    "AlreadyExistsError",
    "CouchServerError",
    "CouchTransportError",
    "CouchCredential",
    "CouchPool",
    "connect_couch",
    "DatabaseScope",
    "ServerScope",
    "JsonDict",
]
