"""CouchDB document envelope and healing decode helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from couchkit.couch.protocols import JsonDict

M = TypeVar("M", bound=BaseModel)

# Keys CouchDB manages itself; never part of a document's logical value.
METADATA_KEYS = frozenset({"_id", "_rev", "_deleted", "_revisions", "_conflicts", "_attachments"})


def strip_metadata(raw: Mapping[str, Any]) -> JsonDict:
    return {k: v for k, v in raw.items() if k not in METADATA_KEYS}


def heal_model(model: Type[M], raw: Any) -> M:
    """
    Validate ``raw`` into ``model``, replacing broken fields with defaults.

    Each top-level field that fails validation is dropped and validation is
    retried, so one bad value never throws away the rest of the document.
    Non-object input heals to ``model()``. Raises ``ValidationError`` only
    when a required field (one without a default) is missing or broken.
    """
    data: JsonDict = dict(raw) if isinstance(raw, Mapping) else {}
    while True:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            broken = {err["loc"][0] for err in exc.errors() if err["loc"]}
            removable = broken & data.keys()
            if not removable:
                raise
            for key in removable:
                del data[key]


def heal_mapping(model: Type[M], raw: Any) -> Dict[str, M]:
    """Heal a ``{key: object}`` mapping, dropping entries that cannot be healed."""
    out: Dict[str, M] = {}
    if not isinstance(raw, Mapping):
        return out
    for key, value in raw.items():
        if not isinstance(value, Mapping):
            continue
        try:
            out[str(key)] = heal_model(model, value)
        except ValidationError:
            continue
    return out


def encode_model(value: BaseModel) -> JsonDict:
    """Canonical JSON form of a model, as stored in CouchDB."""
    return value.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class CouchDoc(Generic[M]):
    """A CouchDB document with the ``_id``/``_rev`` metadata split out."""

    id: str
    doc: M
    rev: Optional[str] = None

    @classmethod
    def decode(cls, raw: Any, model: Type[M]) -> "CouchDoc[M]":
        """Strictly decode a raw CouchDB document. Raises ValueError on bad input."""
        if not isinstance(raw, Mapping) or not isinstance(raw.get("_id"), str):
            raise ValueError(f"Not a CouchDB document: {raw!r}")
        rev = raw.get("_rev")
        return cls(
            id=raw["_id"],
            doc=model.model_validate(strip_metadata(raw)),
            rev=rev if isinstance(rev, str) else None,
        )

    def encode(self) -> JsonDict:
        out: JsonDict = {"_id": self.id}
        if self.rev is not None:
            out["_rev"] = self.rev
        out.update(encode_model(self.doc))
        return out


__all__ = [
    "CouchDoc",
    "METADATA_KEYS",
    "encode_model",
    "heal_mapping",
    "heal_model",
    "strip_metadata",
]
