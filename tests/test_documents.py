from typing import List, Optional

import pytest
from pydantic import BaseModel, ValidationError

from couchkit.couch.documents import (
    CouchDoc,
    encode_model,
    heal_mapping,
    heal_model,
    strip_metadata,
)

pytestmark = [pytest.mark.asyncio, pytest.mark.unit]


class Settings(BaseModel):
    theme: str = "light"
    retries: int = 3
    tags: List[str] = []
    note: Optional[str] = None


class Required(BaseModel):
    name: str
    size: int = 0


async def test_heal_keeps_valid_fields_and_defaults_broken_ones():
    healed = heal_model(Settings, {"theme": "dark", "retries": "many", "tags": "x"})
    assert healed == Settings(theme="dark")


async def test_heal_non_object_gives_defaults():
    assert heal_model(Settings, None) == Settings()
    assert heal_model(Settings, ["a"]) == Settings()


async def test_heal_cannot_invent_required_fields():
    with pytest.raises(ValidationError):
        heal_model(Required, {"size": 2})
    assert heal_model(Required, {"name": "n", "size": "big"}) == Required(name="n")


async def test_heal_mapping_drops_unhealable_entries():
    healed = heal_mapping(Required, {"a": {"name": "a"}, "b": {"size": 1}, "c": 7})
    assert list(healed) == ["a"]
    assert heal_mapping(Required, "nope") == {}


async def test_strip_metadata():
    raw = {"_id": "x", "_rev": "1-a", "_conflicts": [], "value": 1, "_other": 2}
    assert strip_metadata(raw) == {"value": 1, "_other": 2}


async def test_encode_model_drops_none():
    assert encode_model(Settings()) == {"theme": "light", "retries": 3, "tags": []}


async def test_couch_doc_round_trip():
    doc = CouchDoc.decode({"_id": "s", "_rev": "2-b", "theme": "dark"}, Settings)

    assert doc.id == "s"
    assert doc.rev == "2-b"
    assert doc.doc.theme == "dark"
    assert doc.encode() == {"_id": "s", "_rev": "2-b", "theme": "dark", "retries": 3, "tags": []}


async def test_couch_doc_without_rev_encodes_without_rev():
    assert "_rev" not in CouchDoc(id="n", doc=Settings()).encode()


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "text",
        {"theme": "dark"},
        {"_id": 5},
        {"_id": "x", "retries": "many"},
    ],
)
async def test_couch_doc_decode_is_strict(raw):
    with pytest.raises(ValueError):
        CouchDoc.decode(raw, Settings)
