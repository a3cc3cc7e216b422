"""Helpers for building CouchDB design documents."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

SortItem = Dict[str, str]
SortSyntax = Union[str, SortItem, List[Union[str, SortItem]]]


def make_mango_index(
    name: str,
    fields: SortSyntax,
    *,
    filter: Optional[Dict[str, Any]] = None,
    partitioned: bool = False,
) -> Dict[str, Any]:
    """
    Build a design document describing a Mango (``language: query``) index.

    ``fields`` uses the same syntax as a Mango ``sort``: a field name, a
    ``{field: "asc"|"desc"}`` mapping, or a list of either.
    """
    items = fields if isinstance(fields, list) else [fields]
    field_directions: SortItem = {}
    for item in items:
        if isinstance(item, str):
            field_directions[item] = "asc"
        else:
            ((field, direction),) = item.items()
            field_directions[field] = direction

    definition: Dict[str, Any] = {"fields": fields}
    if filter is not None:
        definition["partial_filter_selector"] = filter

    document: Dict[str, Any] = {
        "language": "query",
        "views": {
            name: {
                "map": {
                    "fields": field_directions,
                    "partial_filter_selector": filter or {},
                },
                "reduce": "_count",
                "options": {"def": definition},
            }
        },
    }
    if partitioned:
        document["options"] = {"partitioned": True}
    return document


def make_js_design_document(
    views: Dict[str, Dict[str, str]],
    *,
    partitioned: bool = False,
    validate_doc_update: Optional[str] = None,
) -> Dict[str, Any]:
    """Wrap JavaScript ``map``/``reduce`` sources into a design document."""
    document: Dict[str, Any] = {"language": "javascript", "views": views}
    if partitioned:
        document["options"] = {"partitioned": True}
    if validate_doc_update is not None:
        document["validate_doc_update"] = validate_doc_update
    return document


__all__ = ["make_mango_index", "make_js_design_document", "SortSyntax"]
