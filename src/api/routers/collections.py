"""
GET /collections, GET /collections/{name} -- schema snapshot endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from src.db.connection import get_database
from src.db.schema import list_collection_names, load_schemas, snapshot_collection
from src.core.errors import CollectionNotFoundError

router = APIRouter()



class SchemaItem(BaseModel):
    collection_name: str
    fields: dict[str, str]
    date_fields: list[str]


class CollectionsResponse(BaseModel):
    collections: list[SchemaItem]



@router.get("", response_model=CollectionsResponse)
def list_collections() -> CollectionsResponse:
    """Return the sampled schema of every collection."""
    db = get_database()
    if not list_collection_names(db):
        return CollectionsResponse(collections=[])
    schemas = load_schemas(db)
    return CollectionsResponse(
        collections=[
            SchemaItem(collection_name=s.collection_name, fields=s.fields, date_fields=s.date_fields())
            for s in schemas.values()
        ]
    )


@router.get("/{name}", response_model=SchemaItem)
def get_collection(name: str) -> SchemaItem:
    """Return the sampled schema of one collection."""
    db = get_database()
    if name not in list_collection_names(db):
        raise CollectionNotFoundError(f"Collection '{name}' does not exist", {"collection": name})
    snapshot = snapshot_collection(db, name)
    return SchemaItem(
        collection_name=snapshot.collection_name,
        fields=snapshot.fields,
        date_fields=snapshot.date_fields(),
    )
