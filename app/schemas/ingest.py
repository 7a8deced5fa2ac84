"""Schemas for the ingestion and document management endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _UserScoped(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(None, alias="userId", description="Owner of the document collection.")


class IngestTextRequest(_UserScoped):
    text: str | None = Field(None, description="Raw text to index as one document.")


class WebIngestRequest(_UserScoped):
    url: str | None = Field(None, description="Start page; same-prefix links are crawled too.")


class DeleteDocRequest(_UserScoped):
    doc_id: str | None = Field(None, alias="docId", description="Document id returned at ingestion time.")


class DebugCollectionRequest(_UserScoped):
    pass


class IngestResponse(BaseModel):
    """Response after indexing text, a file or a website."""

    message: str
    doc_id: str = Field(..., serialization_alias="docId")
    chunks_created: int = Field(..., serialization_alias="chunksCreated")
    text_length: int | None = Field(None, serialization_alias="textLength")
    page_count: int | None = Field(None, serialization_alias="pageCount")
    collection: str | None = None
    documents: int | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [{"message": "Text uploaded and embedded successfully!", "docId": "3f1c...", "chunksCreated": 4}]
        }
    }


class DeleteDocResponse(BaseModel):
    message: str
    deleted_count: int | None = Field(None, serialization_alias="deletedCount")
    method: str | None = None


class DebugCollectionResponse(BaseModel):
    points: list[dict[str, Any]]
