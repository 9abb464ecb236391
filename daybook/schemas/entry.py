"""
Daybook Backend: Journal Entry Request/Response Schemas
========================================================

What:  API contract for the entry routes. Responses are the JournalEntry
       domain model itself; requests carry only user-editable fields.
"""

from datetime import date
from typing import List

from pydantic import BaseModel, Field, field_validator

from daybook.models.entry import JournalEntry


class EntryWrite(BaseModel):
    """Body of POST /api/entries and PUT /api/entries/{id}. Title and content are required."""

    title: str
    content: str
    date: date

    @field_validator("title", "content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title and content are required.")
        return v


class EntryListResponse(BaseModel):
    entries: List[JournalEntry] = Field(description="Entries, most recent date first")
    total_count: int
