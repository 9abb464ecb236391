"""
Daybook Backend: Journal Entry Domain Model
============================================

What:  In-memory representation of one row of the entry table.
How:   from_row() maps the backend's snake_case row to a JournalEntry;
       to_row() builds the write payload for insert/update.

Row shape (hosted table `journal_entries`):
    {id, title, content, date, created_at, updated_at, user_id}

    - date: ISO date-time string. The user picks a calendar date; it is
      written as midnight UTC and read back as a calendar date.
    - content: nullable in the table; null reads as "".
    - updated_at: nullable; null reads as created_at.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, TypeAdapter

_timestamp_adapter = TypeAdapter(datetime)


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse a timestamp as sent by the backend.

    Postgres drops trailing zeros from fractional seconds (".12345"), which
    datetime.fromisoformat rejects before Python 3.11, so parsing goes
    through pydantic. A bare calendar date reads as midnight UTC.
    """
    if isinstance(value, datetime):
        return value
    if len(value) == 10:
        return datetime.combine(date.fromisoformat(value), time.min, tzinfo=timezone.utc)
    return _timestamp_adapter.validate_python(value)


def format_entry_date(value: date) -> str:
    """Calendar date → ISO date-time string at midnight UTC."""
    return datetime.combine(value, time.min, tzinfo=timezone.utc).isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JournalEntry(BaseModel):
    """
    A single journal record owned by one Identity.

    Lifecycle:
        1. Created by EntryRepository.create() (backend assigns id and created_at)
        2. Fields replaced by EntryRepository.update() (updated_at refreshed)
        3. Removed by EntryRepository.delete()
    """

    id: str
    title: str
    content: str = ""
    date: date
    created_at: datetime
    updated_at: datetime
    owner_id: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "JournalEntry":
        created_at = parse_timestamp(row["created_at"])
        updated_raw = row.get("updated_at")
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            content=row.get("content") or "",
            date=parse_timestamp(row["date"]).date(),
            created_at=created_at,
            updated_at=parse_timestamp(updated_raw) if updated_raw else created_at,
            owner_id=str(row["user_id"]),
        )

    @staticmethod
    def to_row(
        title: str,
        content: str,
        entry_date: date,
        owner_id: Optional[str] = None,
        updated_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "title": title,
            "content": content,
            "date": format_entry_date(entry_date),
        }
        if owner_id is not None:
            row["user_id"] = owner_id
        if updated_at is not None:
            row["updated_at"] = updated_at.isoformat()
        return row
