"""
Daybook Backend: Journal Entry Route Handlers
==============================================

What:  List, create, view, edit and delete the signed-in user's entries.
How:   Every handler requires a signed-in identity and works through the
       EntryRepository. Reads are served from the repository cache; writes
       go to the hosted backend first.

Backend failures on writes surface as 502 (BackendError handler) and the
cache is left untouched.
"""

import logging

from fastapi import APIRouter, Depends, Response, status

from daybook.context import AppContext, get_app_context
from daybook.exceptions import AuthenticationRequiredError, NotFoundError
from daybook.models.entry import JournalEntry
from daybook.schemas.common import ErrorResponse
from daybook.schemas.entry import EntryListResponse, EntryWrite

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/entries", tags=["Entries"])

_ERRORS = {
    401: {"description": "Not signed in", "model": ErrorResponse},
    502: {"description": "Hosted backend failed", "model": ErrorResponse},
}


def signed_in_context(ctx: AppContext = Depends(get_app_context)) -> AppContext:
    if not ctx.sessions.is_authenticated:
        raise AuthenticationRequiredError()
    return ctx


@router.get("", response_model=EntryListResponse, responses=_ERRORS, summary="List entries")
async def list_entries(
    response: Response,
    ctx: AppContext = Depends(signed_in_context),
) -> EntryListResponse:
    entries = ctx.entries.entries
    response.headers["X-Total-Count"] = str(len(entries))
    return EntryListResponse(entries=entries, total_count=len(entries))


@router.post(
    "",
    response_model=JournalEntry,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create an entry",
)
async def create_entry(
    body: EntryWrite,
    ctx: AppContext = Depends(signed_in_context),
) -> JournalEntry:
    entry_id = await ctx.entries.create(body.title, body.content, body.date)
    entry = ctx.entries.get(entry_id)
    if entry is None:
        # Signed out while the insert was in flight
        raise NotFoundError(resource="entry", resource_id=entry_id)
    return entry


@router.get(
    "/{entry_id}",
    response_model=JournalEntry,
    responses={**_ERRORS, 404: {"description": "Entry not found", "model": ErrorResponse}},
    summary="Get one entry",
)
async def get_entry(
    entry_id: str,
    ctx: AppContext = Depends(signed_in_context),
) -> JournalEntry:
    entry = ctx.entries.get(entry_id)
    if entry is None:
        raise NotFoundError(resource="entry", resource_id=entry_id)
    return entry


@router.put(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERRORS,
    summary="Edit an entry",
)
async def update_entry(
    entry_id: str,
    body: EntryWrite,
    ctx: AppContext = Depends(signed_in_context),
) -> Response:
    await ctx.entries.update(entry_id, body.title, body.content, body.date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERRORS,
    summary="Delete an entry",
)
async def delete_entry(
    entry_id: str,
    ctx: AppContext = Depends(signed_in_context),
) -> Response:
    await ctx.entries.delete(entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
