"""API routes for project chat rooms, with a live SSE event stream."""

import json
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, Form, Request, UploadFile
from sse_starlette.sse import EventSourceResponse

from app.api.deps import (
    ChatRoomsDep,
    CurrentIdentity,
    MessageIngestionDep,
    PublisherDep,
    ReadTrackerDep,
)
from app.config import sanitize_error
from app.schemas.chat import (
    ChatRoomSnapshot,
    MarkAllReadResponse,
    MarkOneReadResponse,
    ReactionRequest,
    ReactionResponse,
    SendMessageResponse,
    UnreadSummaryResponse,
)
from app.services.message_ingestion import IncomingAttachment

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


# =============================================================================
# ROOM
# =============================================================================


@router.get("/projects/{project_id}/chat", response_model=ChatRoomSnapshot)
async def get_chat_room(
    project_id: UUID,
    identity: CurrentIdentity,
    chat_rooms: ChatRoomsDep,
) -> ChatRoomSnapshot:
    """Get the full room with the caller's unread count."""
    return await chat_rooms.get_snapshot(str(project_id), str(identity.user_id))


@router.post("/projects/{project_id}/chat", response_model=SendMessageResponse, status_code=201)
async def send_message(
    project_id: UUID,
    identity: CurrentIdentity,
    ingestion: MessageIngestionDep,
    content: Annotated[str | None, Form()] = None,
    attachments: Annotated[list[UploadFile] | None, File()] = None,
) -> SendMessageResponse:
    """Send a message with optional attachments (multipart/form-data)."""
    files = []
    for upload in attachments or []:
        files.append(
            IncomingAttachment(
                filename=upload.filename or "attachment",
                content_type=upload.content_type or "application/octet-stream",
                data=await upload.read(),
            )
        )

    message = await ingestion.send(str(project_id), str(identity.user_id), content, files)
    return SendMessageResponse(message=message)


# =============================================================================
# READ RECEIPTS
# =============================================================================


@router.put("/projects/{project_id}/chat/read", response_model=MarkAllReadResponse)
async def mark_all_read(
    project_id: UUID,
    identity: CurrentIdentity,
    tracker: ReadTrackerDep,
) -> MarkAllReadResponse:
    """Mark every message in the room as read by the caller."""
    return await tracker.mark_all_read(str(project_id), str(identity.user_id))


@router.put("/projects/{project_id}/chat/{message_id}/read", response_model=MarkOneReadResponse)
async def mark_message_read(
    project_id: UUID,
    message_id: str,
    identity: CurrentIdentity,
    tracker: ReadTrackerDep,
) -> MarkOneReadResponse:
    """Mark one message as read by the caller."""
    return await tracker.mark_one_read(str(project_id), str(identity.user_id), message_id)


@router.get("/chat/unread", response_model=UnreadSummaryResponse)
async def get_unread_summary(
    identity: CurrentIdentity,
    tracker: ReadTrackerDep,
) -> UnreadSummaryResponse:
    """Unread counts across every room the caller participates in."""
    return await tracker.unread_summary(str(identity.user_id))


# =============================================================================
# REACTIONS
# =============================================================================


@router.post(
    "/projects/{project_id}/chat/{message_id}/reactions",
    response_model=ReactionResponse,
)
async def toggle_reaction(
    project_id: UUID,
    message_id: str,
    data: ReactionRequest,
    identity: CurrentIdentity,
    chat_rooms: ChatRoomsDep,
) -> ReactionResponse:
    """Add the caller's reaction, or remove it if it is already there."""
    return await chat_rooms.toggle_reaction(
        str(project_id), message_id, str(identity.user_id), data.emoji
    )


# =============================================================================
# LIVE EVENTS
# =============================================================================


@router.get("/projects/{project_id}/chat/events")
async def stream_chat_events(
    project_id: UUID,
    request: Request,
    identity: CurrentIdentity,
    chat_rooms: ChatRoomsDep,
    publisher: PublisherDep,
) -> EventSourceResponse:
    """
    Stream room events over SSE.

    Delivery is at-most-once. Clients that reconnect should re-fetch the room.
    """
    await chat_rooms.require_participant(str(project_id), str(identity.user_id))

    async def event_generator():
        """Relay pub/sub events for this project until the client disconnects."""
        try:
            async for event in publisher.subscribe(str(project_id)):
                if await request.is_disconnected():
                    break
                yield {"event": event.kind.value, "data": json.dumps(event.payload)}
        except Exception as e:
            logger.exception("Chat event stream failed for project %s", project_id)
            safe_msg = sanitize_error(e, generic_message="The event stream was interrupted.")
            yield {"event": "error", "data": safe_msg}

    return EventSourceResponse(event_generator())
