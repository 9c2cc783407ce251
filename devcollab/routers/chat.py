"""Project chat API endpoints.

History is REST-only. Sending, editing and deleting are also available
over the WebSocket; both paths run the same ``ChatService`` pipeline, so
a message posted here is broadcast to the chat room as well.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.message import (
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageUpdate,
)
from ..services.auth_service import get_current_user
from ..services.chat_service import ChatService

router = APIRouter(prefix="/api/chat", tags=["Chat"])

_ERROR_RESPONSES = {
    401: {"description": "Not authenticated"},
    403: {"description": "Not a member of the project's workspace"},
    404: {"description": "Project or message not found"},
}


@router.get(
    "/{project_id}/messages",
    response_model=MessageListResponse,
    response_model_by_alias=True,
    summary="Get chat history",
    responses=_ERROR_RESPONSES,
)
async def get_messages(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1, description="Page number (1 = newest)"),
    limit: int = Query(50, ge=1, le=100, description="Messages per page"),
) -> MessageListResponse:
    """
    Page through a project's chat, newest page first.

    Messages within a page are in chronological order.
    """
    return await ChatService(db).list_messages(current_user, project_id, page, limit)


@router.post(
    "/{project_id}/messages",
    response_model=MessageResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
    responses=_ERROR_RESPONSES,
)
async def send_message(
    project_id: UUID,
    message_data: MessageCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Send a chat message.

    - **text**: 1 to 2000 characters
    - **mentions**: User ids to notify
    """
    return await ChatService(db).send_message(
        current_user,
        project_id,
        message_data.text,
        message_data.mentions,
    )


@router.put(
    "/messages/{message_id}",
    response_model=MessageResponse,
    response_model_by_alias=True,
    summary="Edit a message",
    responses={
        **_ERROR_RESPONSES,
        400: {"description": "Edit window expired"},
    },
)
async def edit_message(
    message_id: UUID,
    message_data: MessageUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Edit your own message within the edit window."""
    return await ChatService(db).edit_message(current_user, message_id, message_data.text)


@router.delete(
    "/messages/{message_id}",
    response_model=dict,
    summary="Delete a message",
    responses=_ERROR_RESPONSES,
)
async def delete_message(
    message_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Delete a message. Allowed for the sender and workspace owners/admins."""
    await ChatService(db).delete_message(current_user, message_id)
    return {"message": "Message deleted successfully", "messageId": str(message_id)}
