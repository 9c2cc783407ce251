"""Unit tests for the project chat REST API."""

from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from devcollab.models import Message, Project, User
from devcollab.websocket.manager import manager
from devcollab.websocket.rooms import get_chat_room

from conftest import open_connection, sent_frames, utc_minutes_ago


@pytest.mark.asyncio
class TestSendMessage:
    """Tests for POST /api/chat/{project_id}/messages."""

    async def test_send_message_reaches_socket_listeners(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_user: User,
        test_user_2: User,
        test_project: Project,
    ):
        listener = await open_connection(manager, test_user_2)
        manager.join(listener, get_chat_room(test_project.id))

        response = await client.post(
            f"/api/chat/{test_project.id}/messages",
            json={"text": "Standup in 5", "mentions": [str(test_user_2.id)]},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["text"] == "Standup in 5"
        assert data["projectId"] == str(test_project.id)
        assert data["sender"]["name"] == "Ada"
        assert [m["name"] for m in data["mentions"]] == ["Brian"]

        broadcast = sent_frames(listener.websocket, "new-message")
        assert len(broadcast) == 1
        assert broadcast[0]["data"]["id"] == data["id"]
        assert len(sent_frames(listener.websocket, "notification")) == 1

    async def test_send_as_outsider(
        self, client: AsyncClient, outsider_headers: dict, test_project: Project
    ):
        response = await client.post(
            f"/api/chat/{test_project.id}/messages",
            json={"text": "let me in"},
            headers=outsider_headers,
        )

        assert response.status_code == 403
        assert response.json()["error"] == "not_authorized"

    async def test_send_to_missing_project(self, client: AsyncClient, auth_headers: dict):
        response = await client.post(
            f"/api/chat/{uuid4()}/messages", json={"text": "anyone?"}, headers=auth_headers
        )

        assert response.status_code == 404
        assert response.json()["error"] == "project_not_found"

    async def test_send_blank_text(
        self, client: AsyncClient, auth_headers: dict, test_project: Project
    ):
        response = await client.post(
            f"/api/chat/{test_project.id}/messages", json={"text": "  "}, headers=auth_headers
        )

        assert response.status_code == 422

    async def test_send_requires_auth(self, client: AsyncClient, test_project: Project):
        response = await client.post(f"/api/chat/{test_project.id}/messages", json={"text": "hi"})
        assert response.status_code == 401


@pytest.mark.asyncio
class TestHistory:
    """Tests for GET /api/chat/{project_id}/messages."""

    async def test_history_pages(
        self,
        client: AsyncClient,
        auth_headers: dict,
        db_session: AsyncSession,
        test_user: User,
        test_project: Project,
    ):
        for i in range(3):
            db_session.add(
                Message(
                    project_id=test_project.id,
                    sender_id=test_user.id,
                    text=f"line {i}",
                    mentions=[],
                    created_at=utc_minutes_ago(30 - i),
                )
            )
        await db_session.commit()

        response = await client.get(
            f"/api/chat/{test_project.id}/messages?page=1&limit=2", headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert [m["text"] for m in data["data"]] == ["line 1", "line 2"]
        assert data["total"] == 3
        assert data["totalPages"] == 2
        assert data["currentPage"] == 1

    async def test_history_as_outsider(
        self, client: AsyncClient, outsider_headers: dict, test_project: Project
    ):
        response = await client.get(f"/api/chat/{test_project.id}/messages", headers=outsider_headers)

        assert response.status_code == 403


@pytest.mark.asyncio
class TestEditAndDelete:
    """Tests for PUT/DELETE /api/chat/messages/{message_id}."""

    async def _post(self, client, headers, project_id, text="first draft") -> str:
        response = await client.post(
            f"/api/chat/{project_id}/messages", json={"text": text}, headers=headers
        )
        assert response.status_code == 201
        return response.json()["id"]

    async def test_edit_message(
        self, client: AsyncClient, auth_headers: dict, test_project: Project
    ):
        message_id = await self._post(client, auth_headers, test_project.id)

        response = await client.put(
            f"/api/chat/messages/{message_id}", json={"text": "second draft"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["text"] == "second draft"
        assert response.json()["edited"] is True

    async def test_edit_after_window(
        self,
        client: AsyncClient,
        auth_headers: dict,
        db_session: AsyncSession,
        test_user_2: User,
        test_project: Project,
    ):
        listener = await open_connection(manager, test_user_2)
        manager.join(listener, get_chat_room(test_project.id))
        message_id = await self._post(client, auth_headers, test_project.id)
        message = await db_session.get(Message, UUID(message_id))
        message.created_at = utc_minutes_ago(60)
        await db_session.commit()

        response = await client.put(
            f"/api/chat/messages/{message_id}", json={"text": "late"}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "edit_window_expired"
        assert sent_frames(listener.websocket, "message-edited") == []
        await db_session.refresh(message)
        assert message.text == "first draft"
        assert message.edited is False

    async def test_edit_someone_elses_message(
        self, client: AsyncClient, auth_headers: dict, auth_headers_2: dict, test_project: Project
    ):
        message_id = await self._post(client, auth_headers, test_project.id)

        response = await client.put(
            f"/api/chat/messages/{message_id}", json={"text": "mine now"}, headers=auth_headers_2
        )

        assert response.status_code == 403

    async def test_delete_message_twice(
        self, client: AsyncClient, auth_headers: dict, test_project: Project
    ):
        message_id = await self._post(client, auth_headers, test_project.id)

        first = await client.delete(f"/api/chat/messages/{message_id}", headers=auth_headers)
        second = await client.delete(f"/api/chat/messages/{message_id}", headers=auth_headers)

        assert first.status_code == 200
        assert first.json() == {"message": "Message deleted successfully", "messageId": message_id}
        assert second.status_code == 404
        assert second.json()["error"] == "message_not_found"

    async def test_owner_moderates_member_message(
        self, client: AsyncClient, auth_headers: dict, auth_headers_2: dict, test_project: Project
    ):
        message_id = await self._post(client, auth_headers_2, test_project.id, "off topic")

        response = await client.delete(f"/api/chat/messages/{message_id}", headers=auth_headers)

        assert response.status_code == 200
