"""Unit tests for notifications: the service and the REST API.

Tests cover:
- Durable + realtime delivery (NotificationService)
- List notifications (with filtering, pagination)
- Counts
- Mark one / all as read (with read-state sync to other devices)
- Delete notifications
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from devcollab.models import Notification, User
from devcollab.schemas.notification import NotificationCreate, NotificationType
from devcollab.services.notification_service import NotificationService
from devcollab.websocket.manager import manager

from conftest import open_connection, sent_frames


async def add_notification(
    db: AsyncSession,
    user: User,
    text: str = "Brian mentioned you in Apollo chat",
    read: bool = False,
    age_minutes: int = 0,
) -> Notification:
    notification = Notification(
        id=uuid4(),
        user_id=user.id,
        type=NotificationType.MENTION.value,
        text=text,
        read=read,
        created_at=datetime.utcnow() - timedelta(minutes=age_minutes),
    )
    db.add(notification)
    await db.commit()
    return notification


@pytest_asyncio.fixture
async def test_notification(db_session: AsyncSession, test_user: User) -> Notification:
    return await add_notification(db_session, test_user)


@pytest.mark.asyncio
class TestNotificationService:
    """Tests for NotificationService."""

    async def test_create_stores_and_pushes(self, db_session: AsyncSession, test_user: User):
        device = await open_connection(manager, test_user)

        response = await NotificationService.create_notification(
            db_session,
            NotificationCreate(
                user_id=test_user.id,
                type=NotificationType.WORKSPACE_INVITE,
                text='You have been invited to join "Apollo Team" workspace',
            ),
        )

        stored = await db_session.get(Notification, response.id)
        assert stored is not None
        assert stored.read is False

        pushed = sent_frames(device.websocket, "notification")
        assert len(pushed) == 1
        assert pushed[0]["data"]["id"] == str(response.id)
        assert pushed[0]["data"]["type"] == "workspace_invite"

    async def test_create_without_realtime(self, db_session: AsyncSession, test_user: User):
        device = await open_connection(manager, test_user)

        await NotificationService.create_notification(
            db_session,
            NotificationCreate(user_id=test_user.id, type=NotificationType.COMMENT, text="New comment"),
            deliver_realtime=False,
        )

        assert sent_frames(device.websocket) == []

    async def test_failed_write_still_pushes(self, db_session: AsyncSession, test_user: User, monkeypatch):
        device = await open_connection(manager, test_user)

        async def failing_commit():
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "commit", failing_commit)

        response = await NotificationService.create_notification(
            db_session,
            NotificationCreate(user_id=test_user.id, type=NotificationType.MENTION, text="ping"),
        )

        assert response.id is None
        assert sent_frames(device.websocket, "notification")[0]["data"]["text"] == "ping"

    async def test_self_mention_is_skipped(self, db_session, test_user, test_project):
        response = await NotificationService.notify_mention(
            db_session, test_user.id, test_user, test_project
        )

        assert response is None
        assert (await db_session.execute(select(Notification))).scalars().all() == []

    async def test_task_assignment(self, db_session, test_user, test_user_2, test_task):
        response = await NotificationService.notify_task_assigned(
            db_session, test_task, test_user_2.id, test_user
        )

        assert response.type is NotificationType.TASK_ASSIGNED
        assert response.data.task_id == test_task.id
        assert "Write launch checklist" in response.text
        assert await NotificationService.notify_task_assigned(
            db_session, test_task, test_user.id, test_user
        ) is None

    async def test_workspace_invite_and_project_added(
        self, db_session, test_user, outsider, test_workspace, test_project
    ):
        invite = await NotificationService.notify_workspace_invite(
            db_session, test_workspace, outsider.id, test_user
        )
        added = await NotificationService.notify_project_added(
            db_session, test_project, outsider.id, test_user
        )

        assert invite.data.workspace_id == test_workspace.id
        assert added.data.project_id == test_project.id
        assert added.text == 'You have been added to project "Apollo"'


@pytest.mark.asyncio
class TestListNotifications:
    """Tests for GET /api/notifications endpoint."""

    async def test_list_notifications_empty(self, client: AsyncClient, auth_headers: dict):
        response = await client.get("/api/notifications", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["data"] == []
        assert data["total"] == 0
        assert data["total_pages"] == 0

    async def test_list_notifications_newest_first(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        for i in range(5):
            await add_notification(db_session, test_user, text=f"Notification {i}", age_minutes=10 - i)

        response = await client.get("/api/notifications?page=1&limit=2", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [n["text"] for n in data["data"]] == ["Notification 4", "Notification 3"]
        assert data["total"] == 5
        assert data["total_pages"] == 3
        assert data["unread_count"] == 5

    async def test_list_unread_only(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        await add_notification(db_session, test_user, text="seen", read=True)
        await add_notification(db_session, test_user, text="new")

        response = await client.get("/api/notifications?unread_only=true", headers=auth_headers)

        assert [n["text"] for n in response.json()["data"]] == ["new"]

    async def test_only_own_notifications(
        self, client: AsyncClient, auth_headers_2: dict, test_notification: Notification
    ):
        response = await client.get("/api/notifications", headers=auth_headers_2)

        assert response.json()["total"] == 0

    async def test_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/notifications")
        assert response.status_code == 401


@pytest.mark.asyncio
class TestNotificationCounts:
    """Tests for the count endpoints."""

    async def test_counts(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        await add_notification(db_session, test_user, read=True)
        await add_notification(db_session, test_user)
        await add_notification(db_session, test_user)

        counts = await client.get("/api/notifications/count", headers=auth_headers)
        unread = await client.get("/api/notifications/unread-count", headers=auth_headers)

        assert counts.json() == {"total": 3, "unread": 2}
        assert unread.json() == {"count": 2}


@pytest.mark.asyncio
class TestMarkRead:
    """Tests for PUT /api/notifications/{id}/read and /read-all."""

    async def test_mark_notification_read_syncs_devices(
        self,
        client: AsyncClient,
        auth_headers: dict,
        test_user: User,
        test_notification: Notification,
    ):
        other_device = await open_connection(manager, test_user)

        response = await client.put(
            f"/api/notifications/{test_notification.id}/read", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["read"] is True
        assert sent_frames(other_device.websocket, "notification-read") == [
            {
                "type": "notification-read",
                "data": {"notificationIds": [str(test_notification.id)], "all": False},
            }
        ]

    async def test_mark_other_users_notification(
        self, client: AsyncClient, auth_headers_2: dict, test_notification: Notification
    ):
        response = await client.put(
            f"/api/notifications/{test_notification.id}/read", headers=auth_headers_2
        )

        assert response.status_code == 404

    async def test_mark_missing_notification(self, client: AsyncClient, auth_headers: dict):
        response = await client.put(f"/api/notifications/{uuid4()}/read", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Notification not found"

    async def test_mark_all_read(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        for _ in range(3):
            await add_notification(db_session, test_user)
        device = await open_connection(manager, test_user)

        response = await client.put("/api/notifications/read-all", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["updated_count"] == 3
        assert sent_frames(device.websocket, "notification-read")[0]["data"] == {
            "notificationIds": None,
            "all": True,
        }

        unread = await client.get("/api/notifications/unread-count", headers=auth_headers)
        assert unread.json() == {"count": 0}


@pytest.mark.asyncio
class TestDeleteNotifications:
    """Tests for DELETE endpoints."""

    async def test_delete_notification(
        self,
        client: AsyncClient,
        auth_headers: dict,
        db_session: AsyncSession,
        test_notification: Notification,
    ):
        notification_id = test_notification.id

        response = await client.delete(f"/api/notifications/{notification_id}", headers=auth_headers)

        assert response.status_code == 204
        result = await db_session.execute(select(Notification).where(Notification.id == notification_id))
        assert result.scalar_one_or_none() is None

    async def test_delete_other_users_notification(
        self, client: AsyncClient, auth_headers_2: dict, test_notification: Notification
    ):
        response = await client.delete(
            f"/api/notifications/{test_notification.id}", headers=auth_headers_2
        )

        assert response.status_code == 404

    async def test_clear_read(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        await add_notification(db_session, test_user, read=True)
        await add_notification(db_session, test_user, read=True)
        keep = await add_notification(db_session, test_user)

        response = await client.delete("/api/notifications/clear-read", headers=auth_headers)

        assert response.json()["deleted_count"] == 2
        remaining = (await db_session.execute(select(Notification.id))).scalars().all()
        assert remaining == [keep.id]
