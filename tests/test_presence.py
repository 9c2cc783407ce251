"""Tests for the connection registry (multi-device presence)."""

import random
from uuid import uuid4

from devcollab.websocket.presence import ConnectionRegistry, PresenceChange

PROFILE = {"id": "u", "name": "Ada", "avatar": ""}


class TestRegister:
    """Tests for ConnectionRegistry.register."""

    def test_first_connection_goes_online(self):
        registry = ConnectionRegistry()
        user_id = uuid4()

        assert registry.register("c1", user_id, PROFILE) is True
        assert registry.is_online(user_id)
        assert registry.connection_count(user_id) == 1

    def test_second_connection_does_not_go_online_again(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register("c1", user_id, PROFILE)

        assert registry.register("c2", user_id, PROFILE) is False
        assert registry.connection_count(user_id) == 2
        assert registry.total_users == 1
        assert registry.total_connections == 2

    def test_profile_is_kept_for_online_user(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register("c1", user_id, PROFILE)

        assert registry.get_profile(user_id) == PROFILE
        assert registry.get_user_for_connection("c1") == user_id


class TestUnregister:
    """Tests for ConnectionRegistry.unregister."""

    def test_last_connection_goes_offline(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register("c1", user_id, PROFILE)

        assert registry.unregister("c1", user_id) is PresenceChange.WENT_OFFLINE
        assert not registry.is_online(user_id)
        assert registry.get_profile(user_id) is None

    def test_other_connections_keep_user_online(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register("c1", user_id, PROFILE)
        registry.register("c2", user_id, PROFILE)

        assert registry.unregister("c1", user_id) is PresenceChange.STILL_ONLINE
        assert registry.is_online(user_id)
        assert registry.unregister("c2", user_id) is PresenceChange.WENT_OFFLINE

    def test_unknown_connection_changes_nothing(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register("c1", user_id, PROFILE)

        assert registry.unregister("nope", user_id) is PresenceChange.NOT_REGISTERED
        assert registry.unregister("c1", uuid4()) is PresenceChange.NOT_REGISTERED
        assert registry.connection_count(user_id) == 1

    def test_duplicate_close_reports_offline_once(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register("c1", user_id, PROFILE)

        assert registry.unregister("c1", user_id) is PresenceChange.WENT_OFFLINE
        assert registry.unregister("c1", user_id) is PresenceChange.NOT_REGISTERED


class TestPresenceQueries:
    """Tests for list_online and touch."""

    def test_list_online_has_one_entry_per_user(self):
        registry = ConnectionRegistry()
        ada, brian = uuid4(), uuid4()
        registry.register("a1", ada, {"id": str(ada), "name": "Ada", "avatar": "a.png"})
        registry.register("a2", ada, {"id": str(ada), "name": "Ada", "avatar": "a.png"})
        registry.register("b1", brian, {"id": str(brian), "name": "Brian", "avatar": ""})

        online = registry.list_online()

        assert sorted(entry["name"] for entry in online) == ["Ada", "Brian"]
        ada_entry = next(entry for entry in online if entry["user_id"] == str(ada))
        assert ada_entry["avatar"] == "a.png"
        assert "last_seen" in ada_entry

    def test_touch_refreshes_last_seen(self):
        registry = ConnectionRegistry()
        user_id = uuid4()
        registry.register("c1", user_id, PROFILE)
        before = registry._presence[user_id].last_seen

        registry.touch(user_id)

        assert registry._presence[user_id].last_seen >= before

    def test_touch_unknown_user_is_noop(self):
        registry = ConnectionRegistry()
        registry.touch(uuid4())
        assert registry.total_users == 0


def test_presence_matches_connection_set_under_random_churn():
    """A user is online exactly while they hold at least one connection."""
    rng = random.Random(1234)
    registry = ConnectionRegistry()
    users = [uuid4() for _ in range(4)]
    live: dict = {user_id: set() for user_id in users}
    online_events = {user_id: 0 for user_id in users}
    offline_events = {user_id: 0 for user_id in users}

    for step in range(500):
        user_id = rng.choice(users)
        if live[user_id] and rng.random() < 0.5:
            connection_id = rng.choice(sorted(live[user_id]))
            live[user_id].discard(connection_id)
            change = registry.unregister(connection_id, user_id)
            if change is PresenceChange.WENT_OFFLINE:
                offline_events[user_id] += 1
            assert change is not PresenceChange.NOT_REGISTERED
        else:
            connection_id = f"{user_id}-{step}"
            live[user_id].add(connection_id)
            if registry.register(connection_id, user_id, PROFILE):
                online_events[user_id] += 1

        for uid in users:
            assert registry.is_online(uid) == bool(live[uid])
            assert registry.connection_count(uid) == len(live[uid])

    for uid in users:
        # online/offline transitions alternate, starting with online
        assert online_events[uid] - offline_events[uid] == (1 if live[uid] else 0)
