import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import NotFoundException
from app.models.notification import Notification
from app.services import notification_service
from app.services.notification_broker import NotificationEvent
from app.services.notification_channel import NotificationChannel

pytestmark = pytest.mark.anyio


async def _send(db, broker, user_id, title="Proposal Approved", **kwargs):
    event = notification_service.send_notification(db, user_id, title, "Body text", **kwargs)
    await broker.publish(event)
    return event


async def test_start_loads_existing_state(db, broker, make_user):
    user_id = str(make_user().id)
    notification_service.send_notification(db, user_id, "Old one", "Body")

    async with NotificationChannel(user_id, broker, db) as channel:
        assert channel.unread_count == 1
        assert [n["title"] for n in channel.recent] == ["Old one"]
        assert broker.subscriber_count(user_id) == 1
    assert broker.subscriber_count(user_id) == 0


async def test_inserts_minus_reads_is_the_unread_count(db, broker, make_user):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        events = [await _send(db, broker, user_id, title=f"n{i}") for i in range(5)]
        await channel.drain()
        assert channel.unread_count == 5

        for event in events[:2]:
            await channel.mark_as_read(event.new["id"])
        assert channel.unread_count == 3

        # The channel's own UPDATE echoes must not be counted again
        assert await channel.drain() == 2
        assert channel.unread_count == 3
        assert notification_service.count_unread(db, user_id) == 3


async def test_mark_all_as_read_zeroes_counter_and_rows(db, broker, make_user):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        await _send(db, broker, user_id, title="first")
        await _send(db, broker, user_id, title="second")
        await channel.drain()
        assert channel.unread_count == 2

        await channel.mark_all_as_read()
        await channel.drain()

        assert channel.unread_count == 0
        assert all(n["read"] for n in channel.recent)
    rows = db.query(Notification).all()
    assert len(rows) == 2
    assert all(n.read for n in rows)


async def test_update_without_read_transition_is_ignored(broker, db):
    channel = NotificationChannel("u-1", broker, db)
    channel.unread_count = 2

    row = {"id": "n-1", "read": True}
    channel.apply(NotificationEvent("UPDATE", "u-1", row, {"id": "n-1", "read": True}))
    channel.apply(NotificationEvent("UPDATE", "u-1", {"id": "n-1", "read": False}, {"id": "n-1", "read": False}))
    assert channel.unread_count == 2

    channel.apply(NotificationEvent("UPDATE", "u-1", row, {"id": "n-1", "read": False}))
    assert channel.unread_count == 1


async def test_events_for_other_users_are_ignored(broker, db):
    channel = NotificationChannel("u-1", broker, db)
    changed = channel.apply(NotificationEvent("INSERT", "u-2", {"id": "n-9", "read": False}))
    assert changed is False
    assert channel.unread_count == 0
    assert channel.recent == []


async def test_read_insert_does_not_count(broker, db):
    channel = NotificationChannel("u-1", broker, db)
    channel.apply(NotificationEvent("INSERT", "u-1", {"id": "n-1", "read": True}))
    assert channel.unread_count == 0
    assert len(channel.recent) == 1


async def test_counter_never_goes_negative(broker, db):
    channel = NotificationChannel("u-1", broker, db)
    for i in range(3):
        channel.apply(NotificationEvent("UPDATE", "u-1", {"id": f"n-{i}", "read": True}, {"id": f"n-{i}", "read": False}))
    assert channel.unread_count == 0


async def test_recent_list_is_bounded_newest_first(broker, db):
    channel = NotificationChannel("u-1", broker, db, recent_limit=3)
    for i in range(5):
        channel.apply(NotificationEvent("INSERT", "u-1", {"id": f"n-{i}", "read": False}))
    assert [n["id"] for n in channel.recent] == ["n-4", "n-3", "n-2"]
    assert channel.unread_count == 5


async def test_unknown_notification_restores_counter(db, broker, make_user):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        await _send(db, broker, user_id)
        await channel.drain()

        with pytest.raises(NotFoundException):
            await channel.mark_as_read("00000000-0000-0000-0000-000000000000")
        assert channel.unread_count == 1


async def test_marking_read_twice_decrements_once(db, broker, make_user):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        event = await _send(db, broker, user_id)
        await _send(db, broker, user_id, title="another")
        await channel.drain()

        await channel.mark_as_read(event.new["id"])
        await channel.mark_as_read(event.new["id"])
        await channel.drain()
        assert channel.unread_count == 1


async def test_other_readers_updates_are_counted(db, broker, make_user):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        event = await _send(db, broker, user_id)
        await channel.drain()

        # Another connection for the same user marks it read
        update = notification_service.mark_as_read(db, user_id, event.new["id"])
        await broker.publish(update)
        await channel.drain()
        assert channel.unread_count == 0


async def test_events_stream_ends_when_stopped(db, broker, make_user):
    user_id = str(make_user().id)
    channel = await NotificationChannel(user_id, broker, db).start()
    await _send(db, broker, user_id)
    await channel.stop()

    received = [event async for event in channel.events()]
    assert received == []
    assert broker.subscriber_count(user_id) == 0


async def test_mark_all_before_queued_inserts_are_applied(db, broker, make_user):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        await _send(db, broker, user_id, title="first")
        await _send(db, broker, user_id, title="second")

        await channel.mark_all_as_read()
        await channel.drain()

        assert channel.unread_count == 0
        assert notification_service.count_unread(db, user_id) == 0
        assert [n["read"] for n in channel.recent] == [True, True]


async def test_mark_one_before_its_insert_is_applied(db, broker, make_user):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        event = await _send(db, broker, user_id)

        await channel.mark_as_read(event.new["id"])
        await channel.drain()

        assert channel.unread_count == 0
        assert channel.recent[0]["read"] is True


async def test_early_mark_keeps_other_unread_counted(db, broker, make_user):
    user_id = str(make_user().id)
    notification_service.send_notification(db, user_id, "Loaded at start", "Body")
    async with NotificationChannel(user_id, broker, db) as channel:
        assert channel.unread_count == 1
        event = await _send(db, broker, user_id, title="queued")

        await channel.mark_as_read(event.new["id"])
        await channel.drain()

        assert channel.unread_count == 1
        assert notification_service.count_unread(db, user_id) == 1


async def test_failed_mark_all_restores_local_state(db, broker, make_user, monkeypatch):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        await _send(db, broker, user_id, title="first")
        await _send(db, broker, user_id, title="second")
        await channel.drain()

        def broken(*args, **kwargs):
            raise OperationalError("UPDATE notifications", {}, Exception("database is locked"))

        monkeypatch.setattr(notification_service, "mark_all_as_read", broken)

        with pytest.raises(OperationalError):
            await channel.mark_all_as_read()
        assert channel.unread_count == 2
        assert [n["read"] for n in channel.recent] == [False, False]


async def test_failed_mark_one_restores_read_flag(db, broker, make_user, monkeypatch):
    user_id = str(make_user().id)
    async with NotificationChannel(user_id, broker, db) as channel:
        event = await _send(db, broker, user_id)
        await channel.drain()

        def broken(*args, **kwargs):
            raise OperationalError("UPDATE notifications", {}, Exception("database is locked"))

        monkeypatch.setattr(notification_service, "mark_as_read", broken)

        with pytest.raises(OperationalError):
            await channel.mark_as_read(event.new["id"])
        assert channel.unread_count == 1
        assert channel.recent[0]["read"] is False

        # A later attempt is not mistaken for a duplicate
        monkeypatch.undo()
        await channel.mark_as_read(event.new["id"])
        assert channel.unread_count == 0
