import pytest

from realtime.broadcaster import Broadcaster
from realtime.client import RoomSyncChannel, VoteTally
from realtime.events import new_vote_payload, vote_deleted_payload
from realtime.hub import ChannelHub
from realtime.transports import ConnectionState, HubTransport


def vote(vote_id, category="male", room_id="r1", created_at="2026-01-01T00:00:00"):
    return {"id": vote_id, "roomId": room_id, "name": vote_id, "category": category, "createdAt": created_at}


@pytest.fixture()
def fabric():
    hub = ChannelHub()
    return hub, Broadcaster(hub)


@pytest.fixture()
def transports(fabric):
    hub, _ = fabric
    created = []

    def factory():
        transport = HubTransport(hub)
        created.append(transport)
        return transport

    return factory, created


def test_tally_counts_and_order():
    tally = VoteTally([vote("a", "male", created_at="1"), vote("b", "female", created_at="3"), vote("c", "female", created_at="2")])
    assert tally.counts() == {"male": 1, "female": 2, "total": 3}
    assert [v["id"] for v in tally.votes()] == ["b", "c", "a"]


def test_tally_upsert_is_idempotent():
    tally = VoteTally()
    assert tally.upsert(vote("a")) is True
    assert tally.upsert(vote("a")) is False
    assert len(tally) == 1
    assert tally.remove("missing") is False


def test_connect_subscribes_to_room_channel(fabric, transports):
    hub, broadcaster = fabric
    factory, _ = transports
    states = []
    channel = RoomSyncChannel(factory, on_state_change=states.append)

    channel.watch("r1")

    assert channel.is_connected
    assert states[:2] == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert channel.channel.name == "room-r1"
    assert hub.subscriber_count("room-r1") == 1


def test_new_vote_duplicate_delivery_counts_once(fabric, transports):
    _, broadcaster = fabric
    factory, _ = transports
    seen = []
    channel = RoomSyncChannel(factory, on_new_vote=seen.append)
    channel.watch("r1")

    payload = new_vote_payload(vote("v1", "female"))
    broadcaster.publish("r1", "new-vote", payload)
    broadcaster.publish("r1", "new-vote", payload)

    assert channel.tally.counts() == {"male": 0, "female": 1, "total": 1}
    assert [v["id"] for v in seen] == ["v1"]


def test_vote_deleted_for_absent_id_is_noop(fabric, transports):
    _, broadcaster = fabric
    factory, _ = transports
    deleted = []
    channel = RoomSyncChannel(factory, on_vote_deleted=deleted.append)
    channel.watch("r1", votes=[vote("v1")])

    broadcaster.publish("r1", "vote-deleted", vote_deleted_payload("ghost", None))
    assert len(channel.tally) == 1
    assert deleted == []

    broadcaster.publish("r1", "vote-deleted", vote_deleted_payload("v1", vote("v1")))
    assert len(channel.tally) == 0
    assert deleted == ["v1"]


def test_vote_for_other_room_is_ignored(fabric, transports):
    _, broadcaster = fabric
    factory, _ = transports
    channel = RoomSyncChannel(factory)
    channel.watch("r1")

    broadcaster.publish("r1", "new-vote", new_vote_payload(vote("v9", room_id="r2")))

    assert len(channel.tally) == 0


def test_gender_revealed(fabric, transports):
    _, broadcaster = fabric
    factory, _ = transports
    revealed = []
    channel = RoomSyncChannel(factory, on_gender_revealed=revealed.append)
    channel.watch("r1")

    broadcaster.publish("r1", "gender-revealed", {"category": "female", "timestamp": "t"})

    assert channel.revealed_category == "female"
    assert revealed == ["female"]


def test_room_change_cancels_old_binding(fabric, transports):
    hub, broadcaster = fabric
    factory, created = transports
    channel = RoomSyncChannel(factory)
    channel.watch("r1", votes=[vote("v1")])
    first_transport = created[0]

    channel.watch("r2")

    assert first_transport.state == ConnectionState.DISCONNECTED
    assert hub.subscriber_count("room-r1") == 0
    assert hub.subscriber_count("room-r2") == 1
    assert len(channel.tally) == 0

    broadcaster.publish("r1", "new-vote", new_vote_payload(vote("late", room_id="r1")))
    assert "late" not in channel.tally


def test_stale_handler_is_ignored_after_room_change(fabric, transports):
    factory, _ = transports
    channel = RoomSyncChannel(factory)
    channel.watch("r1")
    old_channel = channel.channel
    assert old_channel.handler_count("new-vote") == 1
    handler = old_channel._handlers["new-vote"][0]

    channel.watch("r2")
    # an event already in flight for the old room
    handler(new_vote_payload(vote("late", room_id="r1")))

    assert len(channel.tally) == 0


def test_watching_same_room_again_is_noop(fabric, transports):
    factory, created = transports
    channel = RoomSyncChannel(factory)
    channel.watch("r1")
    channel.watch("r1")
    assert len(created) == 1


def test_reconnect_does_not_leak_handlers(fabric, transports):
    hub, broadcaster = fabric
    factory, created = transports
    seen = []
    channel = RoomSyncChannel(factory, on_new_vote=seen.append)
    channel.watch("r1")
    transport = created[0]

    for _ in range(3):
        transport.drop()
        assert channel.state == ConnectionState.DISCONNECTED
        transport.reconnect()

    assert channel.is_connected
    assert hub.subscriber_count("room-r1") == 1
    assert channel.channel.handler_count("new-vote") == 1

    broadcaster.publish("r1", "new-vote", new_vote_payload(vote("v1")))
    assert len(seen) == 1


def test_close_releases_everything(fabric, transports):
    hub, _ = fabric
    factory, created = transports
    channel = RoomSyncChannel(factory)
    channel.watch("r1")

    channel.close()

    assert channel.state == ConnectionState.DISCONNECTED
    assert channel.channel is None
    assert hub.channels() == []
    assert created[0].state == ConnectionState.DISCONNECTED


def test_without_transport_channel_is_disabled():
    channel = RoomSyncChannel()
    channel.watch("r1", votes=[vote("v1")])
    assert channel.state == ConnectionState.DISABLED
    assert len(channel.tally) == 1


def test_transport_failure_sets_error_state():
    def factory():
        raise OSError("no network")

    channel = RoomSyncChannel(factory)
    channel.watch("r1")
    assert channel.state == ConnectionState.ERROR
    assert channel.error


def test_reconcile_replaces_tally(fabric, transports):
    factory, _ = transports
    channel = RoomSyncChannel(factory)
    channel.watch("r1", votes=[vote("v1")])

    channel.reconcile([vote("v2"), vote("v3", "female")])

    assert "v1" not in channel.tally
    assert channel.tally.counts() == {"male": 1, "female": 1, "total": 2}


def test_end_to_end_with_http_api(client, room, hub):
    channel = RoomSyncChannel(lambda: HubTransport(hub))
    channel.watch(room["id"])

    response = client.post("/api/votes", json={"roomId": room["id"], "name": "Carol", "category": "male"})
    vote_id = response.json()["data"]["id"]

    assert vote_id in channel.tally
    assert channel.tally.counts()["male"] == 1
    channel.close()
