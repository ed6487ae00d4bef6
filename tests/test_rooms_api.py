from services.pin_service import hash_pin


def test_create_room_returns_pins_url_and_token(client, trustee, room):
    assert room["roomName"] == "Baby Lee"
    assert room["category"] == "female"
    assert room["isClose"] is False
    assert room["trustee"] == {"id": trustee["id"], "username": "alice"}
    assert room["voteCount"] == 0
    assert room["roomUrl"].endswith(f"/room/{room['id']}")
    for pin in (room["ownerPin"], room["memberPin"]):
        assert len(pin) == 4 and 1000 <= int(pin) <= 9999
    assert room["hostToken"]


def test_pins_are_stored_as_digests(client, room, db_session):
    from models import Room

    stored = db_session.query(Room).filter(Room.id == room["id"]).one()
    assert stored.owner_pin == hash_pin(room["ownerPin"])
    assert stored.member_pin == hash_pin(room["memberPin"])
    assert room["ownerPin"] not in (stored.owner_pin, stored.member_pin)


def test_create_room_duplicate_name_conflicts(client, trustee, room):
    response = client.post(
        "/api/rooms",
        json={"trusteeId": trustee["id"], "roomName": "Baby Lee", "category": "male"},
    )
    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"]["message"] == "Room name already exists"


def test_create_room_unknown_trustee(client):
    response = client.post(
        "/api/rooms",
        json={"trusteeId": "missing", "roomName": "Orphan", "category": "male"},
    )
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Trustee not found."


def test_create_room_rejects_bad_category(client, trustee):
    response = client.post(
        "/api/rooms",
        json={"trusteeId": trustee["id"], "roomName": "Mixed", "category": "mixed"},
    )
    assert response.status_code == 422
    assert response.json()["error"]["message"] == "Validation failed."


def test_public_view_hides_category(client, room):
    response = client.get(f"/api/rooms/{room['id']}/public")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == room["id"]
    assert "category" not in data
    assert "gender" not in data
    assert "ownerPin" not in data and "memberPin" not in data


def test_host_view_includes_category(client, room, host_headers):
    response = client.get(f"/api/rooms/{room['id']}", headers=host_headers)
    assert response.status_code == 200
    assert response.json()["data"]["category"] == "female"


def test_host_view_requires_token(client, room):
    response = client.get(f"/api/rooms/{room['id']}")
    assert response.status_code == 401

    response = client.get(f"/api/rooms/{room['id']}", headers={"X-Host-Token": "garbage"})
    assert response.status_code == 401


def test_token_for_other_room_is_forbidden(client, trustee, room):
    other = client.post(
        "/api/rooms",
        json={"trusteeId": trustee["id"], "roomName": "Other", "category": "male"},
    ).json()["data"]

    response = client.patch(
        f"/api/rooms/{room['id']}/close-room",
        json={"isClose": True},
        headers={"X-Host-Token": other["hostToken"]},
    )
    assert response.status_code == 403


def test_public_view_unknown_room(client):
    response = client.get("/api/rooms/nope/public")
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Room not found."


def test_verify_pin(client, room):
    response = client.post(f"/api/rooms/{room['id']}/verify-pin", json={"pin": room["ownerPin"]})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["verified"] is True
    assert data["category"] == "female"

    # the issued token works for host actions
    response = client.get(f"/api/rooms/{room['id']}", headers={"X-Host-Token": data["hostToken"]})
    assert response.status_code == 200


def test_verify_pin_wrong_pin(client, room):
    wrong = "1000" if room["ownerPin"] != "1000" else "1001"
    response = client.post(f"/api/rooms/{room['id']}/verify-pin", json={"pin": wrong})
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Invalid pin"


def test_verify_pin_requires_four_digits(client, room):
    for pin in ("123", "12345", "abcd"):
        response = client.post(f"/api/rooms/{room['id']}/verify-pin", json={"pin": pin})
        assert response.status_code == 422


def test_verify_pin_unknown_room(client):
    response = client.post("/api/rooms/nope/verify-pin", json={"pin": "1234"})
    assert response.status_code == 404


def test_close_room_is_idempotent(client, room, host_headers, room_events):
    url = f"/api/rooms/{room['id']}/close-room"
    first = client.patch(url, json={"isClose": True}, headers=host_headers)
    second = client.patch(url, json={"isClose": True}, headers=host_headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["data"]["isClose"] is True
    # only the real change is broadcast
    assert [event["event"] for event in room_events] == ["room-updated"]
    assert "category" not in room_events[0]["data"]["room"]


def test_close_room_defaults_to_closing_and_can_reopen(client, room, host_headers):
    url = f"/api/rooms/{room['id']}/close-room"
    assert client.patch(url, json={}, headers=host_headers).json()["data"]["isClose"] is True
    assert client.patch(url, json={"isClose": False}, headers=host_headers).json()["data"]["isClose"] is False


def test_update_room(client, room, host_headers):
    response = client.patch(
        f"/api/rooms/{room['id']}",
        json={"roomName": "Baby Lee v2", "category": "male"},
        headers=host_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["roomName"] == "Baby Lee v2"
    assert data["category"] == "male"


def test_update_room_keeping_own_name_is_not_a_conflict(client, room, host_headers):
    response = client.patch(
        f"/api/rooms/{room['id']}",
        json={"roomName": "Baby Lee"},
        headers=host_headers,
    )
    assert response.status_code == 200


def test_update_room_name_taken(client, trustee, room, host_headers):
    client.post("/api/rooms", json={"trusteeId": trustee["id"], "roomName": "Taken", "category": "male"})
    response = client.patch(
        f"/api/rooms/{room['id']}",
        json={"roomName": "Taken"},
        headers=host_headers,
    )
    assert response.status_code == 409


def test_delete_room_cascades_votes(client, room, host_headers):
    client.post("/api/votes", json={"roomId": room["id"], "name": "Carol", "category": "male"})

    response = client.delete(f"/api/rooms/{room['id']}", headers=host_headers)
    assert response.status_code == 200

    assert client.get(f"/api/rooms/{room['id']}/public").status_code == 404
    assert client.get("/api/votes", params={"roomId": room["id"]}).json()["data"] == []


def test_list_rooms_paginates_newest_first(client, trustee):
    for index in range(3):
        client.post(
            "/api/rooms",
            json={"trusteeId": trustee["id"], "roomName": f"Room {index}", "category": "male"},
        )

    response = client.get("/api/rooms", params={"page": 1, "limit": 2, "trusteeId": trustee["id"]})
    assert response.status_code == 200
    data = response.json()["data"]
    assert [room["roomName"] for room in data["data"]] == ["Room 2", "Room 1"]
    assert all("category" not in room for room in data["data"])
    assert data["pagination"] == {
        "page": 1,
        "limit": 2,
        "totalItems": 3,
        "totalPages": 2,
        "hasNext": True,
        "hasPrev": False,
    }


def test_tally(client, room):
    for name, category in (("A", "male"), ("B", "female"), ("C", "female")):
        client.post("/api/votes", json={"roomId": room["id"], "name": name, "category": category})

    response = client.get(f"/api/rooms/{room['id']}/tally")
    assert response.json()["data"] == {"male": 1, "female": 2, "total": 3}


def test_reveal_broadcasts(client, room, host_headers, room_events):
    response = client.post(f"/api/rooms/{room['id']}/reveal", headers=host_headers)
    assert response.status_code == 200
    assert response.json()["data"] == {"category": "female", "broadcast": True}
    assert room_events[-1]["event"] == "gender-revealed"
    assert room_events[-1]["data"]["category"] == "female"


def test_scenario_vote_duplicate_close(client, room, host_headers):
    vote = {"roomId": room["id"], "name": "Carol", "category": "male"}

    assert client.post("/api/votes", json=vote).status_code == 201

    duplicate = client.post("/api/votes", json=vote)
    assert duplicate.status_code == 409
    assert "already voted" in duplicate.json()["error"]["message"]

    closed = client.patch(f"/api/rooms/{room['id']}/close-room", json={"isClose": True}, headers=host_headers)
    assert closed.status_code == 200

    late = client.post("/api/votes", json={"roomId": room["id"], "name": "Dave", "category": "female"})
    assert late.status_code == 409
    assert "closed" in late.json()["error"]["message"]
