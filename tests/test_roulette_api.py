def cast(client, room, name, category):
    response = client.post("/api/votes", json={"roomId": room["id"], "name": name, "category": category})
    assert response.status_code == 201
    return response.json()["data"]


def test_participants_are_correct_guesses(client, room, host_headers):
    cast(client, room, "A", "female")
    cast(client, room, "Wrong", "male")
    cast(client, room, "B", "female")

    response = client.get(f"/api/rooms/{room['id']}/roulette", headers=host_headers)
    assert response.status_code == 200
    state = response.json()["data"]
    assert state["participants"] == ["A", "B"]
    assert state["phase"] == "idle"
    assert state["winner"] is None
    assert state["roundsPlayed"] == 0


def test_spin_until_winner_is_persisted(client, room, host_headers):
    for name in ("A", "B", "C"):
        cast(client, room, name, "female")
    url = f"/api/rooms/{room['id']}/roulette/spin"

    first = client.post(url, headers=host_headers).json()["data"]
    assert first["roundNumber"] == 1
    assert len(first["remaining"]) == 2
    assert first["winner"] is None

    second = client.post(url, headers=host_headers).json()["data"]
    assert second["roundNumber"] == 2
    assert second["remaining"] == [second["winner"]]

    votes = client.get("/api/votes", params={"roomId": room["id"]}).json()["data"]
    outcomes = {vote["name"]: vote["outcome"] for vote in votes}
    assert outcomes[second["winner"]] == "winner"
    assert outcomes[first["eliminated"]] == "eliminated"
    assert outcomes[second["eliminated"]] == "eliminated"

    state = client.get(f"/api/rooms/{room['id']}/roulette", headers=host_headers).json()["data"]
    assert state["phase"] == "done"
    assert state["winner"] == second["winner"]

    # finished roulette must be reset before spinning again
    assert client.post(url, headers=host_headers).status_code == 409


def test_spin_without_correct_guesses(client, room, host_headers):
    cast(client, room, "Wrong", "male")
    response = client.post(f"/api/rooms/{room['id']}/roulette/spin", headers=host_headers)
    assert response.status_code == 409
    assert response.json()["error"]["message"] == "No participants voted for the revealed category"


def test_reset_puts_everyone_back(client, room, host_headers):
    for name in ("A", "B"):
        cast(client, room, name, "female")
    client.post(f"/api/rooms/{room['id']}/roulette/spin", headers=host_headers)

    response = client.post(f"/api/rooms/{room['id']}/roulette/reset", headers=host_headers)
    assert response.status_code == 200
    state = response.json()["data"]
    assert state["remaining"] == ["A", "B"]
    assert state["phase"] == "idle"

    votes = client.get("/api/votes", params={"roomId": room["id"]}).json()["data"]
    assert {vote["outcome"] for vote in votes} == {"active"}


def test_declare_winner(client, room, host_headers):
    a = cast(client, room, "A", "female")
    b = cast(client, room, "B", "female")
    url = f"/api/rooms/{room['id']}/roulette/winner"

    assert client.post(url, json={"voteId": a["id"]}, headers=host_headers).status_code == 200
    response = client.post(url, json={"voteId": b["id"]}, headers=host_headers)
    assert response.status_code == 200
    assert response.json()["data"]["outcome"] == "winner"

    outcomes = {
        vote["name"]: vote["outcome"]
        for vote in client.get("/api/votes", params={"roomId": room["id"]}).json()["data"]
    }
    assert outcomes == {"A": "active", "B": "winner"}


def test_declare_winner_rejects_wrong_guess(client, room, host_headers):
    wrong = cast(client, room, "Wrong", "male")
    response = client.post(
        f"/api/rooms/{room['id']}/roulette/winner",
        json={"voteId": wrong["id"]},
        headers=host_headers,
    )
    assert response.status_code == 409


def test_roulette_requires_host(client, room):
    assert client.get(f"/api/rooms/{room['id']}/roulette").status_code == 401
    assert client.post(f"/api/rooms/{room['id']}/roulette/spin").status_code == 401


def test_single_participant_is_written_back_as_winner(client, room, host_headers):
    cast(client, room, "Solo", "female")
    cast(client, room, "Wrong", "male")
    url = f"/api/rooms/{room['id']}/roulette/spin"

    state = client.get(f"/api/rooms/{room['id']}/roulette", headers=host_headers).json()["data"]
    assert state["phase"] == "done"
    assert state["winner"] == "Solo"

    response = client.post(url, headers=host_headers)
    assert response.status_code == 200
    result = response.json()["data"]
    assert result["winner"] == "Solo"
    assert result["eliminated"] is None
    assert result["remaining"] == ["Solo"]

    votes = client.get("/api/votes", params={"roomId": room["id"], "name": "Solo"}).json()["data"]
    assert votes[0]["outcome"] == "winner"

    # once the winner is recorded the wheel needs a reset
    assert client.post(url, headers=host_headers).status_code == 409
