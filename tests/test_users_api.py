def test_create_and_get_user(client):
    response = client.post("/api/users", json={"username": "  bob  "})
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "User created successfully"
    user = body["data"]
    assert user["username"] == "bob"
    assert {"id", "createdAt", "updatedAt"} <= set(user)

    fetched = client.get(f"/api/users/{user['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["username"] == "bob"


def test_duplicate_username(client, trustee):
    response = client.post("/api/users", json={"username": "alice"})
    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": {"message": "Username already exists", "details": None},
    }


def test_username_validation(client):
    assert client.post("/api/users", json={"username": ""}).status_code == 422
    assert client.post("/api/users", json={"username": "x" * 51}).status_code == 422


def test_unknown_user(client):
    response = client.get("/api/users/missing")
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "User not found."


def test_rename_user(client, trustee):
    response = client.patch(f"/api/users/{trustee['id']}", json={"username": "alicia"})
    assert response.status_code == 200
    assert response.json()["data"]["username"] == "alicia"

    # same name again is not a conflict
    assert client.patch(f"/api/users/{trustee['id']}", json={"username": "alicia"}).status_code == 200


def test_rename_to_taken_username(client, trustee):
    client.post("/api/users", json={"username": "bob"})
    response = client.patch(f"/api/users/{trustee['id']}", json={"username": "bob"})
    assert response.status_code == 409


def test_users_cannot_be_deleted(client, trustee):
    response = client.delete(f"/api/users/{trustee['id']}")
    assert response.status_code == 405
    assert response.json()["success"] is False


def test_list_users_paginates(client):
    for name in ("u1", "u2", "u3"):
        client.post("/api/users", json={"username": name})

    response = client.get("/api/users", params={"page": 2, "limit": 2})
    data = response.json()["data"]
    assert [user["username"] for user in data["data"]] == ["u1"]
    assert data["pagination"]["totalItems"] == 3
    assert data["pagination"]["hasPrev"] is True
    assert data["pagination"]["hasNext"] is False


def test_list_users_clamps_limit(client):
    response = client.get("/api/users", params={"page": 0, "limit": 1000})
    pagination = response.json()["data"]["pagination"]
    assert pagination["page"] == 1
    assert pagination["limit"] == 100
