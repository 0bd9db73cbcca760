from conftest import PASSWORD, register


async def test_register_login_me_logout(client, make_client):
    await register(client, "alice", name="Alice Kim")

    me = await client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["id"] == "alice"
    assert me.json()["role"] == "student"

    other = await make_client()
    login = await other.post("/api/auth/login", json={"userId": "alice", "password": PASSWORD})
    assert login.status_code == 200
    assert login.json()["data"]["name"] == "Alice Kim"
    assert (await other.get("/api/auth/me")).status_code == 200

    await other.post("/api/auth/logout")
    assert (await other.get("/api/auth/me")).status_code == 401


async def test_duplicate_registration(client, make_client):
    await register(client, "alice")
    other = await make_client()

    response = await other.post("/api/auth/register", json={"userId": "alice", "password": "x"})

    assert response.status_code == 409


async def test_unknown_role_is_rejected(client):
    response = await client.post("/api/auth/register", json={"userId": "eve", "password": "x", "role": "admin"})

    assert response.status_code == 400


async def test_account_locks_after_repeated_failures(client, make_client):
    await register(client, "alice")
    other = await make_client()

    for _ in range(5):
        failed = await other.post("/api/auth/login", json={"userId": "alice", "password": "wrong"})
        assert failed.status_code == 401

    locked = await other.post("/api/auth/login", json={"userId": "alice", "password": PASSWORD})
    assert locked.status_code == 403


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
