"""API 테스트 공용 로그인/등록 헬퍼입니다."""

TEST_PASSWORD = "password123"


def login(client, email, password=TEST_PASSWORD):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


def manager_login(client, email, password=TEST_PASSWORD):
    resp = client.post("/api/auth/manager-login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


def create_task(client, title, **fields):
    resp = client.post("/api/tasks", json={"title": title, **fields})
    assert resp.status_code == 200, resp.text
    return resp.json()
