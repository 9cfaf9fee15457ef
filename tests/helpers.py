"""Request helpers shared by the API tests."""

from fastapi.testclient import TestClient


def create_post(client: TestClient, title: str = "Post 1", desc: str = "Description for Post 1",
                filename: str = "photo.png", content: bytes = b"\x89PNG fake image"):
    return client.post(
        "/posts",
        files={"image": (filename, content, "image/png")},
        data={"title": title, "desc": desc},
    )


def create_tag(client: TestClient, name: str) -> dict:
    resp = client.post("/tags", json={"name": name})
    assert resp.status_code == 201
    return resp.json()
