from __future__ import annotations


def _create(client, front, back, tags=()):
    return client.post("/api/flashcards", json={"front": front, "back": back, "tags": list(tags)})


def test_create_and_page_through_flashcards(client):
    for i in range(5):
        assert _create(client, f"Q{i}", f"A{i}").status_code == 201

    first = client.get("/api/flashcards", params={"limit": 2}).json()
    assert [c["front"] for c in first["data"]] == ["Q0", "Q1"]
    assert first["page"] == {"next_cursor": "2", "has_more": True}

    last = client.get("/api/flashcards", params={"limit": 2, "cursor": "4"}).json()
    assert [c["front"] for c in last["data"]] == ["Q4"]
    assert last["page"]["has_more"] is False


def test_filter_by_tag_and_search(client):
    _create(client, "What is a pod?", "Smallest deployable unit", tags=["kubernetes"])
    _create(client, "What is a volume?", "Persistent storage", tags=["docker"])

    by_tag = client.get("/api/flashcards", params={"tag[]": ["docker"]}).json()["data"]
    assert [c["front"] for c in by_tag] == ["What is a volume?"]

    by_text = client.get("/api/flashcards", params={"search": "deployable"}).json()["data"]
    assert [c["front"] for c in by_text] == ["What is a pod?"]


def test_front_length_is_validated(client):
    res = _create(client, "x" * 201, "back")

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "invalid_body"


def test_bad_cursor_is_rejected(client):
    res = client.get("/api/flashcards", params={"cursor": "abc"})

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "invalid_query"


def test_soft_delete_hides_the_card_until_restored(client):
    card = _create(client, "What is a layer?", "A filesystem diff").json()

    assert client.delete(f"/api/flashcards/{card['id']}").status_code == 204

    assert client.get(f"/api/flashcards/{card['id']}").status_code == 404
    assert client.get("/api/flashcards").json()["data"] == []
    listed = client.get("/api/flashcards", params={"include_deleted": "true"}).json()["data"]
    assert listed[0]["deleted_at"] is not None

    restored = client.post(f"/api/flashcards/{card['id']}/restore")
    assert restored.status_code == 200
    assert restored.json()["deleted_at"] is None
    assert client.get(f"/api/flashcards/{card['id']}").status_code == 200


def test_restoring_a_live_card_is_not_found(client):
    card = _create(client, "Q", "A").json()

    res = client.post(f"/api/flashcards/{card['id']}/restore")

    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"


def test_update_and_replace_tags(client):
    card = _create(client, "Q", "A", tags=["old"]).json()

    patched = client.patch(f"/api/flashcards/{card['id']}", json={"back": "Better answer"})
    assert patched.json()["back"] == "Better answer"

    tags = client.put(f"/api/flashcards/{card['id']}/tags", json={"tags": [" SQL ", "sql", "joins"]})
    assert tags.json() == ["sql", "joins"]

    empty = client.patch(f"/api/flashcards/{card['id']}", json={})
    assert empty.status_code == 400
    assert empty.json()["error"]["code"] == "invalid_body"


def test_update_into_a_duplicate_is_rejected(client):
    _create(client, "Q1", "A1")
    second = _create(client, "Q2", "A2").json()

    res = client.patch(f"/api/flashcards/{second['id']}", json={"front": "Q1", "back": "A1"})

    assert res.status_code == 409
    assert res.json()["error"]["code"] == "duplicate_flashcard"
