"""
HTTP API endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from lore.api.main import app
from lore.core.db import get_db
from lore.core.ingest import IndexEntry, IngestionContext


@pytest.fixture
def client():
    return TestClient(app)


def capture(type_, topic, content, **extra):
    data = {"topic": topic, "content": content}
    data.update(extra)
    return {"event": "captured", "type": type_, "timestamp": "2024-06-01T00:00:00Z", "data": data}


@pytest.fixture
def docs_store(fts_store):
    with get_db(with_vectors=False) as conn:
        ctx = IngestionContext(conn)
        ctx.insert(IndexEntry(source="docs", title="Setup", content="Run the init script before indexing",
                              topic="lore", type="doc", timestamp="2024-05-01T00:00:00Z"))
        ctx.insert(IndexEntry(source="notes", title="Chords", content="Practice barre chords daily",
                              topic="guitar", type="note", timestamp="2024-06-01T00:00:00Z"))
        conn.commit()
    return fts_store


def test_health_without_store(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "unhealthy"
    assert data["tables"] == []


def test_health_with_store(client, docs_store):
    data = client.get("/health").json()
    assert data["status"] == "healthy"
    assert "search" in data["tables"]
    assert data["config_issues"] == []


def test_health_reports_config_issues(client, docs_store, monkeypatch):
    monkeypatch.setenv("EMBED_PROVIDER", "word2vec")
    data = client.get("/health").json()
    assert data["status"] == "unhealthy"
    assert any("EMBED_PROVIDER" in issue for issue in data["config_issues"])


def test_info_and_sources(client, docs_store):
    info = client.get("/info").json()
    assert info["total_entries"] == 2
    assert info["topics"] == ["guitar", "lore"]
    assert info["last_indexed"] == "2024-06-01T00:00:00Z"

    sources = client.get("/sources").json()
    assert sorted(s["name"] for s in sources) == ["docs", "notes"]


def test_info_without_store(client):
    assert client.get("/info").json()["total_entries"] == 0


def test_lexical_search(client, docs_store):
    response = client.get("/search", params={"q": "init script"})
    assert response.status_code == 200
    data = response.json()
    assert data["mode"] == "lexical"
    assert [r["title"] for r in data["results"]] == ["Setup"]
    assert data["results"][0]["rank"] < 0


def test_lexical_search_filters(client, docs_store):
    response = client.get("/search", params=[("q", "chords"), ("source", "docs"), ("source", "notes")])
    assert [r["source"] for r in response.json()["results"]] == ["notes"]

    response = client.get("/search", params={"q": "chords", "type": "doc"})
    assert response.json()["results"] == []


def test_search_missing_store_is_503(client):
    response = client.get("/search", params={"q": "anything"})
    assert response.status_code == 503
    assert "lore-db-init" in response.json()["detail"]


def test_capture_index_and_retrieve(client, vec_store):
    response = client.post("/captures/index", json={
        "events": [capture("knowledge", "sable", "Always verify store path", subtype="gotcha")],
    })
    assert response.status_code == 200
    decision = response.json()["decisions"][0]
    assert decision["action"] == "ADD"
    assert decision["checked"] is False
    assert len(decision["row_ids"]) == 1

    semantic = client.get("/search/semantic", params={"q": "verify store path"}).json()
    assert semantic["results"][0]["title"] == "[gotcha] sable"
    assert semantic["results"][0]["distance"] is not None

    hybrid = client.get("/search/hybrid", params={"q": "verify store path"}).json()
    assert hybrid["mode"] == "hybrid"
    top = hybrid["results"][0]
    assert top["title"] == "[gotcha] sable"
    assert top["text_score"] > 0 and top["vector_score"] > 0


def test_capture_index_rejects_bad_events(client, vec_store):
    response = client.post("/captures/index", json={"events": [{"type": "knowledge", "data": {}}]})
    assert response.status_code == 400

    response = client.post("/captures/index", json={"events": []})
    assert response.status_code == 422


def test_capture_index_without_store_is_503(client):
    response = client.post("/captures/index", json={"events": [capture("note", "t", "c")]})
    assert response.status_code == 503


def test_hybrid_rejects_negative_weights(client, vec_store):
    response = client.get("/search/hybrid", params={"q": "x", "vector_weight": -1})
    assert response.status_code == 422


def test_purge_flow(client, vec_store):
    client.post("/captures/index", json={"events": [
        capture("knowledge", "sable", "Old path is ~/.sable", subtype="gotcha"),
        capture("knowledge", "sable", "Unrelated", subtype="gotcha"),
    ]})

    matches = client.get("/purge/matches", params={"q": "~/.sable"}).json()["matches"]
    assert [m["content"] for m in matches] == ["Old path is ~/.sable"]

    response = client.post("/purge", json={"query": "~/.sable"})
    assert response.status_code == 200
    assert response.json()["deleted"] == 1
    assert client.get("/purge/matches", params={"q": "~/.sable"}).json()["matches"] == []


def test_purge_row_ids_narrow_matches(client, vec_store):
    client.post("/captures/index", json={"events": [
        capture("note", "t", "temp one"),
        capture("note", "t", "temp two"),
    ]})
    matches = client.get("/purge/matches", params={"q": "temp"}).json()["matches"]
    keep, drop = matches[0], matches[1]

    response = client.post("/purge", json={"query": "temp", "row_ids": [drop["row_id"]]})
    assert response.json()["row_ids"] == [drop["row_id"]]

    remaining = client.get("/purge/matches", params={"q": "temp"}).json()["matches"]
    assert [m["row_id"] for m in remaining] == [keep["row_id"]]


def test_purge_nothing_matched_is_404(client, vec_store):
    response = client.post("/purge", json={"query": "nothing like this"})
    assert response.status_code == 404


def test_purge_rejects_batch_sources(client, docs_store):
    assert client.get("/purge/matches", params={"q": "init", "source": "docs"}).status_code == 400
    assert client.post("/purge", json={"query": "init", "source": "docs"}).status_code == 422


@pytest.fixture
def project_store(fts_store):
    with get_db(with_vectors=False) as conn:
        ctx = IngestionContext(conn)
        ctx.insert(IndexEntry(source="commits", title="feat: purge", content="Add purge command",
                              metadata={"project": "lore"}))
        ctx.insert(IndexEntry(source="captures", title="[gotcha] lore", content="Verify store path",
                              topic="lore", type="gotcha"))
        ctx.insert(IndexEntry(source="captures", title="[gotcha] sable", content="Restart sable",
                              topic="sable", type="gotcha"))
        conn.commit()
    return fts_store


def test_domains(client):
    domains = client.get("/domains").json()["domains"]
    assert "commits" in domains and "people" in domains


def test_list_domain(client, project_store):
    data = client.get("/list/captures").json()
    assert data["count"] == 2
    assert [e["title"] for e in data["entries"]] == ["[gotcha] sable", "[gotcha] lore"]

    data = client.get("/list/captures", params={"project": "lore", "limit": 5}).json()
    assert [e["content"] for e in data["entries"]] == ["Verify store path"]


def test_list_unknown_domain_is_400(client, project_store):
    response = client.get("/list/gossip")
    assert response.status_code == 400
    assert "Invalid domain" in response.json()["detail"]


def test_list_without_store_is_503(client):
    assert client.get("/list/captures").status_code == 503


def test_projects_and_about(client, project_store):
    assert client.get("/projects").json()["projects"] == ["lore", "sable"]

    data = client.get("/about/lore").json()
    assert data["total"] == 2
    assert data["sections"]["commits"]["entries"][0]["title"] == "feat: purge"
    assert data["sections"]["captures"]["count"] == 1
    assert data["sections"]["sessions"]["count"] == 0


def test_projects_without_store(client):
    assert client.get("/projects").json()["projects"] == []
