"""
Query-free browsing: domains, projects and per-project aggregation.
"""

import pytest

from lore.core.db import get_db
from lore.core.errors import StoreNotFoundError
from lore.core.ingest import IndexEntry, IngestionContext
from lore.core.search_service import DOMAINS, about, list_domain, list_domains, projects


@pytest.fixture
def browsable(fts_store):
    entries = [
        IndexEntry(source="commits", title="feat: purge", content="Add purge command",
                   metadata={"project": "lore", "sha": "abc1234"}),
        IndexEntry(source="commits", title="fix: typo", content="Fix README typo",
                   metadata={"project": "sable"}),
        IndexEntry(source="captures", title="[gotcha] lore", content="Verify store path",
                   topic="lore", type="gotcha"),
        IndexEntry(source="captures", title="[gotcha] sable", content="Sable needs a restart",
                   topic="sable", type="gotcha"),
        IndexEntry(source="flux", title="[task] lore: Add purge", content="Problem: no delete",
                   topic="lore", type="task"),
        IndexEntry(source="personal", title="Dune", content="Frank Herbert", type="book"),
        IndexEntry(source="personal", title="Alice", content="Friend from work", type="person"),
    ]
    with get_db(with_vectors=False) as conn:
        ctx = IngestionContext(conn)
        for entry in entries:
            ctx.insert(entry)
        conn.execute(
            "INSERT INTO search (source, title, content, metadata, topic, type, timestamp) "
            "VALUES ('commits', 'broken', 'bad metadata', '{not json', '', '', '')"
        )
        conn.commit()
    return fts_store


def test_list_domains():
    domains = list_domains()
    assert domains == list(DOMAINS)
    assert "captures" in domains and "books" in domains


def test_list_domain_newest_first(browsable):
    result = list_domain("captures")

    assert result.domain == "captures"
    assert result.count == 2
    assert [e.title for e in result.entries] == ["[gotcha] sable", "[gotcha] lore"]
    assert result.entries[0].topic == "sable"


def test_list_domain_limit(browsable):
    assert list_domain("captures", limit=1).count == 1


def test_list_domain_skips_malformed_metadata(browsable):
    titles = [e.title for e in list_domain("commits").entries]
    assert "broken" not in titles
    assert len(titles) == 2


def test_list_domain_project_from_metadata(browsable):
    result = list_domain("commits", project="lore")
    assert [e.title for e in result.entries] == ["feat: purge"]
    assert result.entries[0].metadata["sha"] == "abc1234"


def test_list_domain_project_from_topic(browsable):
    assert [e.content for e in list_domain("captures", project="sable").entries] == ["Sable needs a restart"]


def test_personal_domains_filter_by_type(browsable):
    assert [e.title for e in list_domain("books").entries] == ["Dune"]
    assert [e.title for e in list_domain("people").entries] == ["Alice"]


def test_unknown_domain_rejected(browsable):
    with pytest.raises(ValueError):
        list_domain("gossip")


def test_list_domain_missing_store():
    with pytest.raises(StoreNotFoundError):
        list_domain("captures")


def test_projects_across_sources(browsable):
    assert projects() == ["lore", "sable"]


def test_projects_without_store():
    assert projects() == []


def test_about_aggregates_project(browsable):
    result = about("lore")

    assert result.project == "lore"
    assert result.sections["commits"].count == 1
    assert result.sections["captures"].count == 1
    assert result.sections["flux"].count == 1
    assert result.sections["teachings"].count == 0
    assert result.total == 3


def test_about_unknown_project(browsable):
    assert about("nothing").total == 0
