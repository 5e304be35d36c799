import pytest

import database
from conftest import COMMISSIONER, VOTER1
from schemas import DeploymentInfo


def test_save_without_database_is_a_no_op(engine, monkeypatch):
    monkeypatch.setattr(database, "db", None)
    assert database.save_election(engine) is False
    assert database.load_election() is None


def test_load_empty_database(fake_db):
    assert database.load_election(database=fake_db) is None


def test_save_and_load(voting_engine, fake_db, clock):
    voting_engine.cast_vote(VOTER1, 1)
    assert database.save_election(voting_engine, database=fake_db) is True

    loaded = database.load_election(database=fake_db, clock=clock)
    assert loaded.to_document() == voting_engine.to_document()
    assert loaded.commissioner == COMMISSIONER
    assert loaded.has_voter_voted(VOTER1)


def test_events_are_appended_not_rewritten(engine, fake_db):
    database.save_election(engine, database=fake_db)
    assert [e["seq"] for e in fake_db["event"].find()] == [1]

    engine.register_voter(COMMISSIONER, VOTER1, "ID001")
    database.save_election(engine, database=fake_db)
    database.save_election(engine, database=fake_db)
    assert [e["seq"] for e in fake_db["event"].find()] == [1, 2]
    assert len(fake_db["election"].find()) == 1


def test_create_and_get_documents(fake_db):
    info = DeploymentInfo(network="local", election_name="E", duration_in_days=7, deployer=COMMISSIONER,
                          deployment_time="2024-01-01T00:00:00+00:00", start_time=1, end_time=2)
    doc_id = database.create_document("deployment", info, database=fake_db)
    docs = database.get_documents("deployment", {"network": "local"}, database=fake_db)
    assert len(docs) == 1
    assert str(docs[0]["_id"]) == doc_id
    assert docs[0]["election_name"] == "E"
    assert "created_at" in docs[0] and "updated_at" in docs[0]


def test_documents_require_database(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    with pytest.raises(RuntimeError):
        database.get_documents("deployment")
