import json

import database
import deploy
from config import Settings
from conftest import COMMISSIONER, START, VOTER1, FakeClock
from election import SECONDS_PER_DAY


def make_settings(tmp_path, **overrides):
    values = dict(
        election_name="National General Election 2024",
        election_duration_days=7,
        deployer_address=COMMISSIONER,
        network="testnet",
        deployments_dir=str(tmp_path / "deployments"),
    )
    values.update(overrides)
    return Settings(**values)


def test_deploy_writes_record_and_persists(tmp_path, fake_db, capsys):
    settings = make_settings(tmp_path)
    assert deploy.deploy(settings, database_handle=fake_db, clock=FakeClock()) == 0

    record = json.loads((tmp_path / "deployments" / "testnet-deployment.json").read_text(encoding="utf-8"))
    assert record["election_name"] == "National General Election 2024"
    assert record["duration_in_days"] == 7
    assert record["deployer"] == COMMISSIONER
    assert record["end_time"] - record["start_time"] == 7 * SECONDS_PER_DAY

    engine = database.load_election(database=fake_db)
    assert engine.start_time == START
    assert len(fake_db["deployment"].find()) == 1
    assert "DEPLOYED SUCCESSFULLY" in capsys.readouterr().out


def test_deploy_requires_deployer(tmp_path, fake_db):
    assert deploy.deploy(make_settings(tmp_path, deployer_address=None), database_handle=fake_db) == 1
    assert database.load_election(database=fake_db) is None


def test_deploy_rejects_bad_duration(tmp_path, fake_db, capsys):
    assert deploy.deploy(make_settings(tmp_path, election_duration_days=0), database_handle=fake_db) == 1
    assert "Duration must be positive" in capsys.readouterr().out
    assert not (tmp_path / "deployments").exists()


def test_deploy_only_once(tmp_path, fake_db):
    settings = make_settings(tmp_path)
    assert deploy.deploy(settings, database_handle=fake_db) == 0
    assert deploy.deploy(settings, database_handle=fake_db) == 1


def test_verify_matches_deployment(tmp_path, fake_db, capsys):
    settings = make_settings(tmp_path)
    deploy.deploy(settings, database_handle=fake_db, clock=FakeClock())
    assert deploy.verify(settings, database_handle=fake_db) == 0
    assert "Verification passed" in capsys.readouterr().out


def test_verify_detects_mismatch(tmp_path, fake_db, capsys):
    settings = make_settings(tmp_path)
    deploy.deploy(settings, database_handle=fake_db)
    engine = database.load_election(database=fake_db)
    engine.transfer_commissioner(COMMISSIONER, VOTER1)
    database.save_election(engine, database=fake_db)

    assert deploy.verify(settings, database_handle=fake_db) == 1
    assert "FAIL Commissioner" in capsys.readouterr().out


def test_verify_without_deployment(tmp_path, fake_db):
    assert deploy.verify(make_settings(tmp_path), database_handle=fake_db) == 1


def test_status(tmp_path, fake_db, capsys):
    assert deploy.status(database_handle=fake_db) == 1
    deploy.deploy(make_settings(tmp_path), database_handle=fake_db)
    assert deploy.status(database_handle=fake_db) == 0
    assert "0 (Registration)" in capsys.readouterr().out


def test_phase_label():
    assert deploy.phase_label(4) == "4 (Results Declared)"
    assert deploy.phase_label(9) == "Unknown"
