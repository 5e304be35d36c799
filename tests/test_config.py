import pytest

from config import Settings


def test_defaults(monkeypatch):
    for name in ("DATABASE_URL", "DATABASE_NAME", "ELECTION_NAME", "ELECTION_DURATION_DAYS",
                 "DEPLOYER_ADDRESS", "NETWORK", "DEPLOYMENTS_DIR", "LOG_LEVEL", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    s = Settings.from_env()
    assert s.database_url is None
    assert s.election_name == "National General Election 2024"
    assert s.election_duration_days == 7
    assert s.network == "local"
    assert s.deployments_dir == "deployments"
    assert s.log_level == "INFO"
    assert s.cors_origins == ["*"]


def test_from_env(monkeypatch):
    monkeypatch.setenv("ELECTION_NAME", "Board Election")
    monkeypatch.setenv("ELECTION_DURATION_DAYS", "3")
    monkeypatch.setenv("NETWORK", "testnet")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000, https://vote.example.org")
    s = Settings.from_env()
    assert s.election_name == "Board Election"
    assert s.election_duration_days == 3
    assert s.network == "testnet"
    assert s.log_level == "DEBUG"
    assert s.cors_origins == ["http://localhost:3000", "https://vote.example.org"]


def test_bad_duration(monkeypatch):
    monkeypatch.setenv("ELECTION_DURATION_DAYS", "seven")
    with pytest.raises(ValueError, match="ELECTION_DURATION_DAYS"):
        Settings.from_env()
