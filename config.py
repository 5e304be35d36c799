"""
Service configuration, read from environment variables.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    election_name: str = "National General Election 2024"
    election_duration_days: int = 7
    deployer_address: Optional[str] = None
    network: str = "local"
    deployments_dir: str = "deployments"
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            database_name=os.getenv("DATABASE_NAME") or None,
            election_name=os.getenv("ELECTION_NAME") or cls.election_name,
            election_duration_days=_int_env("ELECTION_DURATION_DAYS", cls.election_duration_days),
            deployer_address=os.getenv("DEPLOYER_ADDRESS") or None,
            network=os.getenv("NETWORK") or cls.network,
            deployments_dir=os.getenv("DEPLOYMENTS_DIR") or cls.deployments_dir,
            log_level=(os.getenv("LOG_LEVEL") or cls.log_level).upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        root.addHandler(handler)
    root.setLevel(level)
