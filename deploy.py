#!/usr/bin/env python3
"""
Deployment and verification tool for the election service.

    python deploy.py deploy   # create the election and record the deployment
    python deploy.py verify   # check the persisted election against the deployment record
    python deploy.py status   # print the current election status

Parameters come from the environment (ELECTION_NAME, ELECTION_DURATION_DAYS,
DEPLOYER_ADDRESS, NETWORK, DATABASE_URL, DATABASE_NAME, DEPLOYMENTS_DIR).
"""
import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import database
from config import Settings, setup_logging
from election import SECONDS_PER_DAY, ElectionEngine, Phase, normalize_address
from errors import ElectionError
from schemas import DeploymentInfo

logger = logging.getLogger("deploy")

RULE = "=" * 80


def phase_label(phase: int) -> str:
    try:
        return f"{int(phase)} ({Phase(phase).label})"
    except ValueError:
        return "Unknown"


def deployment_file(settings: Settings) -> Path:
    return Path(settings.deployments_dir) / f"{settings.network}-deployment.json"


def deploy(settings: Settings, database_handle=None, clock=None) -> int:
    print(RULE)
    print("ELECTION DEPLOYMENT".center(80))
    print(RULE)
    print("Network:", settings.network)

    if not settings.deployer_address:
        print("\nERROR: DEPLOYER_ADDRESS is not set")
        return 1
    if database_handle is None:
        logger.warning("No database configured; the election will not survive this process")
    elif database.load_election(database=database_handle) is not None:
        print("\nERROR: an election is already deployed on this database")
        return 1

    print("\nDeployment Parameters:")
    print("   Election Name:", settings.election_name)
    print("   Duration:", settings.election_duration_days, "days")
    print("   Voting Period:", settings.election_duration_days * 24, "hours")

    try:
        engine = ElectionEngine.create(
            settings.election_name, settings.election_duration_days, settings.deployer_address, clock=clock
        )
    except ElectionError as e:
        print(f"\nDEPLOYMENT FAILED: {e.reason}")
        return 1

    database.save_election(engine, database=database_handle)

    info = DeploymentInfo(
        network=settings.network,
        election_name=engine.name,
        duration_in_days=settings.election_duration_days,
        deployer=engine.commissioner,
        deployment_time=datetime.now(timezone.utc).isoformat(),
        start_time=engine.start_time,
        end_time=engine.end_time,
    )
    if database_handle is not None:
        database.create_document("deployment", info, database=database_handle)

    path = deployment_file(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(info.model_dump_json(indent=2), encoding="utf-8")

    print("\nELECTION DEPLOYED SUCCESSFULLY")
    print(RULE)
    print("Election Name:          ", engine.name)
    print("Commissioner:           ", engine.commissioner)
    print("Current Phase:          ", phase_label(engine.phase))
    print("Start Time:             ", datetime.fromtimestamp(engine.start_time, timezone.utc).isoformat())
    print("End Time:               ", datetime.fromtimestamp(engine.end_time, timezone.utc).isoformat())
    print("Deployment info saved to:", path)
    print(RULE)
    print("\nELECTION PHASES:")
    for phase in Phase:
        print(f"   Phase {phase_label(phase)}")
    return 0


def verify(settings: Settings, database_handle=None) -> int:
    print(RULE)
    print("ELECTION VERIFICATION".center(80))
    print(RULE)

    path = deployment_file(settings)
    if not path.exists():
        print(f"No deployment file found at {path}")
        return 1
    info = DeploymentInfo(**json.loads(path.read_text(encoding="utf-8")))
    print("Loaded deployment record from", path)

    engine = database.load_election(database=database_handle)
    if engine is None:
        print("No election found in the database")
        return 1

    checks = [
        ("Election name", engine.name, info.election_name),
        ("Commissioner", engine.commissioner, normalize_address(info.deployer)),
        ("Duration (seconds)", engine.end_time - engine.start_time, info.duration_in_days * SECONDS_PER_DAY),
        ("Start time", engine.start_time, info.start_time),
    ]
    ok = True
    for label, actual, expected in checks:
        if actual == expected:
            print(f"   OK   {label}: {actual}")
        else:
            ok = False
            print(f"   FAIL {label}: expected {expected!r}, found {actual!r}")
    print("   Current Phase:", phase_label(engine.phase))

    print("\nVerification " + ("passed" if ok else "FAILED"))
    return 0 if ok else 1


def status(database_handle=None) -> int:
    engine = database.load_election(database=database_handle)
    if engine is None:
        print("No election found in the database")
        return 1
    st = engine.get_election_status()
    print(RULE)
    print("Election Name:    ", st.name)
    print("Commissioner:     ", engine.commissioner)
    print("Current Phase:    ", phase_label(st.phase))
    print("Total Voters:     ", st.total_voters)
    print("Total Candidates: ", st.total_candidates)
    print("Votes Cast:       ", st.votes_cast)
    print("Results Available:", st.results_available)
    print(RULE)
    return 0


def main(argv: Optional[list] = None) -> int:
    ap = argparse.ArgumentParser(description="Deploy and verify the election service")
    ap.add_argument("command", choices=["deploy", "verify", "status"])
    ap.add_argument("--network", help="Network name used for the deployment record (default: $NETWORK)")
    ap.add_argument("--deployments-dir", help="Where deployment records are written")
    args = ap.parse_args(argv)

    settings = Settings.from_env()
    if args.network:
        settings.network = args.network
    if args.deployments_dir:
        settings.deployments_dir = args.deployments_dir
    setup_logging(settings.log_level)

    if args.command == "deploy":
        return deploy(settings, database_handle=database.db)
    if args.command == "verify":
        return verify(settings, database_handle=database.db)
    return status(database_handle=database.db)


if __name__ == "__main__":
    raise SystemExit(main())
