import logging
import threading
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import database
from config import Settings, setup_logging
from election import ElectionEngine
from errors import (
    AlreadyRegistered,
    AlreadyVoted,
    DuplicateNationalId,
    ElectionError,
    InvalidParameter,
    NotAvailable,
    NotFound,
    PreconditionFailed,
    Unauthorized,
    WrongPhase,
)
from schemas import (
    BatchRegisterRequest,
    CastVoteRequest,
    CreateElectionRequest,
    NominateRequest,
    RegisterVoterRequest,
    TransferRequest,
)

logger = logging.getLogger("api")

ERROR_STATUS = {
    InvalidParameter: 400,
    Unauthorized: 403,
    NotFound: 404,
    NotAvailable: 404,
    WrongPhase: 409,
    AlreadyRegistered: 409,
    DuplicateNationalId: 409,
    AlreadyVoted: 409,
    PreconditionFailed: 409,
}


def status_for(exc: ElectionError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


class ElectionService:
    """Holds the one engine and serializes every call into it."""

    def __init__(self, engine: Optional[ElectionEngine] = None, database_handle=None,
                 clock: Optional[Callable[[], int]] = None):
        self.engine = engine
        self.database = database_handle
        self.clock = clock
        self.lock = threading.Lock()

    def require_engine(self) -> ElectionEngine:
        if self.engine is None:
            raise HTTPException(status_code=404, detail="Election not created")
        return self.engine

    def persist(self) -> None:
        if self.engine is not None:
            database.save_election(self.engine, database=self.database)

    def commit(self, operation: Callable[[ElectionEngine], object]):
        """Apply one operation and store it; a failed store rolls the engine back."""
        snapshot = self.require_engine().to_document()
        result = operation(self.engine)
        try:
            self.persist()
        except Exception:
            logger.exception("Persisting the election failed; rolling back")
            self.engine = ElectionEngine.from_document(snapshot, clock=self.clock)
            raise
        return result

    def load(self) -> None:
        if self.engine is None:
            self.engine = database.load_election(database=self.database, clock=self.clock)
        if self.engine is None:
            logger.info("No election deployed yet; waiting for POST /api/election")


def create_app(service: Optional[ElectionService] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    service = service or ElectionService(database_handle=database.db)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        with service.lock:
            service.load()
        yield

    app = FastAPI(title="Single-Election Voting API", lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ElectionError)
    async def election_error_handler(request: Request, exc: ElectionError):
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    def mutate(operation: Callable[[ElectionEngine], object]):
        # one operation at a time, fully applied (and persisted) or fully rejected
        with service.lock:
            return service.commit(operation)

    def read(operation: Callable[[ElectionEngine], object]):
        with service.lock:
            return operation(service.require_engine())

    @app.get("/")
    def root():
        return {"message": "Voting API running"}

    @app.get("/test")
    def test_database():
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
            "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
            "election": "✅ Created" if service.engine is not None else "❌ Not Created",
            "collections": [],
        }
        if service.database is not None:
            response["database"] = "✅ Available"
            try:
                response["collections"] = service.database.list_collection_names()
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
        return response

    # --------- Election ---------

    @app.post("/api/election", status_code=201)
    def create_election(payload: CreateElectionRequest, x_caller_address: Optional[str] = Header(default=None)):
        with service.lock:
            if service.engine is not None:
                raise HTTPException(status_code=409, detail="Election already created")
            engine = ElectionEngine.create(
                payload.name, payload.duration_in_days, x_caller_address, clock=service.clock
            )
            database.save_election(engine, database=service.database)
            service.engine = engine
            return engine.get_election_status()

    @app.get("/api/election")
    def election_status():
        return read(lambda e: e.get_election_status())

    @app.get("/api/election/info")
    def election_info():
        return read(lambda e: {
            "election_name": e.name,
            "election_commissioner": e.commissioner,
            "current_phase": int(e.phase),
            "election_start_time": e.start_time,
            "election_end_time": e.end_time,
            "total_voters": e.total_voters,
            "total_candidates": e.total_candidates,
            "total_votes_cast": e.total_votes_cast,
            "results_published": e.results_published,
        })

    @app.post("/api/phase/next")
    def move_to_next_phase(x_caller_address: Optional[str] = Header(default=None)):
        phase = mutate(lambda e: e.move_to_next_phase(x_caller_address))
        return {"ok": True, "phase": int(phase), "phase_name": phase.label}

    @app.post("/api/emergency-stop")
    def emergency_stop(x_caller_address: Optional[str] = Header(default=None)):
        mutate(lambda e: e.emergency_stop(x_caller_address))
        return {"ok": True}

    @app.post("/api/commissioner")
    def transfer_commissioner(payload: TransferRequest, x_caller_address: Optional[str] = Header(default=None)):
        mutate(lambda e: e.transfer_commissioner(x_caller_address, payload.new_commissioner))
        return {"ok": True}

    # --------- Voters ---------

    @app.post("/api/voters", status_code=201)
    def register_voter(payload: RegisterVoterRequest, x_caller_address: Optional[str] = Header(default=None)):
        mutate(lambda e: e.register_voter(x_caller_address, payload.address, payload.national_id))
        return {"ok": True}

    @app.post("/api/voters/batch", status_code=201)
    def batch_register_voters(payload: BatchRegisterRequest, x_caller_address: Optional[str] = Header(default=None)):
        mutate(lambda e: e.batch_register_voters(x_caller_address, payload.addresses, payload.national_ids))
        return {"ok": True, "registered": len(payload.addresses)}

    @app.get("/api/voters/{address}")
    def get_voter(address: str, x_caller_address: Optional[str] = Header(default=None)):
        return read(lambda e: e.get_voter(x_caller_address, address))

    @app.get("/api/voters/{address}/status")
    def voter_status(address: str):
        return read(lambda e: {
            "is_registered": e.is_registered_voter(address),
            "has_voted": e.has_voter_voted(address),
        })

    # --------- Candidates ---------

    @app.post("/api/candidates", status_code=201)
    def nominate_candidate(payload: NominateRequest, x_caller_address: Optional[str] = Header(default=None)):
        candidate_id = mutate(
            lambda e: e.nominate_candidate(x_caller_address, payload.name, payload.party, payload.manifesto)
        )
        return {"ok": True, "id": candidate_id}

    @app.post("/api/candidates/{candidate_id}/deactivate")
    def deactivate_candidate(candidate_id: int, x_caller_address: Optional[str] = Header(default=None)):
        mutate(lambda e: e.deactivate_candidate(x_caller_address, candidate_id))
        return {"ok": True}

    @app.get("/api/candidates")
    def list_candidates():
        return {"items": read(lambda e: e.get_all_candidates())}

    @app.get("/api/candidates/{candidate_id}")
    def get_candidate(candidate_id: int):
        return read(lambda e: e.get_candidate(candidate_id))

    @app.get("/api/candidates/{candidate_id}/votes")
    def candidate_vote_count(candidate_id: int, x_caller_address: Optional[str] = Header(default=None)):
        count = read(lambda e: e.get_candidate_vote_count(x_caller_address, candidate_id))
        return {"candidate_id": candidate_id, "vote_count": count}

    # --------- Voting & results ---------

    @app.post("/api/vote")
    def cast_vote(payload: CastVoteRequest, x_caller_address: Optional[str] = Header(default=None)):
        mutate(lambda e: e.cast_vote(x_caller_address, payload.candidate_id))
        return {"ok": True}

    @app.get("/api/results")
    def get_results():
        return read(lambda e: e.get_results())

    @app.get("/api/events")
    def list_events(since: int = 0):
        return {"items": read(lambda e: e.events_since(since))}

    @app.get("/api/deployments")
    def list_deployments():
        if service.database is None:
            return {"items": []}
        items = database.get_documents("deployment", database=service.database)
        for it in items:
            it["_id"] = str(it["_id"])  # make JSON serializable
        return {"items": items}

    return app


_settings = Settings.from_env()
setup_logging(_settings.log_level)
app = create_app(settings=_settings)
