"""
Election engine: the single-election state machine.

One `ElectionEngine` owns the election record, the voter registry, the
candidate registry and the national ID index. Every mutating operation is
validated completely before anything is written, so a rejected call leaves
the engine exactly as it was and emits no event.
"""
import logging
import time
from enum import IntEnum
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from errors import (
    AlreadyRegistered,
    AlreadyVoted,
    DuplicateNationalId,
    ElectionError,
    InvalidCandidate,
    InvalidParameter,
    NotAvailable,
    NotFound,
    PreconditionFailed,
    Unauthorized,
    WrongPhase,
)
from schemas import Candidate, ElectionResults, ElectionStatus, EventRecord, Voter

logger = logging.getLogger("election")

SECONDS_PER_DAY = 24 * 60 * 60
ZERO_ADDRESS = "0x" + "0" * 40
NO_WINNER = 0


class Phase(IntEnum):
    REGISTRATION = 0
    NOMINATION = 1
    VOTING = 2
    ENDED = 3
    RESULTS_DECLARED = 4

    @property
    def label(self) -> str:
        return PHASE_LABELS[self]


PHASE_LABELS = {
    Phase.REGISTRATION: "Registration",
    Phase.NOMINATION: "Nomination",
    Phase.VOTING: "Voting",
    Phase.ENDED: "Ended",
    Phase.RESULTS_DECLARED: "Results Declared",
}


def normalize_address(address: Optional[str]) -> str:
    return (address or "").strip().lower()


def is_null_address(address: Optional[str]) -> bool:
    return normalize_address(address) in ("", ZERO_ADDRESS)


def system_clock() -> int:
    return int(time.time())


def logged(operation: Callable) -> Callable:
    """Log rejected operations before re-raising them to the caller."""
    @wraps(operation)
    def wrapper(self, *args, **kwargs):
        try:
            result = operation(self, *args, **kwargs)
        except ElectionError as e:
            logger.warning("%s rejected: %s (%s)", operation.__name__, e.kind, e.reason)
            raise
        self._deliver()
        return result
    return wrapper


class ElectionEngine:

    def __init__(self, name: str, commissioner: str, start_time: int, end_time: int,
                 clock: Optional[Callable[[], int]] = None):
        self._clock = clock or system_clock
        self.name = name
        self.commissioner = normalize_address(commissioner)
        self.phase = Phase.REGISTRATION
        self.start_time = start_time
        self.end_time = end_time
        self.total_votes_cast = 0
        self.results_published = False
        self.winning_candidate_id = NO_WINNER

        self._voters: Dict[str, Voter] = {}
        self._national_ids: Dict[str, str] = {}  # national id -> voter address
        self._candidates: Dict[int, Candidate] = {}  # insertion order == id order
        self.events: List[EventRecord] = []
        self._subscribers: List[Callable[[EventRecord], None]] = []
        self._undelivered: List[EventRecord] = []

    @classmethod
    def create(cls, name: str, duration_days: int, commissioner: str,
               clock: Optional[Callable[[], int]] = None) -> "ElectionEngine":
        if isinstance(duration_days, bool) or not isinstance(duration_days, int) or duration_days <= 0:
            logger.warning("create rejected: InvalidParameter (Duration must be positive)")
            raise InvalidParameter("Duration must be positive")
        if is_null_address(commissioner):
            logger.warning("create rejected: InvalidParameter (Invalid commissioner address)")
            raise InvalidParameter("Invalid commissioner address")

        start = (clock or system_clock)()
        engine = cls(name, commissioner, start, start + duration_days * SECONDS_PER_DAY, clock=clock)
        engine._emit("ElectionCreated", {"name": name, "start_time": start, "end_time": engine.end_time})
        engine._deliver()
        return engine

    # ------------------------------------------------------------------
    # events

    def subscribe(self, callback: Callable[[EventRecord], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[EventRecord], None]) -> None:
        self._subscribers.remove(callback)

    def events_since(self, seq: int = 0) -> List[EventRecord]:
        return [e.model_copy(deep=True) for e in self.events[max(seq, 0):]]

    def _emit(self, name: str, args: Dict[str, Any]) -> EventRecord:
        event = EventRecord(seq=len(self.events) + 1, name=name, args=args, timestamp=self._clock())
        self.events.append(event)
        self._undelivered.append(event)
        logger.info("%s %s", name, args)
        return event

    def _deliver(self) -> None:
        """Hand the events of the finished operation to subscribers.

        Runs only once the operation has fully committed. A subscriber that
        raises is logged and skipped; the operation stays committed.
        """
        undelivered, self._undelivered = self._undelivered, []
        for event in undelivered:
            for callback in list(self._subscribers):
                try:
                    callback(event)
                except Exception:
                    logger.exception("Event subscriber failed on %s", event.name)

    # ------------------------------------------------------------------
    # guards

    def _only_commissioner(self, caller: str) -> None:
        if normalize_address(caller) != self.commissioner:
            raise Unauthorized("Only commissioner can call this")

    def _in_phase(self, *phases: Phase) -> None:
        if self.phase not in phases:
            raise WrongPhase("Not in correct election phase")

    def _candidate(self, candidate_id: int) -> Candidate:
        candidate = self._candidates.get(candidate_id)
        if candidate is None:
            raise NotFound("Invalid candidate ID")
        return candidate

    def _check_new_voter(self, address: str, national_id: str) -> str:
        if is_null_address(address):
            raise InvalidParameter("Invalid voter address")
        if not national_id:
            raise InvalidParameter("National ID cannot be empty")
        address = normalize_address(address)
        if address in self._voters:
            raise AlreadyRegistered("Voter already registered")
        if national_id in self._national_ids:
            raise DuplicateNationalId("National ID already used")
        return address

    def _add_voter(self, address: str, national_id: str, now: int) -> None:
        self._voters[address] = Voter(address=address, registration_time=now, national_id=national_id)
        self._national_ids[national_id] = address
        self._emit("VoterRegistered", {"voter": address, "national_id": national_id, "timestamp": now})

    # ------------------------------------------------------------------
    # mutating operations

    @logged
    def register_voter(self, caller: str, address: str, national_id: str) -> None:
        self._only_commissioner(caller)
        self._in_phase(Phase.REGISTRATION)
        address = self._check_new_voter(address, national_id)
        self._add_voter(address, national_id, self._clock())

    @logged
    def batch_register_voters(self, caller: str, addresses: List[str], national_ids: List[str]) -> None:
        self._only_commissioner(caller)
        self._in_phase(Phase.REGISTRATION)
        if len(addresses) != len(national_ids):
            raise InvalidParameter("Array lengths must match")

        # validate every entry, including against earlier entries of the batch
        pending: Dict[str, str] = {}
        pending_ids = set()
        for address, national_id in zip(addresses, national_ids):
            address = self._check_new_voter(address, national_id)
            if address in pending:
                raise AlreadyRegistered("Voter already registered")
            if national_id in pending_ids:
                raise DuplicateNationalId("National ID already used")
            pending[address] = national_id
            pending_ids.add(national_id)

        now = self._clock()
        for address, national_id in pending.items():
            self._add_voter(address, national_id, now)

    @logged
    def nominate_candidate(self, caller: str, name: str, party: str, manifesto: str = "") -> int:
        self._only_commissioner(caller)
        self._in_phase(Phase.NOMINATION)
        if not name:
            raise InvalidParameter("Name cannot be empty")
        if not party:
            raise InvalidParameter("Party cannot be empty")

        now = self._clock()
        candidate_id = len(self._candidates) + 1
        self._candidates[candidate_id] = Candidate(
            id=candidate_id,
            name=name,
            party=party,
            manifesto=manifesto or "",
            nomination_time=now,
        )
        self._emit("CandidateNominated", {
            "candidate_id": candidate_id, "name": name, "party": party, "timestamp": now,
        })
        return candidate_id

    @logged
    def deactivate_candidate(self, caller: str, candidate_id: int) -> None:
        self._only_commissioner(caller)
        self._in_phase(Phase.NOMINATION)
        candidate = self._candidate(candidate_id)
        candidate.is_active = False
        self._emit("CandidateDeactivated", {"candidate_id": candidate_id, "timestamp": self._clock()})

    @logged
    def cast_vote(self, caller: str, candidate_id: int) -> None:
        self._in_phase(Phase.VOTING)
        voter = self._voters.get(normalize_address(caller))
        if voter is None:
            raise Unauthorized("Not a registered voter")
        if voter.has_voted:
            raise AlreadyVoted("Already voted")
        candidate = self._candidates.get(candidate_id)
        if candidate is None:
            raise InvalidCandidate("Invalid candidate ID")
        if not candidate.is_active:
            raise InvalidCandidate("Candidate is not active")

        voter.has_voted = True
        voter.voted_candidate_id = candidate_id
        candidate.vote_count += 1
        self.total_votes_cast += 1
        self._emit("VoteCast", {"voter": voter.address, "candidate_id": candidate_id, "timestamp": self._clock()})

    @logged
    def move_to_next_phase(self, caller: str) -> Phase:
        self._only_commissioner(caller)
        if self.phase == Phase.RESULTS_DECLARED:
            raise WrongPhase("Election already completed")
        if self.phase == Phase.REGISTRATION and not self._voters:
            raise PreconditionFailed("No voters registered")
        if self.phase == Phase.NOMINATION and not self._candidates:
            raise PreconditionFailed("No candidates nominated")

        now = self._clock()
        self.phase = Phase(self.phase + 1)
        self._emit("PhaseChanged", {"new_phase": int(self.phase), "timestamp": now})
        if self.phase == Phase.RESULTS_DECLARED:
            self._declare_results(now)
        return self.phase

    def _declare_results(self, now: int) -> None:
        winner, best = NO_WINNER, 0
        for candidate in self._candidates.values():
            # strict comparison: ties stay with the lower id
            if candidate.vote_count > best:
                winner, best = candidate.id, candidate.vote_count
        self.winning_candidate_id = winner
        self.results_published = True
        self._emit("ResultsDeclared", {
            "winning_candidate_id": winner, "total_votes": self.total_votes_cast, "timestamp": now,
        })

    @logged
    def emergency_stop(self, caller: str) -> None:
        self._only_commissioner(caller)
        self._in_phase(Phase.REGISTRATION, Phase.NOMINATION, Phase.VOTING)
        self.phase = Phase.ENDED
        self._emit("EmergencyStop", {"timestamp": self._clock()})

    @logged
    def transfer_commissioner(self, caller: str, new_commissioner: str) -> None:
        self._only_commissioner(caller)
        if is_null_address(new_commissioner):
            raise InvalidParameter("Invalid address")
        previous, self.commissioner = self.commissioner, normalize_address(new_commissioner)
        self._emit("CommissionerTransferred", {
            "previous": previous, "new_commissioner": self.commissioner, "timestamp": self._clock(),
        })

    # ------------------------------------------------------------------
    # reads

    @property
    def total_voters(self) -> int:
        return len(self._voters)

    @property
    def total_candidates(self) -> int:
        return len(self._candidates)

    def is_registered_voter(self, address: str) -> bool:
        return normalize_address(address) in self._voters

    def has_voter_voted(self, address: str) -> bool:
        voter = self._voters.get(normalize_address(address))
        return voter is not None and voter.has_voted

    @logged
    def get_voter(self, caller: str, address: str) -> Voter:
        caller, address = normalize_address(caller), normalize_address(address)
        if caller != self.commissioner and caller != address:
            raise Unauthorized("Not authorized to view voter details")
        voter = self._voters.get(address)
        if voter is None:
            raise NotFound("Voter not registered")
        return voter.model_copy()

    @logged
    def get_candidate(self, candidate_id: int) -> Candidate:
        return self._candidate(candidate_id).model_copy()

    def get_all_candidates(self) -> List[Candidate]:
        return [c.model_copy() for c in self._candidates.values()]

    @logged
    def get_candidate_vote_count(self, caller: str, candidate_id: int) -> int:
        if normalize_address(caller) != self.commissioner and not self.results_published:
            raise Unauthorized("Only commissioner can view vote counts before results")
        return self._candidate(candidate_id).vote_count

    def get_election_status(self) -> ElectionStatus:
        return ElectionStatus(
            name=self.name,
            phase=int(self.phase),
            phase_name=self.phase.label,
            start_time=self.start_time,
            end_time=self.end_time,
            total_voters=self.total_voters,
            total_candidates=self.total_candidates,
            votes_cast=self.total_votes_cast,
            results_available=self.results_published,
        )

    @logged
    def get_results(self) -> ElectionResults:
        if not self.results_published:
            raise NotAvailable("Results not yet published")
        winner = self._candidates.get(self.winning_candidate_id)
        return ElectionResults(
            winner=self.winning_candidate_id,
            winner_name=winner.name if winner else "",
            winner_party=winner.party if winner else "",
            winner_votes=winner.vote_count if winner else 0,
            total_votes=self.total_votes_cast,
        )

    # ------------------------------------------------------------------
    # snapshot

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "commissioner": self.commissioner,
            "phase": int(self.phase),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "total_votes_cast": self.total_votes_cast,
            "results_published": self.results_published,
            "winning_candidate_id": self.winning_candidate_id,
            "voters": [v.model_dump() for v in self._voters.values()],
            "candidates": [c.model_dump() for c in self._candidates.values()],
            "events": [e.model_dump() for e in self.events],
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any], clock: Optional[Callable[[], int]] = None) -> "ElectionEngine":
        engine = cls(doc["name"], doc["commissioner"], doc["start_time"], doc["end_time"], clock=clock)
        engine.phase = Phase(doc["phase"])
        engine.total_votes_cast = doc.get("total_votes_cast", 0)
        engine.results_published = doc.get("results_published", False)
        engine.winning_candidate_id = doc.get("winning_candidate_id", NO_WINNER)
        for item in doc.get("voters", []):
            voter = Voter(**item)
            engine._voters[voter.address] = voter
            engine._national_ids[voter.national_id] = voter.address
        for item in sorted(doc.get("candidates", []), key=lambda c: c["id"]):
            candidate = Candidate(**item)
            engine._candidates[candidate.id] = candidate
        engine.events = [EventRecord(**e) for e in doc.get("events", [])]
        return engine
