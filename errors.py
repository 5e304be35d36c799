"""
Error taxonomy of the election engine.

Every rejected operation raises exactly one of these, with no state changed.
`kind` is the stable machine-readable name, `reason` the human-readable text.
"""


class ElectionError(Exception):
    kind = "ElectionError"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_dict(self):
        return {"error": self.kind, "detail": self.reason}


class InvalidParameter(ElectionError):
    kind = "InvalidParameter"


class Unauthorized(ElectionError):
    kind = "Unauthorized"


class WrongPhase(ElectionError):
    kind = "WrongPhase"


class AlreadyRegistered(ElectionError):
    kind = "AlreadyRegistered"


class DuplicateNationalId(ElectionError):
    kind = "DuplicateNationalId"


class AlreadyVoted(ElectionError):
    kind = "AlreadyVoted"


class NotFound(ElectionError):
    kind = "NotFound"


class InvalidCandidate(NotFound):
    kind = "InvalidCandidate"


class PreconditionFailed(ElectionError):
    kind = "PreconditionFailed"


class NotAvailable(ElectionError):
    kind = "NotAvailable"
