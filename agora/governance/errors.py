# agora/governance/errors.py

# Error taxonomy for the governance engine. HTTP status mapping lives in routes.py


class GovernanceError(Exception):
    """Base class for every error raised by the governance engine."""


class InvalidVote(GovernanceError, ValueError):
    """Self-vote, malformed choice or a vote on a closed referendum."""


class NotFound(GovernanceError):
    def __init__(self, entity, entity_id):
        super().__init__(f"{entity} {entity_id} does not exist")
        self.entity = entity
        self.entity_id = entity_id


class Unauthorized(GovernanceError):
    pass


class Forbidden(GovernanceError):
    pass


class Conflict(GovernanceError):
    pass


class StoreUnavailable(GovernanceError):
    """Transient failure talking to the relational store."""


class DuplicateRecord(GovernanceError):
    """A unique constraint rejected an insert. Never surfaced to callers."""
