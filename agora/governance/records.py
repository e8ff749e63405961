# agora/governance/records.py

# Plain records passed between the repositories and the governance engine

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from agora.governance.errors import InvalidVote


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the database columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VoteKind(Enum):
    ADMIN = "admin"
    SUGGESTION = "suggestion"
    REFERENDUM = "referendum"


class Choice(Enum):
    SUPPORT = "support"
    YES = "yes"
    NO = "no"


class ReferendumStatus(Enum):
    ACTIVE = "active"
    PASSED = "passed"
    FAILED = "failed"


class CastResult(Enum):
    INSERTED = "inserted"
    SWITCHED = "switched"
    REMOVED = "removed"


# Admin ballots carry no choice; their tally is keyed under this name
ADMIN_TALLY_KEY = "admin"

VALID_CHOICES = {
    VoteKind.SUGGESTION: (Choice.SUPPORT,),
    VoteKind.REFERENDUM: (Choice.YES, Choice.NO),
}


def parse_choice(kind: VoteKind, raw) -> Optional[Choice]:
    """Validate a raw choice value for a vote kind.

    Admin votes ignore the choice entirely and return None.
    """
    if kind is VoteKind.ADMIN:
        return None
    if isinstance(raw, Choice):
        choice = raw
    else:
        try:
            choice = Choice(str(raw).strip().lower())
        except ValueError:
            raise InvalidVote(f"Unknown vote choice: {raw!r}")
    if choice not in VALID_CHOICES[kind]:
        raise InvalidVote(f"Choice {choice.value!r} is not valid for a {kind.value} vote")
    return choice


def parse_kind(raw) -> VoteKind:
    if isinstance(raw, VoteKind):
        return raw
    try:
        return VoteKind(str(raw).strip().lower())
    except ValueError:
        raise InvalidVote(f"Unknown vote kind: {raw!r}")


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    email: str
    email_verified: bool = False
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class SuggestionRecord:
    id: int
    author_id: int
    title: str
    description: str
    created_at: datetime


@dataclass(frozen=True)
class ReferendumRecord:
    id: int
    title: str
    description: str
    status: ReferendumStatus
    created_at: datetime
    yes_votes: int = 0
    no_votes: int = 0
    ended_at: Optional[datetime] = None
    promoted_from_suggestion_id: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status is ReferendumStatus.ACTIVE


@dataclass(frozen=True)
class VoteRecord:
    id: int
    voter_id: int
    target_id: int
    kind: VoteKind
    choice: Choice


@dataclass(frozen=True)
class AdminVoteRecord:
    id: int
    voter_id: int
    candidate_id: int


@dataclass
class Tally:
    counts: Dict[str, int] = field(default_factory=dict)
    voters: Dict[str, List[str]] = field(default_factory=dict)

    def count(self, key) -> int:
        if isinstance(key, Choice):
            key = key.value
        return self.counts.get(key, 0)

    def to_dict(self) -> Dict:
        return {"counts": dict(self.counts), "voters": {k: list(v) for k, v in self.voters.items()}}
