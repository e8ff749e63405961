# agora/governance/ledger.py

# Vote ledger: toggle / switch / remove semantics for the three vote kinds

import logging

from agora.governance.errors import DuplicateRecord, InvalidVote, NotFound, StoreUnavailable
from agora.governance.locks import KeyedLocks
from agora.governance.ports import (
    AdminVoteRepository,
    ReferendumRepository,
    SuggestionRepository,
    UserRepository,
    VoteRepository,
)
from agora.governance.records import CastResult, VoteKind, parse_choice, parse_kind

logger = logging.getLogger(__name__)

# Attempts before giving up on a key that keeps colliding with concurrent writers
MAX_CAST_ATTEMPTS = 3


class VoteLedger:
    def __init__(self, votes: VoteRepository, admin_votes: AdminVoteRepository, users: UserRepository,
                 suggestions: SuggestionRepository, referenda: ReferendumRepository, locks=None):
        self.votes = votes
        self.admin_votes = admin_votes
        self.users = users
        self.suggestions = suggestions
        self.referenda = referenda
        self.locks = locks or KeyedLocks()

    def cast(self, voter_id, target_id, kind, choice=None) -> CastResult:
        """Record, switch or withdraw a vote.

        Casting the current choice again removes it, casting a different choice
        replaces it. Validation happens before any write.
        """
        kind = parse_kind(kind)
        choice = parse_choice(kind, choice)
        if kind is VoteKind.ADMIN and voter_id == target_id:
            raise InvalidVote("Users cannot vote for themselves as admin")

        self._require_target(voter_id, target_id, kind)

        # Admin ballots are one per voter whatever the candidate
        lock_key = (kind, voter_id) if kind is VoteKind.ADMIN else (kind, voter_id, target_id)
        with self.locks.hold(lock_key):
            for attempt in range(1, MAX_CAST_ATTEMPTS + 1):
                try:
                    if kind is VoteKind.ADMIN:
                        return self._cast_admin(voter_id, target_id)
                    return self._cast_ballot(voter_id, target_id, kind, choice)
                except DuplicateRecord:
                    # Another process inserted first; re-read and apply the rule again
                    logger.warning("Concurrent %s vote by user %s on %s (attempt %d)",
                                   kind.value, voter_id, target_id, attempt)
            raise StoreUnavailable("Vote could not be recorded due to concurrent updates")

    def _require_target(self, voter_id, target_id, kind):
        if self.users.get(voter_id) is None:
            raise NotFound("user", voter_id)
        if kind is VoteKind.ADMIN:
            if self.users.get(target_id) is None:
                raise NotFound("user", target_id)
        elif kind is VoteKind.SUGGESTION:
            if self.suggestions.get(target_id) is None:
                raise NotFound("suggestion", target_id)
        else:
            referendum = self.referenda.get(target_id)
            if referendum is None:
                raise NotFound("referendum", target_id)
            if not referendum.is_active:
                raise InvalidVote(f"Referendum {target_id} is closed ({referendum.status.value})")

    def _cast_ballot(self, voter_id, target_id, kind, choice):
        current = self.votes.find(voter_id, target_id, kind)
        if current is None:
            self.votes.insert(voter_id, target_id, kind, choice)
            return CastResult.INSERTED
        if current.choice is choice:
            self.votes.delete(current.id)
            return CastResult.REMOVED
        self.votes.update_choice(current.id, choice)
        return CastResult.SWITCHED

    def _cast_admin(self, voter_id, candidate_id):
        current = self.admin_votes.find_by_voter(voter_id)
        if current is None:
            self.admin_votes.insert(voter_id, candidate_id)
            return CastResult.INSERTED
        self.admin_votes.delete(current.id)
        if current.candidate_id == candidate_id:
            return CastResult.REMOVED
        self.admin_votes.insert(voter_id, candidate_id)
        return CastResult.SWITCHED
