# agora/governance/service.py

# Entry point for everything that changes governance state. Routes and the
# sweeper call into this module; it fans out to the ledger, the rules and the
# realtime broadcaster.

import logging
from typing import Dict, List

from agora.governance.errors import Conflict, Forbidden, NotFound, Unauthorized
from agora.governance.locks import KeyedLocks
from agora.governance.records import (
    Choice,
    VoteKind,
    parse_kind,
    utcnow,
)
from agora.governance.resolver import SweepReport

logger = logging.getLogger(__name__)

TOPIC_SUGGESTIONS = "suggestions updated"
TOPIC_REFERENDA = "referenda updated"
TOPIC_ELECTIONS = "elections updated"


def require_identity(identity) -> int:
    if identity is None or identity == "":
        raise Unauthorized("Authentication required")
    try:
        return int(identity)
    except (TypeError, ValueError):
        raise Unauthorized("Malformed identity")


class GovernanceService:
    def __init__(self, users, suggestions, referenda, votes, ledger, tally_engine,
                 promotion, resolver, leaderboard, broadcaster, gate, audit_logger=None, clock=utcnow):
        self.users = users
        self.suggestions = suggestions
        self.referenda = referenda
        self.votes = votes
        self.ledger = ledger
        self.tally_engine = tally_engine
        self.promotion = promotion
        self.resolver = resolver
        self.leaderboard = leaderboard
        self.broadcaster = broadcaster
        self.gate = gate
        self.audit_logger = audit_logger
        self.clock = clock
        self._title_locks = KeyedLocks()

    def _broadcast(self, topic, payload=None):
        try:
            self.broadcaster.broadcast(topic, payload or {})
        except Exception:
            logger.exception("Broadcast of %r failed", topic)

    def _audit(self, event_type, data, user_id=None):
        if self.audit_logger is not None:
            self.audit_logger.log_event(event_type, data, user_id=user_id)

    # -- voting ---------------------------------------------------------------

    def cast_vote(self, identity, target_id, kind, choice=None) -> Dict:
        voter_id = require_identity(identity)
        kind = parse_kind(kind)
        target_id = int(target_id)

        if kind is VoteKind.ADMIN:
            self.leaderboard.prime()
        applied = self.ledger.cast(voter_id, target_id, kind, choice)
        self._audit("vote_cast", {
            "kind": kind.value,
            "target_id": target_id,
            "choice": getattr(choice, "value", choice),
            "applied": applied.value,
        }, user_id=voter_id)

        result = {"applied": applied.value}
        if kind is VoteKind.SUGGESTION:
            referendum = self.promotion.maybe_promote(target_id)
            result["promoted_referendum_id"] = referendum.id if referendum else None
            self._broadcast(TOPIC_SUGGESTIONS, {"suggestion_id": target_id})
            if referendum is not None:
                self._broadcast(TOPIC_REFERENDA, {"referendum_id": referendum.id})
        elif kind is VoteKind.REFERENDUM:
            result["status"] = self.resolver.resolve(target_id).value
            self._broadcast(TOPIC_REFERENDA, {"referendum_id": target_id})
        else:
            result["leaders_changed"] = self.leaderboard.refresh()
            self._broadcast(TOPIC_ELECTIONS, {"candidate_id": target_id})

        result["tally"] = self.tally_engine.tally(target_id, kind).to_dict()
        return result

    # -- suggestions ----------------------------------------------------------

    def _promoted_markers(self):
        linked, titles = set(), set()
        for referendum in self.referenda.list_all():
            titles.add(referendum.title)
            if referendum.promoted_from_suggestion_id is not None:
                linked.add(referendum.promoted_from_suggestion_id)
        return linked, titles

    def create_suggestion(self, identity, title, description):
        author_id = require_identity(identity)
        if self.users.get(author_id) is None:
            raise NotFound("user", author_id)
        # Check and insert under one lock per title
        with self._title_locks.hold(title):
            linked, titles = self._promoted_markers()
            if title in titles:
                raise Conflict(f"A referendum titled {title!r} already exists")
            existing = self.suggestions.find_by_title(title)
            if existing is not None and existing.id not in linked:
                raise Conflict(f"A suggestion titled {title!r} already exists")
            suggestion = self.suggestions.create(author_id, title, description, self.clock())
        self._audit("suggestion_created", {"suggestion_id": suggestion.id, "title": title}, user_id=author_id)
        self._broadcast(TOPIC_SUGGESTIONS, {"suggestion_id": suggestion.id})
        return suggestion

    def delete_suggestion(self, identity, suggestion_id):
        user_id = require_identity(identity)
        suggestion = self.suggestions.get(suggestion_id)
        if suggestion is None:
            raise NotFound("suggestion", suggestion_id)
        if suggestion.author_id != user_id and not self.leaderboard.is_admin(user_id):
            raise Forbidden("Only the author or an admin may delete this suggestion")
        self.votes.delete_for(suggestion.id, VoteKind.SUGGESTION)
        self.suggestions.delete(suggestion.id)
        self._audit("suggestion_deleted", {"suggestion_id": suggestion.id}, user_id=user_id)
        self._broadcast(TOPIC_SUGGESTIONS, {"suggestion_id": suggestion.id})

    def list_active_suggestions(self) -> List[Dict]:
        linked, titles = self._promoted_markers()
        suggestions = [
            s for s in self.suggestions.list_all()
            if s.id not in linked and s.title not in titles
        ]
        authors = self.users.display_names({s.author_id for s in suggestions})
        listing = []
        for s in suggestions:
            tally = self.tally_engine.tally(s.id, VoteKind.SUGGESTION)
            listing.append({
                "id": s.id,
                "title": s.title,
                "description": s.description,
                "author_id": s.author_id,
                "author": authors.get(s.author_id, "Anonymous"),
                "created_at": s.created_at.isoformat(),
                "vote_count": tally.count(Choice.SUPPORT),
                "voters": tally.voters[Choice.SUPPORT.value],
            })
        return listing

    # -- referenda ------------------------------------------------------------

    def list_referenda(self) -> List[Dict]:
        listing = []
        for r in self.referenda.list_all():
            tally = self.tally_engine.tally(r.id, VoteKind.REFERENDUM)
            listing.append({
                "id": r.id,
                "title": r.title,
                "description": r.description,
                "status": r.status.value,
                "yes_votes": tally.count(Choice.YES),
                "no_votes": tally.count(Choice.NO),
                "yes_voters": tally.voters[Choice.YES.value],
                "no_voters": tally.voters[Choice.NO.value],
                "created_at": r.created_at.isoformat(),
                "ended_at": r.ended_at.isoformat() if r.ended_at else None,
                "promoted_from_suggestion_id": r.promoted_from_suggestion_id,
            })
        return listing

    def delete_referendum(self, identity, referendum_id):
        user_id = require_identity(identity)
        if not self.leaderboard.is_admin(user_id):
            raise Forbidden("Only admins may delete referenda")
        referendum = self.referenda.get(referendum_id)
        if referendum is None:
            raise NotFound("referendum", referendum_id)
        self.resolver.remove(referendum)
        self._audit("referendum_deleted", {"referendum_id": referendum_id}, user_id=user_id)
        self._broadcast(TOPIC_REFERENDA, {"referendum_id": referendum_id})
        self._broadcast(TOPIC_SUGGESTIONS, {})

    # -- elections ------------------------------------------------------------

    def list_candidates(self) -> List[Dict]:
        admins = {user.id for user in self.leaderboard.current_admins()}
        return [
            {
                "id": user.id,
                "username": user.username,
                "created_at": user.created_at.isoformat() if user.created_at else None,
                "admin_votes": votes,
                "is_admin": user.id in admins,
            }
            for user, votes in self.leaderboard.standings()
        ]

    # -- periodic -------------------------------------------------------------

    def run_sweep(self) -> SweepReport:
        report = SweepReport()
        promoted, errors = self.promotion.sweep()
        report.promoted.extend(promoted)
        report.errors += errors
        self.resolver.sweep_active(report)
        self.gate.prune()

        if report.promoted:
            self._broadcast(TOPIC_SUGGESTIONS, {})
        if report.promoted or report.passed or report.failed or report.purged:
            self._broadcast(TOPIC_REFERENDA, {})
        logger.info("Sweep finished: %s", report.to_dict())
        return report
