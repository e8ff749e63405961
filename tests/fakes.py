# In-memory stand-ins for the repositories, sender, broadcaster and clock

import dataclasses
import itertools
from datetime import datetime, timedelta

from agora.governance.errors import DuplicateRecord
from agora.governance.leaderboard import AdminLeaderboard
from agora.governance.ledger import VoteLedger
from agora.governance.notification_gate import NotificationGate
from agora.governance.promotion import PromotionRule
from agora.governance.records import (
    AdminVoteRecord,
    ReferendumRecord,
    ReferendumStatus,
    SuggestionRecord,
    UserRecord,
    VoteRecord,
)
from agora.governance.resolver import ReferendumResolver
from agora.governance.service import GovernanceService
from agora.governance.tally import TallyEngine

START = datetime(2025, 10, 23, 12, 0, 0)


class FrozenClock:
    def __init__(self, start=START):
        self.now = start

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)

    def __call__(self):
        return self.now


class FakeUsers:
    def __init__(self, clock):
        self.clock = clock
        self.rows = {}
        self._ids = itertools.count(1)

    def add(self, username, created_at=None):
        user_id = next(self._ids)
        user = UserRecord(id=user_id, username=username, email=f"{username}@example.com",
                          email_verified=True, created_at=created_at or self.clock())
        self.rows[user_id] = user
        return user

    def get(self, user_id):
        return self.rows.get(user_id)

    def count(self):
        return len(self.rows)

    def list_all(self):
        return sorted(self.rows.values(), key=lambda u: (u.created_at, u.id))

    def display_names(self, user_ids):
        return {i: self.rows[i].username for i in user_ids if i in self.rows}

    def emails(self):
        return [u.email for u in self.rows.values()]


class FakeSuggestions:
    def __init__(self):
        self.rows = {}
        self._ids = itertools.count(1)

    def get(self, suggestion_id):
        return self.rows.get(suggestion_id)

    def list_all(self):
        return sorted(self.rows.values(), key=lambda s: (s.created_at, s.id), reverse=True)

    def find_by_title(self, title):
        matches = [s for s in self.rows.values() if s.title == title]
        return min(matches, key=lambda s: s.id) if matches else None

    def create(self, author_id, title, description, created_at):
        row = SuggestionRecord(id=next(self._ids), author_id=author_id, title=title,
                               description=description, created_at=created_at)
        self.rows[row.id] = row
        return row

    def delete(self, suggestion_id):
        self.rows.pop(suggestion_id, None)


class FakeReferenda:
    def __init__(self):
        self.rows = {}
        self._ids = itertools.count(1)
        self.transitions = []

    def get(self, referendum_id):
        return self.rows.get(referendum_id)

    def list_all(self):
        return sorted(self.rows.values(), key=lambda r: (r.created_at, r.id), reverse=True)

    def list_active(self):
        return sorted((r for r in self.rows.values() if r.is_active), key=lambda r: (r.created_at, r.id))

    def find_by_title(self, title):
        matches = [r for r in self.rows.values() if r.title == title]
        return min(matches, key=lambda r: r.id) if matches else None

    def find_by_suggestion(self, suggestion_id):
        for r in self.rows.values():
            if r.promoted_from_suggestion_id == suggestion_id:
                return r
        return None

    def create(self, title, description, created_at, promoted_from_suggestion_id=None):
        if promoted_from_suggestion_id is not None and self.find_by_suggestion(promoted_from_suggestion_id):
            raise DuplicateRecord("referenda.promoted_from_suggestion_id")
        row = ReferendumRecord(id=next(self._ids), title=title, description=description,
                               status=ReferendumStatus.ACTIVE, created_at=created_at,
                               promoted_from_suggestion_id=promoted_from_suggestion_id)
        self.rows[row.id] = row
        return row

    def update_counts(self, referendum_id, yes_votes, no_votes):
        if referendum_id in self.rows:
            self.rows[referendum_id] = dataclasses.replace(
                self.rows[referendum_id], yes_votes=yes_votes, no_votes=no_votes)

    def transition(self, referendum_id, status, ended_at):
        row = self.rows.get(referendum_id)
        if row is None or not row.is_active:
            return False
        self.rows[referendum_id] = dataclasses.replace(row, status=status, ended_at=ended_at)
        self.transitions.append((referendum_id, status))
        return True

    def delete(self, referendum_id):
        self.rows.pop(referendum_id, None)


class FakeVotes:
    def __init__(self):
        self.rows = {}
        self._ids = itertools.count(1)

    def find(self, voter_id, target_id, kind):
        for v in self.rows.values():
            if (v.voter_id, v.target_id, v.kind) == (voter_id, target_id, kind):
                return v
        return None

    def insert(self, voter_id, target_id, kind, choice):
        if self.find(voter_id, target_id, kind) is not None:
            raise DuplicateRecord("votes")
        row = VoteRecord(id=next(self._ids), voter_id=voter_id, target_id=target_id, kind=kind, choice=choice)
        self.rows[row.id] = row
        return row

    def update_choice(self, vote_id, choice):
        self.rows[vote_id] = dataclasses.replace(self.rows[vote_id], choice=choice)

    def delete(self, vote_id):
        self.rows.pop(vote_id, None)

    def list_for(self, target_id, kind):
        return [v for v in self.rows.values() if v.target_id == target_id and v.kind is kind]

    def delete_for(self, target_id, kind):
        doomed = [v.id for v in self.list_for(target_id, kind)]
        for vote_id in doomed:
            del self.rows[vote_id]
        return len(doomed)


class FakeAdminVotes:
    def __init__(self):
        self.rows = {}
        self._ids = itertools.count(1)

    def find_by_voter(self, voter_id):
        for v in self.rows.values():
            if v.voter_id == voter_id:
                return v
        return None

    def insert(self, voter_id, candidate_id):
        if self.find_by_voter(voter_id) is not None:
            raise DuplicateRecord("admin_votes.voter_id")
        row = AdminVoteRecord(id=next(self._ids), voter_id=voter_id, candidate_id=candidate_id)
        self.rows[row.id] = row
        return row

    def delete(self, vote_id):
        self.rows.pop(vote_id, None)

    def list_for(self, candidate_id):
        return [v for v in self.rows.values() if v.candidate_id == candidate_id]

    def list_all(self):
        return list(self.rows.values())


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def referendum_approved(self, referendum):
        self.calls.append(("referendum_approved", referendum.id))

    def referendum_passed(self, referendum, yes_votes, no_votes):
        self.calls.append(("referendum_passed", referendum.id, yes_votes, no_votes))

    def admin_leaders_changed(self, leaders):
        self.calls.append(("admin_leaders_changed", tuple(sorted(u.id for u in leaders))))

    def of(self, name):
        return [c for c in self.calls if c[0] == name]


class RecordingSender:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, recipients, subject, body):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append((list(recipients), subject, body))


class RecordingBroadcaster:
    def __init__(self):
        self.events = []

    def broadcast(self, topic, payload=None):
        self.events.append((topic, payload or {}))
        return 1

    def topics(self):
        return [topic for topic, _ in self.events]


class RecordingAudit:
    def __init__(self):
        self.events = []

    def log_event(self, event_type, data, user_id=None):
        self.events.append((event_type, data, user_id))

    def types(self):
        return [e[0] for e in self.events]


class Community:
    """The governance engine wired over in-memory stores."""

    def __init__(self, clock=None, ratio_percent=5, seats=3):
        self.clock = clock or FrozenClock()
        self.users = FakeUsers(self.clock)
        self.suggestions = FakeSuggestions()
        self.referenda = FakeReferenda()
        self.votes = FakeVotes()
        self.admin_votes = FakeAdminVotes()
        self.notifier = RecordingNotifier()
        self.broadcaster = RecordingBroadcaster()
        self.audit = RecordingAudit()
        self.gate = NotificationGate(clock=self.clock)

        self.tally_engine = TallyEngine(self.votes, self.admin_votes, self.users)
        self.ledger = VoteLedger(self.votes, self.admin_votes, self.users, self.suggestions, self.referenda)
        self.promotion = PromotionRule(self.suggestions, self.referenda, self.users, self.tally_engine,
                                       self.gate, self.notifier, audit_logger=self.audit,
                                       ratio_percent=ratio_percent, clock=self.clock)
        self.resolver = ReferendumResolver(self.referenda, self.votes, self.tally_engine, self.gate,
                                           self.notifier, audit_logger=self.audit, clock=self.clock,
                                           suggestions=self.suggestions)
        self.leaderboard = AdminLeaderboard(self.users, self.tally_engine, self.gate, self.notifier,
                                            seats=seats)
        self.service = GovernanceService(self.users, self.suggestions, self.referenda, self.votes,
                                         self.ledger, self.tally_engine, self.promotion, self.resolver,
                                         self.leaderboard, self.broadcaster, self.gate,
                                         audit_logger=self.audit, clock=self.clock)

    def add_users(self, count, prefix="member"):
        users = []
        for i in range(count):
            users.append(self.users.add(f"{prefix}{i + 1}"))
            self.clock.advance(seconds=1)
        return users

    def add_suggestion(self, author, title="More benches", description="In the park"):
        return self.suggestions.create(author.id, title, description, self.clock())

    def add_referendum(self, title="Longer opening hours", description=""):
        return self.referenda.create(title, description, self.clock())
