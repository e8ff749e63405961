# agora/governance/resolver.py

# Two-thirds resolution of referenda, vote-triggered and periodic, plus the
# age-out purge of referenda that never reached a majority.

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from agora.governance.errors import NotFound
from agora.governance.notification_gate import REFERENDUM_PASSED
from agora.governance.ports import ReferendumRepository, SuggestionRepository, VoteRepository
from agora.governance.records import Choice, ReferendumStatus, VoteKind, utcnow
from agora.governance.tally import two_thirds

logger = logging.getLogger(__name__)

DEFAULT_MIN_AGE = timedelta(hours=24)
DEFAULT_PURGE_AFTER = timedelta(weeks=2)


def majority_outcome(yes_votes: int, no_votes: int) -> Optional[ReferendumStatus]:
    """Terminal status reached by a two-thirds majority, or None.

    Zero turnout never resolves.
    """
    total = yes_votes + no_votes
    if total <= 0:
        return None
    required = two_thirds(total)
    if yes_votes >= required:
        return ReferendumStatus.PASSED
    if no_votes >= required:
        return ReferendumStatus.FAILED
    return None


@dataclass
class SweepReport:
    passed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    purged: List[int] = field(default_factory=list)
    promoted: List[int] = field(default_factory=list)
    errors: int = 0

    def to_dict(self):
        return {
            "passed": list(self.passed),
            "failed": list(self.failed),
            "purged": list(self.purged),
            "promoted": list(self.promoted),
            "errors": self.errors,
        }


class ReferendumResolver:
    def __init__(self, referenda: ReferendumRepository, votes: VoteRepository, tally_engine, gate, notifier,
                 audit_logger=None, min_age=DEFAULT_MIN_AGE, purge_after=DEFAULT_PURGE_AFTER, clock=utcnow,
                 suggestions: Optional[SuggestionRepository] = None):
        self.referenda = referenda
        self.votes = votes
        self.tally_engine = tally_engine
        self.gate = gate
        self.notifier = notifier
        self.audit_logger = audit_logger
        self.min_age = min_age
        self.purge_after = purge_after
        self.clock = clock
        self.suggestions = suggestions

    def resolve(self, referendum_id) -> ReferendumStatus:
        referendum = self.referenda.get(referendum_id)
        if referendum is None:
            raise NotFound("referendum", referendum_id)
        return self._evaluate(referendum)

    def _evaluate(self, referendum) -> ReferendumStatus:
        if not referendum.is_active:
            return referendum.status

        tally = self.tally_engine.tally(referendum.id, VoteKind.REFERENDUM)
        yes_votes, no_votes = tally.count(Choice.YES), tally.count(Choice.NO)
        if (yes_votes, no_votes) != (referendum.yes_votes, referendum.no_votes):
            self.referenda.update_counts(referendum.id, yes_votes, no_votes)

        outcome = majority_outcome(yes_votes, no_votes)
        if outcome is None:
            return ReferendumStatus.ACTIVE

        if not self.referenda.transition(referendum.id, outcome, self.clock()):
            # Someone else closed it between our read and write
            current = self.referenda.get(referendum.id)
            return current.status if current is not None else outcome

        logger.info("Referendum %s %s (yes=%d, no=%d)", referendum.id, outcome.value, yes_votes, no_votes)
        if self.audit_logger is not None:
            self.audit_logger.log_event("referendum_" + outcome.value, {
                "referendum_id": referendum.id,
                "yes_votes": yes_votes,
                "no_votes": no_votes,
            })
        if outcome is ReferendumStatus.PASSED:
            self._announce_passed(referendum, yes_votes, no_votes)
        return outcome

    def _announce_passed(self, referendum, yes_votes, no_votes):
        if self.gate.claim(REFERENDUM_PASSED, referendum.id):
            self.notifier.referendum_passed(referendum, yes_votes, no_votes)
        else:
            logger.debug("Referendum %s already announced", referendum.id)

    def retire_source(self, referendum) -> Optional[int]:
        """Delete the suggestion a referendum was promoted from, with its support.

        Without this the suggestion would be promoted again by the next sweep
        once its referendum is gone. Unlinked rows are matched by title.
        """
        if self.suggestions is None:
            return None
        if referendum.promoted_from_suggestion_id is not None:
            source = self.suggestions.get(referendum.promoted_from_suggestion_id)
        else:
            source = self.suggestions.find_by_title(referendum.title)
        if source is None:
            return None
        self.votes.delete_for(source.id, VoteKind.SUGGESTION)
        self.suggestions.delete(source.id)
        logger.info("Retired suggestion %s with referendum %s", source.id, referendum.id)
        return source.id

    def remove(self, referendum) -> int:
        """Delete a referendum, its ballots and its source suggestion."""
        removed_votes = self.votes.delete_for(referendum.id, VoteKind.REFERENDUM)
        self.referenda.delete(referendum.id)
        self.retire_source(referendum)
        return removed_votes

    def purge(self, referendum_id) -> None:
        referendum = self.referenda.get(referendum_id)
        if referendum is None:
            raise NotFound("referendum", referendum_id)
        removed_votes = self.remove(referendum)
        logger.info("Purged unresolved referendum %s (%d votes)", referendum_id, removed_votes)
        if self.audit_logger is not None:
            self.audit_logger.log_event("referendum_purged", {
                "referendum_id": referendum_id,
                "votes_removed": removed_votes,
            })

    def sweep_active(self, report: Optional[SweepReport] = None) -> SweepReport:
        """Time-triggered pass over every active referendum.

        Each referendum is evaluated in isolation so one failure does not stop
        the rest.
        """
        report = report or SweepReport()
        now = self.clock()
        for referendum in self.referenda.list_active():
            try:
                age = now - referendum.created_at
                status = ReferendumStatus.ACTIVE
                if age >= self.min_age:
                    status = self._evaluate(referendum)
                if status is ReferendumStatus.PASSED:
                    report.passed.append(referendum.id)
                elif status is ReferendumStatus.FAILED:
                    report.failed.append(referendum.id)
                elif age >= self.purge_after:
                    self.purge(referendum.id)
                    report.purged.append(referendum.id)
            except Exception:
                report.errors += 1
                logger.exception("Resolution sweep failed for referendum %s", referendum.id)
        return report
