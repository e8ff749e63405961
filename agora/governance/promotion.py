# agora/governance/promotion.py

# Suggestion -> referendum promotion once community support reaches quorum

import logging

from agora.governance.errors import DuplicateRecord, NotFound
from agora.governance.locks import KeyedLocks
from agora.governance.notification_gate import REFERENDUM_APPROVED
from agora.governance.records import Choice, VoteKind, utcnow
from agora.governance.tally import promotion_threshold

logger = logging.getLogger(__name__)


class PromotionRule:
    def __init__(self, suggestions, referenda, users, tally_engine, gate, notifier,
                 audit_logger=None, ratio_percent=5, clock=utcnow):
        self.suggestions = suggestions
        self.referenda = referenda
        self.users = users
        self.tally_engine = tally_engine
        self.gate = gate
        self.notifier = notifier
        self.audit_logger = audit_logger
        self.ratio_percent = ratio_percent
        self.clock = clock
        self._locks = KeyedLocks()

    def required_support(self) -> int:
        return promotion_threshold(self.users.count(), self.ratio_percent)

    def existing_referendum(self, suggestion):
        """Referendum already created for this suggestion, if any.

        Rows created before the explicit link existed are matched by title.
        """
        referendum = self.referenda.find_by_suggestion(suggestion.id)
        if referendum is None:
            referendum = self.referenda.find_by_title(suggestion.title)
        return referendum

    def maybe_promote(self, suggestion_id):
        """Create the referendum for a suggestion that reached quorum.

        Safe to call repeatedly: returns the new referendum only on the call
        that created it, None otherwise.
        """
        suggestion = self.suggestions.get(suggestion_id)
        if suggestion is None:
            raise NotFound("suggestion", suggestion_id)

        support = self.tally_engine.tally(suggestion.id, VoteKind.SUGGESTION).count(Choice.SUPPORT)
        required = self.required_support()
        if support < required:
            return None

        with self._locks.hold(suggestion.id):
            if self.existing_referendum(suggestion) is not None:
                return None
            try:
                referendum = self.referenda.create(
                    title=suggestion.title,
                    description=suggestion.description,
                    created_at=self.clock(),
                    promoted_from_suggestion_id=suggestion.id,
                )
            except DuplicateRecord:
                logger.info("Suggestion %s was promoted concurrently", suggestion.id)
                return None

        logger.info("Suggestion %s promoted to referendum %s (%d/%d supporters)",
                    suggestion.id, referendum.id, support, required)
        if self.audit_logger is not None:
            self.audit_logger.log_event("referendum_created", {
                "referendum_id": referendum.id,
                "suggestion_id": suggestion.id,
                "support": support,
                "required": required,
            })
        if self.gate.claim(REFERENDUM_APPROVED, referendum.id):
            self.notifier.referendum_approved(referendum)
        return referendum

    def sweep(self):
        """Re-run promotion over every suggestion; returns (promoted, errors)."""
        promoted, errors = [], 0
        for suggestion in self.suggestions.list_all():
            try:
                referendum = self.maybe_promote(suggestion.id)
            except Exception:
                errors += 1
                logger.exception("Promotion check failed for suggestion %s", suggestion.id)
                continue
            if referendum is not None:
                promoted.append(referendum.id)
        return promoted, errors
