# agora/governance/leaderboard.py

import logging
import threading
from datetime import datetime
from typing import List, Optional, Tuple

from agora.governance.notification_gate import ADMIN_LEADERS, leaders_key

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_SEATS = 3


class AdminLeaderboard:
    """Ranks members by admin votes; the top seats hold the admin role."""

    def __init__(self, users, tally_engine, gate, notifier, seats=DEFAULT_ADMIN_SEATS):
        self.users = users
        self.tally_engine = tally_engine
        self.gate = gate
        self.notifier = notifier
        self.seats = seats
        self._lock = threading.Lock()
        self._last_seen: Optional[Tuple[int, ...]] = None

    def standings(self) -> List[Tuple[object, int]]:
        """(user, admin votes) for every member, best first.

        Ties go to the earlier registration, then the lower id.
        """
        counts = self.tally_engine.admin_standings()
        ranked = [(user, counts.get(user.id, 0)) for user in self.users.list_all()]
        ranked.sort(key=lambda pair: (-pair[1], pair[0].created_at or datetime.min, pair[0].id))
        return ranked

    def current_admins(self):
        return [user for user, _ in self.standings()[:self.seats]]

    def is_admin(self, user_id) -> bool:
        return any(user.id == user_id for user in self.current_admins())

    def refresh(self) -> bool:
        """Recompute the admin team; True when a change notification was sent."""
        admins = self.current_admins()
        key = leaders_key(user.id for user in admins)
        with self._lock:
            previous, self._last_seen = self._last_seen, key
        if previous is None or previous == key:
            # First observation after start-up only seeds the memory
            return False
        if not self.gate.claim(ADMIN_LEADERS, key):
            logger.info("Admin team %s already announced recently", list(key))
            return False
        logger.info("Admin team changed from %s to %s", list(previous), list(key))
        self.notifier.admin_leaders_changed(admins)
        return True

    def prime(self, force=False) -> None:
        """Seed the last observed composition without notifying."""
        with self._lock:
            if self._last_seen is not None and not force:
                return
        key = leaders_key(user.id for user in self.current_admins())
        with self._lock:
            if self._last_seen is None or force:
                self._last_seen = key
