# agora/governance/notification_gate.py

# Process-local deduplication of outbound notifications.
# Lost on restart, which can only cause a redundant email.

import threading
from datetime import timedelta
from typing import Dict, Hashable, Optional, Tuple

from agora.governance.records import utcnow

REFERENDUM_PASSED = "referendum_passed"
REFERENDUM_APPROVED = "referendum_approved"
ADMIN_LEADERS = "admin_leaders"

DEFAULT_ADMIN_COOLDOWN = timedelta(minutes=5)


class NotificationGate:
    """Keyed expiring memory of what has already been announced.

    A kind with a cooldown of None remembers keys forever; otherwise a key may
    be announced again once the cooldown has elapsed.
    """

    def __init__(self, cooldowns: Optional[Dict[str, Optional[timedelta]]] = None, clock=utcnow):
        self.cooldowns = {
            REFERENDUM_PASSED: None,
            REFERENDUM_APPROVED: None,
            ADMIN_LEADERS: DEFAULT_ADMIN_COOLDOWN,
        }
        if cooldowns:
            self.cooldowns.update(cooldowns)
        self.clock = clock
        self._lock = threading.Lock()
        self._seen: Dict[Tuple[str, Hashable], object] = {}  # (kind, key) -> notified_at

    def _allowed(self, kind, key, now):
        notified_at = self._seen.get((kind, key))
        if notified_at is None:
            return True
        cooldown = self.cooldowns.get(kind)
        if cooldown is None:
            return False
        return now - notified_at >= cooldown

    def should_notify(self, kind: str, key: Hashable) -> bool:
        with self._lock:
            return self._allowed(kind, key, self.clock())

    def record_notified(self, kind: str, key: Hashable) -> None:
        with self._lock:
            self._seen[(kind, key)] = self.clock()

    def claim(self, kind: str, key: Hashable) -> bool:
        """Check and record in one step; True means the caller must notify."""
        with self._lock:
            now = self.clock()
            if not self._allowed(kind, key, now):
                return False
            self._seen[(kind, key)] = now
            return True

    def prune(self) -> int:
        """Forget entries whose cooldown has elapsed."""
        with self._lock:
            now = self.clock()
            expired = [
                entry for entry, notified_at in self._seen.items()
                if self.cooldowns.get(entry[0]) is not None
                and now - notified_at >= self.cooldowns[entry[0]]
            ]
            for entry in expired:
                del self._seen[entry]
            return len(expired)


def leaders_key(leader_ids) -> Tuple[int, ...]:
    return tuple(sorted(leader_ids))
