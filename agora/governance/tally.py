# agora/governance/tally.py

from collections import Counter
from typing import Dict, Iterable, List, Tuple

from agora.governance.ports import AdminVoteRepository, UserRepository, VoteRepository
from agora.governance.records import (
    ADMIN_TALLY_KEY,
    VALID_CHOICES,
    Tally,
    VoteKind,
    parse_kind,
)


def summarize(ballots: Iterable[Tuple[str, int]], keys: Iterable[str], names: Dict[int, str]) -> Tally:
    """Build a tally from (choice key, voter id) pairs.

    Every key in `keys` is present in the result, voter names are sorted.
    """
    tally = Tally(counts={key: 0 for key in keys}, voters={key: [] for key in keys})
    for key, voter_id in ballots:
        tally.counts[key] = tally.counts.get(key, 0) + 1
        tally.voters.setdefault(key, []).append(names.get(voter_id, "Unknown"))
    for key in tally.voters:
        tally.voters[key].sort()
    return tally


def two_thirds(total: int) -> int:
    """ceil(total * 2 / 3) without floating point."""
    return (2 * total + 2) // 3


def promotion_threshold(user_count: int, ratio_percent: int = 5) -> int:
    """max(1, ceil(user_count * ratio_percent / 100))."""
    return max(1, (user_count * ratio_percent + 99) // 100)


class TallyEngine:
    def __init__(self, votes: VoteRepository, admin_votes: AdminVoteRepository, users: UserRepository):
        self.votes = votes
        self.admin_votes = admin_votes
        self.users = users

    def tally(self, target_id, kind) -> Tally:
        kind = parse_kind(kind)
        if kind is VoteKind.ADMIN:
            records = self.admin_votes.list_for(target_id)
            ballots = [(ADMIN_TALLY_KEY, r.voter_id) for r in records]
            keys: List[str] = [ADMIN_TALLY_KEY]
        else:
            records = self.votes.list_for(target_id, kind)
            ballots = [(r.choice.value, r.voter_id) for r in records]
            keys = [c.value for c in VALID_CHOICES[kind]]
        names = self.users.display_names({voter_id for _, voter_id in ballots})
        return summarize(ballots, keys, names)

    def admin_standings(self) -> Dict[int, int]:
        """Admin-vote count per candidate that holds at least one vote."""
        return dict(Counter(r.candidate_id for r in self.admin_votes.list_all()))
