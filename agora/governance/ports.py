# agora/governance/ports.py

# Narrow collaborator interfaces consumed by the governance engine.
# SQLAlchemy implementations live in agora.database.repositories; tests use
# in-memory fakes.

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from agora.governance.records import (
    AdminVoteRecord,
    Choice,
    ReferendumRecord,
    ReferendumStatus,
    SuggestionRecord,
    UserRecord,
    VoteKind,
    VoteRecord,
)


@runtime_checkable
class UserRepository(Protocol):
    def get(self, user_id: int) -> Optional[UserRecord]: ...

    def count(self) -> int: ...

    def list_all(self) -> List[UserRecord]: ...

    def display_names(self, user_ids: Iterable[int]) -> Dict[int, str]: ...

    def emails(self) -> List[str]: ...


@runtime_checkable
class SuggestionRepository(Protocol):
    def get(self, suggestion_id: int) -> Optional[SuggestionRecord]: ...

    def list_all(self) -> List[SuggestionRecord]: ...

    def find_by_title(self, title: str) -> Optional[SuggestionRecord]: ...

    def create(self, author_id: int, title: str, description: str,
               created_at: datetime) -> SuggestionRecord: ...

    def delete(self, suggestion_id: int) -> None: ...


@runtime_checkable
class ReferendumRepository(Protocol):
    def get(self, referendum_id: int) -> Optional[ReferendumRecord]: ...

    def list_all(self) -> List[ReferendumRecord]: ...

    def list_active(self) -> List[ReferendumRecord]: ...

    def find_by_title(self, title: str) -> Optional[ReferendumRecord]: ...

    def find_by_suggestion(self, suggestion_id: int) -> Optional[ReferendumRecord]: ...

    def create(self, title: str, description: str, created_at: datetime,
               promoted_from_suggestion_id: Optional[int] = None) -> ReferendumRecord: ...

    def update_counts(self, referendum_id: int, yes_votes: int, no_votes: int) -> None: ...

    def transition(self, referendum_id: int, status: ReferendumStatus,
                   ended_at: datetime) -> bool:
        """Move an active referendum to a terminal status.

        Returns False when the referendum was no longer active.
        """
        ...

    def delete(self, referendum_id: int) -> None: ...


@runtime_checkable
class VoteRepository(Protocol):
    def find(self, voter_id: int, target_id: int, kind: VoteKind) -> Optional[VoteRecord]: ...

    def insert(self, voter_id: int, target_id: int, kind: VoteKind,
               choice: Choice) -> VoteRecord: ...

    def update_choice(self, vote_id: int, choice: Choice) -> None: ...

    def delete(self, vote_id: int) -> None: ...

    def list_for(self, target_id: int, kind: VoteKind) -> List[VoteRecord]: ...

    def delete_for(self, target_id: int, kind: VoteKind) -> int: ...


@runtime_checkable
class AdminVoteRepository(Protocol):
    def find_by_voter(self, voter_id: int) -> Optional[AdminVoteRecord]: ...

    def insert(self, voter_id: int, candidate_id: int) -> AdminVoteRecord: ...

    def delete(self, vote_id: int) -> None: ...

    def list_for(self, candidate_id: int) -> List[AdminVoteRecord]: ...

    def list_all(self) -> List[AdminVoteRecord]: ...


@runtime_checkable
class NotificationSender(Protocol):
    def send(self, recipients: List[str], subject: str, body: str) -> None: ...


@runtime_checkable
class Broadcaster(Protocol):
    def broadcast(self, topic: str, payload: Optional[Dict] = None) -> int: ...
