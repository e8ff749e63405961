# agora/database/repositories.py

# Flask-SQLAlchemy implementations of the repository interfaces in
# agora.governance.ports. Every write commits on its own; nothing here spans
# more than one collection in a transaction.

from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from agora import db
from agora.database.models import AdminVote, BookingLead, Message, Referendum, Suggestion, User, Vote
from agora.governance.errors import DuplicateRecord, InvalidVote, StoreUnavailable
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


def translate_errors(func):
    """Map SQLAlchemy failures onto the governance error taxonomy."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError as e:
            db.session.rollback()
            raise DuplicateRecord(str(e.orig)) from e
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailable(str(e)) from e
    return wrapper


def _user_record(row):
    return UserRecord(
        id=row.id,
        username=row.username,
        email=row.email,
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
    )


def _suggestion_record(row):
    return SuggestionRecord(
        id=row.id,
        author_id=row.user_id,
        title=row.title,
        description=row.description,
        created_at=row.created_at,
    )


def _referendum_record(row):
    return ReferendumRecord(
        id=row.id,
        title=row.title,
        description=row.description,
        status=ReferendumStatus(row.status),
        created_at=row.created_at,
        yes_votes=row.yes_votes or 0,
        no_votes=row.no_votes or 0,
        ended_at=row.ended_at,
        promoted_from_suggestion_id=row.promoted_from_suggestion_id,
    )


class SqlUserRepository:
    @translate_errors
    def get(self, user_id):
        row = db.session.query(User).filter_by(id=user_id).first()
        return _user_record(row) if row else None

    @translate_errors
    def count(self):
        return db.session.query(User).count()

    @translate_errors
    def list_all(self):
        rows = db.session.query(User).order_by(User.created_at, User.id).all()
        return [_user_record(row) for row in rows]

    @translate_errors
    def display_names(self, user_ids):
        user_ids = list(user_ids)
        if not user_ids:
            return {}
        rows = db.session.query(User.id, User.username).filter(User.id.in_(user_ids)).all()
        return {row.id: row.username for row in rows}

    @translate_errors
    def emails(self):
        return [row.email for row in db.session.query(User.email).order_by(User.id).all()]

    # Account management, used by the auth routes only

    @translate_errors
    def find_by_email(self, email):
        return db.session.query(User).filter_by(email=email).first()

    @translate_errors
    def exists(self, username, email):
        query = db.session.query(User).filter((User.email == email) | (User.username == username))
        return db.session.query(query.exists()).scalar()

    @translate_errors
    def create(self, username, email, password_hash):
        user = User(username=username, email=email, password_hash=password_hash, email_verified=False)
        db.session.add(user)
        db.session.commit()
        return _user_record(user)

    @translate_errors
    def mark_verified(self, email):
        updated = db.session.query(User).filter_by(email=email).update(
            {User.email_verified: True}, synchronize_session=False)
        db.session.commit()
        return updated > 0


class SqlSuggestionRepository:
    @translate_errors
    def get(self, suggestion_id):
        row = db.session.query(Suggestion).filter_by(id=suggestion_id).first()
        return _suggestion_record(row) if row else None

    @translate_errors
    def list_all(self):
        rows = db.session.query(Suggestion).order_by(Suggestion.created_at.desc(), Suggestion.id.desc()).all()
        return [_suggestion_record(row) for row in rows]

    @translate_errors
    def find_by_title(self, title):
        row = db.session.query(Suggestion).filter_by(title=title).order_by(Suggestion.id).first()
        return _suggestion_record(row) if row else None

    @translate_errors
    def create(self, author_id, title, description, created_at):
        row = Suggestion(user_id=author_id, title=title, description=description, created_at=created_at)
        db.session.add(row)
        db.session.commit()
        return _suggestion_record(row)

    @translate_errors
    def delete(self, suggestion_id):
        db.session.query(Suggestion).filter_by(id=suggestion_id).delete(synchronize_session=False)
        db.session.commit()


class SqlReferendumRepository:
    @translate_errors
    def get(self, referendum_id):
        # Conditional updates bypass the identity map; always read fresh
        row = db.session.query(Referendum).filter_by(id=referendum_id).populate_existing().first()
        return _referendum_record(row) if row else None

    @translate_errors
    def list_all(self):
        rows = db.session.query(Referendum).order_by(Referendum.created_at.desc(), Referendum.id.desc()).all()
        return [_referendum_record(row) for row in rows]

    @translate_errors
    def list_active(self):
        rows = (db.session.query(Referendum)
                .filter_by(status=ReferendumStatus.ACTIVE.value)
                .order_by(Referendum.created_at, Referendum.id)
                .populate_existing()
                .all())
        return [_referendum_record(row) for row in rows]

    @translate_errors
    def find_by_title(self, title):
        row = db.session.query(Referendum).filter_by(title=title).order_by(Referendum.id).first()
        return _referendum_record(row) if row else None

    @translate_errors
    def find_by_suggestion(self, suggestion_id):
        row = db.session.query(Referendum).filter_by(promoted_from_suggestion_id=suggestion_id).first()
        return _referendum_record(row) if row else None

    @translate_errors
    def create(self, title, description, created_at, promoted_from_suggestion_id=None):
        row = Referendum(
            title=title,
            description=description,
            status=ReferendumStatus.ACTIVE.value,
            yes_votes=0,
            no_votes=0,
            created_at=created_at,
            promoted_from_suggestion_id=promoted_from_suggestion_id,
        )
        db.session.add(row)
        db.session.commit()
        return _referendum_record(row)

    @translate_errors
    def update_counts(self, referendum_id, yes_votes, no_votes):
        db.session.query(Referendum).filter_by(id=referendum_id).update(
            {Referendum.yes_votes: yes_votes, Referendum.no_votes: no_votes},
            synchronize_session=False)
        db.session.commit()

    @translate_errors
    def transition(self, referendum_id, status, ended_at):
        if status is ReferendumStatus.ACTIVE:
            raise ValueError("Referenda cannot transition back to active")
        updated = (db.session.query(Referendum)
                   .filter_by(id=referendum_id, status=ReferendumStatus.ACTIVE.value)
                   .update({Referendum.status: status.value, Referendum.ended_at: ended_at},
                           synchronize_session=False))
        db.session.commit()
        return updated == 1

    @translate_errors
    def delete(self, referendum_id):
        db.session.query(Referendum).filter_by(id=referendum_id).delete(synchronize_session=False)
        db.session.commit()


def _target_column(kind):
    if kind is VoteKind.SUGGESTION:
        return Vote.suggestion_id
    if kind is VoteKind.REFERENDUM:
        return Vote.referendum_id
    raise InvalidVote(f"{kind.value} votes are stored in the admin ledger")


class SqlVoteRepository:
    @staticmethod
    def _record(row, kind):
        target_id = row.suggestion_id if kind is VoteKind.SUGGESTION else row.referendum_id
        return VoteRecord(id=row.id, voter_id=row.user_id, target_id=target_id,
                          kind=kind, choice=Choice(row.vote_type))

    @translate_errors
    def find(self, voter_id, target_id, kind):
        column = _target_column(kind)
        row = db.session.query(Vote).filter(Vote.user_id == voter_id, column == target_id).first()
        return self._record(row, kind) if row else None

    @translate_errors
    def insert(self, voter_id, target_id, kind, choice):
        row = Vote(user_id=voter_id, vote_type=choice.value)
        if kind is VoteKind.SUGGESTION:
            row.suggestion_id = target_id
        else:
            _target_column(kind)
            row.referendum_id = target_id
        db.session.add(row)
        db.session.commit()
        return self._record(row, kind)

    @translate_errors
    def update_choice(self, vote_id, choice):
        db.session.query(Vote).filter_by(id=vote_id).update(
            {Vote.vote_type: choice.value}, synchronize_session=False)
        db.session.commit()

    @translate_errors
    def delete(self, vote_id):
        db.session.query(Vote).filter_by(id=vote_id).delete(synchronize_session=False)
        db.session.commit()

    @translate_errors
    def list_for(self, target_id, kind):
        column = _target_column(kind)
        rows = db.session.query(Vote).filter(column == target_id).order_by(Vote.id).all()
        return [self._record(row, kind) for row in rows]

    @translate_errors
    def delete_for(self, target_id, kind):
        column = _target_column(kind)
        removed = db.session.query(Vote).filter(column == target_id).delete(synchronize_session=False)
        db.session.commit()
        return removed


class SqlAdminVoteRepository:
    @staticmethod
    def _record(row):
        return AdminVoteRecord(id=row.id, voter_id=row.voter_id, candidate_id=row.candidate_id)

    @translate_errors
    def find_by_voter(self, voter_id):
        row = db.session.query(AdminVote).filter_by(voter_id=voter_id).first()
        return self._record(row) if row else None

    @translate_errors
    def insert(self, voter_id, candidate_id):
        row = AdminVote(voter_id=voter_id, candidate_id=candidate_id)
        db.session.add(row)
        db.session.commit()
        return self._record(row)

    @translate_errors
    def delete(self, vote_id):
        db.session.query(AdminVote).filter_by(id=vote_id).delete(synchronize_session=False)
        db.session.commit()

    @translate_errors
    def list_for(self, candidate_id):
        rows = db.session.query(AdminVote).filter_by(candidate_id=candidate_id).order_by(AdminVote.id).all()
        return [self._record(row) for row in rows]

    @translate_errors
    def list_all(self):
        return [self._record(row) for row in db.session.query(AdminVote).order_by(AdminVote.id).all()]


class SqlMessageRepository:
    @translate_errors
    def create(self, room, user_id, body, created_at):
        row = Message(room=room, user_id=user_id, body=body, created_at=created_at)
        db.session.add(row)
        db.session.commit()
        return self._as_dict(row, db.session.get(User, user_id))

    @staticmethod
    def _as_dict(row, author):
        return {
            "id": row.id,
            "room": row.room,
            "user_id": row.user_id,
            "username": author.username if author else "Unknown",
            "body": row.body,
            "created_at": row.created_at.isoformat(),
        }

    @translate_errors
    def list_room(self, room, limit=100):
        rows = (db.session.query(Message, User)
                .outerjoin(User, User.id == Message.user_id)
                .filter(Message.room == room)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
                .all())
        # Oldest first for rendering
        return [self._as_dict(message, author) for message, author in reversed(rows)]


class SqlBookingLeadRepository:
    @staticmethod
    def _as_dict(row, author):
        return {
            "id": row.id,
            "user_id": row.user_id,
            "author": author.username if author else "Unknown",
            "date": row.date.isoformat(),
            "duration": row.duration,
            "description": row.description,
            "created_at": row.created_at.isoformat(),
        }

    @translate_errors
    def create(self, user_id, date, duration, description, created_at):
        row = BookingLead(user_id=user_id, date=date, duration=duration,
                          description=description, created_at=created_at)
        db.session.add(row)
        db.session.commit()
        return self._as_dict(row, db.session.get(User, user_id))

    @translate_errors
    def get(self, lead_id):
        row = db.session.query(BookingLead).filter_by(id=lead_id).first()
        return self._as_dict(row, db.session.get(User, row.user_id)) if row else None

    @translate_errors
    def list_all(self):
        rows = (db.session.query(BookingLead, User)
                .outerjoin(User, User.id == BookingLead.user_id)
                .order_by(BookingLead.date.desc(), BookingLead.id.desc())
                .all())
        return [self._as_dict(lead, author) for lead, author in rows]

    @translate_errors
    def delete(self, lead_id):
        db.session.query(BookingLead).filter_by(id=lead_id).delete(synchronize_session=False)
        db.session.commit()

    @translate_errors
    def delete_older_than(self, cutoff_date):
        removed = db.session.query(BookingLead).filter(BookingLead.date < cutoff_date).delete(
            synchronize_session=False)
        db.session.commit()
        return removed
