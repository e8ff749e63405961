# agora/database/models.py

from agora import db
from agora.governance.records import utcnow

# Schema for the community: members, proposals, ballots, chat and booking leads


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)  # Argon2id
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f'<User {self.id} {self.username}>'


class Suggestion(db.Model):
    __tablename__ = 'suggestions'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False, default='')
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Referendum(db.Model):
    __tablename__ = 'referenda'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False, default='')
    status = db.Column(db.String(10), nullable=False, default='active', index=True)
    yes_votes = db.Column(db.Integer, nullable=False, default=0)
    no_votes = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    ended_at = db.Column(db.DateTime, nullable=True)
    # Explicit link to the source suggestion; NULL for rows matched by title only
    promoted_from_suggestion_id = db.Column(db.Integer, nullable=True, unique=True)


class Vote(db.Model):
    __tablename__ = 'votes'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'suggestion_id', name='uq_votes_user_suggestion'),
        db.UniqueConstraint('user_id', 'referendum_id', name='uq_votes_user_referendum'),
        db.CheckConstraint(
            '(suggestion_id IS NULL) <> (referendum_id IS NULL)',
            name='ck_votes_single_target',
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    suggestion_id = db.Column(db.Integer, nullable=True, index=True)
    referendum_id = db.Column(db.Integer, nullable=True, index=True)
    vote_type = db.Column(db.String(10), nullable=False)  # support | yes | no
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f'<Vote {self.id} {self.vote_type} by User {self.user_id}>'


class AdminVote(db.Model):
    __tablename__ = 'admin_votes'
    id = db.Column(db.Integer, primary_key=True)
    voter_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    candidate_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Message(db.Model):
    __tablename__ = 'messages'
    id = db.Column(db.Integer, primary_key=True)
    room = db.Column(db.String(64), nullable=False, default='general', index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class BookingLead(db.Model):
    __tablename__ = 'booking_leads'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    duration = db.Column(db.String(50), nullable=False)
    description = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
