# agora/routes.py

# JSON API for the community application. Routes stay thin: they validate
# input, resolve the caller's identity and delegate to the governance service.

from datetime import timedelta
import logging

from flask import Response, jsonify, request
from flask_jwt_extended import (
    create_access_token,
    get_jwt_identity,
    jwt_required,
    set_access_cookies,
    unset_jwt_cookies,
)

from agora import app, db, limiter
from agora.audit.audit_logger import AuditLogger
from agora.authentication.rbac import Permission, RBACService
from agora.database.repositories import (
    SqlAdminVoteRepository,
    SqlBookingLeadRepository,
    SqlMessageRepository,
    SqlReferendumRepository,
    SqlSuggestionRepository,
    SqlUserRepository,
    SqlVoteRepository,
)
from agora.encryption.password_hashing import PasswordHashingService
from agora.governance.errors import (
    Conflict,
    DuplicateRecord,
    Forbidden,
    InvalidVote,
    NotFound,
    StoreUnavailable,
    Unauthorized,
)
from agora.governance.leaderboard import AdminLeaderboard
from agora.governance.ledger import VoteLedger
from agora.governance.notification_gate import ADMIN_LEADERS, NotificationGate
from agora.governance.promotion import PromotionRule
from agora.governance.records import VoteKind, utcnow
from agora.governance.resolver import ReferendumResolver
from agora.governance.service import GovernanceService, require_identity
from agora.governance.tally import TallyEngine
from agora.notifications.email_sender import QueuedSender, SmtpSender
from agora.notifications.notifier import Notifier
from agora.operations.health_monitor import check_health, check_ready
from agora.operations.scheduler import Sweeper
from agora.realtime.broadcaster import Broadcaster, sse_stream
from agora.security.input_validator import InputValidator
from agora.security.token_manager import VerificationTokens

logger = logging.getLogger(__name__)

# Services are constructed once per process and shared by every request
audit_logger = AuditLogger(log_dir=app.config['AUDIT_LOG_DIR'])
validator = InputValidator()
password_service = PasswordHashingService()
verification_tokens = VerificationTokens()
broadcaster = Broadcaster()
mail_sender = QueuedSender(SmtpSender.from_config(app.config))

users = SqlUserRepository()
suggestions = SqlSuggestionRepository()
referenda = SqlReferendumRepository()
votes = SqlVoteRepository()
admin_votes = SqlAdminVoteRepository()
messages = SqlMessageRepository()
leads = SqlBookingLeadRepository()

gate = NotificationGate(cooldowns={
    ADMIN_LEADERS: timedelta(seconds=app.config['ADMIN_NOTIFY_COOLDOWN_SECONDS']),
})
notifier = Notifier(users, mail_sender, base_url=app.config['BASE_URL'])
tally_engine = TallyEngine(votes, admin_votes, users)
ledger = VoteLedger(votes, admin_votes, users, suggestions, referenda)
promotion = PromotionRule(suggestions, referenda, users, tally_engine, gate, notifier,
                          audit_logger=audit_logger,
                          ratio_percent=app.config['PROMOTION_RATIO_PERCENT'])
resolver = ReferendumResolver(referenda, votes, tally_engine, gate, notifier,
                              audit_logger=audit_logger,
                              min_age=timedelta(hours=app.config['REFERENDUM_MIN_AGE_HOURS']),
                              purge_after=timedelta(days=app.config['REFERENDUM_PURGE_DAYS']),
                              suggestions=suggestions)
leaderboard = AdminLeaderboard(users, tally_engine, gate, notifier, seats=app.config['ADMIN_SEATS'])
governance = GovernanceService(users, suggestions, referenda, votes, ledger, tally_engine,
                               promotion, resolver, leaderboard, broadcaster, gate,
                               audit_logger=audit_logger)
rbac_service = RBACService(leaderboard)
sweeper = Sweeper(app, governance, leads,
                  sweep_interval=app.config['SWEEP_INTERVAL_SECONDS'],
                  cleanup_interval=app.config['CLEANUP_INTERVAL_SECONDS'])


def _error(message, status):
    return jsonify({'error': message}), status


@app.errorhandler(InvalidVote)
def handle_invalid_vote(e):
    return _error(str(e), 400)


@app.errorhandler(ValueError)
def handle_bad_input(e):
    return _error(str(e), 400)


@app.errorhandler(NotFound)
def handle_not_found(e):
    return _error(str(e), 404)


@app.errorhandler(Unauthorized)
def handle_unauthorized(e):
    return _error(str(e) or 'Unauthorized', 401)


@app.errorhandler(Forbidden)
def handle_forbidden(e):
    return _error(str(e) or 'Forbidden', 403)


@app.errorhandler(Conflict)
def handle_conflict(e):
    return _error(str(e), 409)


@app.errorhandler(StoreUnavailable)
def handle_store_unavailable(e):
    logger.error("Store unavailable: %s", e)
    return _error('Service temporarily unavailable, please retry', 503)


def current_user_id():
    return require_identity(get_jwt_identity())


# -- accounts -----------------------------------------------------------------

@app.route('/api/register', methods=['POST'])
@limiter.limit("10/hour")
def register():
    username, email, password = validator.validate_registration(request.get_json(silent=True))
    password_hash = password_service.hash_password(password)
    if users.exists(username, email):
        raise Conflict('Username or email already exists')
    try:
        user = users.create(username, email, password_hash)
    except DuplicateRecord:
        raise Conflict('Username or email already exists')

    notifier.email_verification(email, verification_tokens.issue(email))
    audit_logger.log_event('user_registered', {'username': username}, user_id=user.id)
    return jsonify({'message': 'User registered successfully. Please check your email for verification.'}), 201


@app.route('/api/verify-email', methods=['GET'])
def verify_email():
    email = verification_tokens.validate(request.args.get('token', ''))
    if email is None or not users.mark_verified(email):
        return _error('Invalid or expired verification link', 400)
    audit_logger.log_event('email_verified', {'email': email})
    return jsonify({'message': 'Email verified. You can now log in.'})


@app.route('/api/login', methods=['POST'])
@limiter.limit("20/minute")
def login():
    payload = request.get_json(silent=True) or {}
    email = str(payload.get('email') or '').strip().lower()
    password = payload.get('password')
    if not email or not password:
        return _error('Email and password are required', 400)

    user = users.find_by_email(email)
    if user is None or not password_service.verify_password(password, user.password_hash):
        audit_logger.log_event('failed_login', {'email': email, 'ip': request.remote_addr})
        return _error('Invalid email or password', 401)
    if app.config['REQUIRE_EMAIL_VERIFICATION'] and not user.email_verified:
        return _error('Please verify your email before logging in', 401)

    token = create_access_token(identity=str(user.id))
    audit_logger.log_event('successful_login', {'ip': request.remote_addr}, user_id=user.id)
    resp = jsonify({
        'user': {'id': user.id, 'username': user.username, 'email': user.email},
        'token': token,
        'message': 'Login successful',
    })
    set_access_cookies(resp, token)
    return resp


@app.route('/api/logout', methods=['POST'])
@jwt_required()
def logout():
    resp = jsonify({'message': 'Logout successful'})
    unset_jwt_cookies(resp)
    return resp


# -- admin election -----------------------------------------------------------

@app.route('/api/users', methods=['GET'])
def list_users():
    return jsonify(governance.list_candidates())


@app.route('/api/users/<int:candidate_id>/vote-admin', methods=['POST'])
@jwt_required()
@limiter.limit("60/minute")
@rbac_service.require_permission(Permission.VOTE)
def vote_admin(candidate_id):
    return jsonify(governance.cast_vote(current_user_id(), candidate_id, VoteKind.ADMIN))


# -- suggestions --------------------------------------------------------------

@app.route('/api/suggestions', methods=['GET'])
def list_suggestions():
    return jsonify(governance.list_active_suggestions())


@app.route('/api/suggestions', methods=['POST'])
@jwt_required()
@rbac_service.require_permission(Permission.CREATE_SUGGESTION)
def create_suggestion():
    title, description = validator.validate_suggestion(request.get_json(silent=True))
    suggestion = governance.create_suggestion(current_user_id(), title, description)
    return jsonify({
        'id': suggestion.id,
        'title': suggestion.title,
        'description': suggestion.description,
        'author_id': suggestion.author_id,
        'created_at': suggestion.created_at.isoformat(),
    }), 201


@app.route('/api/suggestions/<int:suggestion_id>', methods=['DELETE'])
@jwt_required()
def delete_suggestion(suggestion_id):
    governance.delete_suggestion(current_user_id(), suggestion_id)
    return jsonify({'message': 'Suggestion deleted successfully'})


@app.route('/api/suggestions/<int:suggestion_id>/vote', methods=['POST'])
@jwt_required()
@limiter.limit("60/minute")
@rbac_service.require_permission(Permission.VOTE)
def vote_suggestion(suggestion_id):
    payload = request.get_json(silent=True) or {}
    choice = payload.get('voteType', 'support')
    return jsonify(governance.cast_vote(current_user_id(), suggestion_id, VoteKind.SUGGESTION, choice))


# -- referenda ----------------------------------------------------------------

@app.route('/api/referenda', methods=['GET'])
def list_referenda():
    return jsonify(governance.list_referenda())


@app.route('/api/referenda/<int:referendum_id>/vote', methods=['POST'])
@jwt_required()
@limiter.limit("60/minute")
@rbac_service.require_permission(Permission.VOTE)
def vote_referendum(referendum_id):
    payload = request.get_json(silent=True) or {}
    return jsonify(governance.cast_vote(current_user_id(), referendum_id, VoteKind.REFERENDUM,
                                        payload.get('vote')))


@app.route('/api/referenda/<int:referendum_id>', methods=['DELETE'])
@jwt_required()
def delete_referendum(referendum_id):
    governance.delete_referendum(current_user_id(), referendum_id)
    return jsonify({'message': 'Referendum deleted successfully'})


# -- chat ---------------------------------------------------------------------

@app.route('/api/messages', methods=['GET'])
def list_messages():
    room = request.args.get('room', 'general')
    if not validator.validate_room(room):
        return _error(f'Unknown chat room: {room}', 400)
    return jsonify(messages.list_room(room))


@app.route('/api/messages', methods=['POST'])
@jwt_required()
@rbac_service.require_permission(Permission.POST_MESSAGE)
def post_message():
    room, body = validator.validate_message(request.get_json(silent=True))
    message = messages.create(room, current_user_id(), body, utcnow())
    broadcaster.broadcast(f'chat:{room}', message)
    return jsonify(message), 201


# -- booking leads ------------------------------------------------------------

@app.route('/api/leads', methods=['GET'])
@jwt_required(optional=True)
def list_leads():
    identity = get_jwt_identity()
    viewer = int(identity) if identity and str(identity).isdigit() else None
    return jsonify([dict(lead, is_owner=lead['user_id'] == viewer) for lead in leads.list_all()])


@app.route('/api/leads', methods=['POST'])
@jwt_required()
@rbac_service.require_permission(Permission.POST_LEAD)
def create_lead():
    lead_date, duration, description = validator.validate_booking_lead(request.get_json(silent=True))
    lead = leads.create(current_user_id(), lead_date, duration, description, utcnow())
    notifier.booking_lead_posted(lead)
    broadcaster.broadcast('leads updated', {'lead_id': lead['id']})
    return jsonify(lead), 201


@app.route('/api/leads/<int:lead_id>', methods=['DELETE'])
@jwt_required()
def delete_lead(lead_id):
    user_id = current_user_id()
    lead = leads.get(lead_id)
    if lead is None:
        raise NotFound('booking lead', lead_id)
    if lead['user_id'] != user_id and not rbac_service.has_permission(user_id, Permission.DELETE_ANY_LEAD):
        raise Forbidden('Not authorized to delete this lead')
    leads.delete(lead_id)
    broadcaster.broadcast('leads updated', {'lead_id': lead_id})
    return jsonify({'message': 'Lead deleted successfully'})


# -- audit, realtime, health ----------------------------------------------------

@app.route('/api/audit', methods=['GET'])
@jwt_required()
@rbac_service.require_permission(Permission.VIEW_AUDIT_LOG)
def view_audit_log():
    return jsonify({
        'entries': audit_logger.entries(),
        'integrity_ok': audit_logger.verify_log_integrity(),
    })


@app.route('/api/stream', methods=['GET'])
def stream():
    raw = request.args.get('topics', '')
    topics = [t.strip() for t in raw.split(',') if t.strip()] or None
    subscription = broadcaster.subscribe(topics)
    return Response(sse_stream(subscription), mimetype='text/event-stream',
                    headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'})


@app.route('/health', methods=['GET'])
def health():
    res = check_health(db, sweeper)
    return jsonify(res), 200 if res['overall_ok'] else 503


@app.route('/ready', methods=['GET'])
def ready():
    res = check_ready(db)
    return jsonify(res), 200 if res['overall_ok'] else 503
