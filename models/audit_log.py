from models.db import db
from utils.clock import utcnow


class AuditLog(db.Model):
    """Append-only record of security events (logins, second factor, account changes)."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)  # None for failed logins
    action = db.Column(db.String(80), nullable=False, index=True)  # LOGIN_FAIL, TOTP_FAIL, USER_DELETE...
    entity = db.Column(db.String(80), nullable=True)  # "session" or "user"
    entity_id = db.Column(db.String(80), nullable=True)

    # request details, empty for CLI and background callers
    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    metadata_json = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)
