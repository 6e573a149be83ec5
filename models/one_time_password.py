from utils.clock import utcnow
from models.db import db


class OneTimePassword(db.Model):
    """A TOTP code that has already been accepted for a user."""

    __tablename__ = "one_time_passwords"
    __table_args__ = (
        db.UniqueConstraint("user_id", "code", name="uq_one_time_passwords_user_code"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    code = db.Column(db.String(10), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
