from datetime import datetime
from utils.clock import utcnow
from models.db import db


class TokenExpirable:
    """
    Shared columns for records looked up by an opaque token and
    discarded once their expiration has passed.
    """

    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expiration = db.Column(db.DateTime, nullable=False)

    def has_expired(self, now: datetime) -> bool:
        return self.expiration <= now
