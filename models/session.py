from models.db import db
from models.token import TokenExpirable

class Session(TokenExpirable, db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(255), nullable=False, index=True)

    # false until the second factor (if any) has been verified
    is_authenticated = db.Column(db.Boolean, default=False, nullable=False)
