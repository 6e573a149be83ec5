from models.db import db
from models.token import TokenExpirable


class EmailConfirmation(TokenExpirable, db.Model):
    __tablename__ = "email_confirmations"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
