from .db import db
from .user import User, DeletedUser
from .session import Session
from .email_confirmation import EmailConfirmation
from .password_reset import PasswordReset
from .one_time_password import OneTimePassword
from .audit_log import AuditLog
