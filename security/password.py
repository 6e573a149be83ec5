import base64
import binascii
import hmac
import secrets
from typing import NamedTuple

import bcrypt
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from security.errors import InvalidArgument

PBKDF2_SHA256 = "pbkdf2_sha256"
BCRYPT = "bcrypt"

SALT_BYTES = 16
KEY_BYTES = 32


class PasswordHash(NamedTuple):
    hash: str
    salt: str


class PasswordHasher:
    """
    Salted one-way password hashing. The hash and the salt are returned
    (and stored) separately.
    """

    def __init__(self, algorithm: str = PBKDF2_SHA256, iterations: int = 64000, bcrypt_rounds: int = 12):
        if algorithm not in (PBKDF2_SHA256, BCRYPT):
            raise InvalidArgument(f"unsupported password algorithm: {algorithm!r}")
        if iterations <= 0:
            raise InvalidArgument("iterations must be positive")
        self.algorithm = algorithm
        self.iterations = iterations
        self.bcrypt_rounds = bcrypt_rounds

    @classmethod
    def from_settings(cls, settings) -> "PasswordHasher":
        return cls(
            algorithm=settings.password_algorithm,
            iterations=settings.password_iterations,
            bcrypt_rounds=settings.bcrypt_rounds,
        )

    def hash(self, plain_password: str) -> PasswordHash:
        if not isinstance(plain_password, str) or len(plain_password) == 0:
            raise InvalidArgument("Password must be a non-empty string")

        if self.algorithm == BCRYPT:
            salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
            hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
            return PasswordHash(hashed.decode("utf-8"), salt.decode("utf-8"))

        salt = secrets.token_bytes(SALT_BYTES)
        key = self._pbkdf2(salt).derive(plain_password.encode("utf-8"))
        return PasswordHash(_b64(key), _b64(salt))

    def check(self, plain_password: str, password_hash: str, salt: str) -> bool:
        if not isinstance(plain_password, str) or not isinstance(password_hash, str) or not isinstance(salt, str):
            return False
        if not plain_password or not password_hash:
            return False

        if self.algorithm == BCRYPT:
            try:
                candidate = bcrypt.hashpw(plain_password.encode("utf-8"), salt.encode("utf-8"))
            except ValueError:
                return False
            return hmac.compare_digest(candidate, password_hash.encode("utf-8"))

        try:
            raw_salt = base64.b64decode(salt, validate=True)
            expected = base64.b64decode(password_hash, validate=True)
        except (binascii.Error, ValueError):
            return False
        try:
            # constant-time comparison happens inside verify()
            self._pbkdf2(raw_salt).verify(plain_password.encode("utf-8"), expected)
        except InvalidKey:
            return False
        return True

    def _pbkdf2(self, salt: bytes) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_BYTES,
            salt=salt,
            iterations=self.iterations,
        )


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")
