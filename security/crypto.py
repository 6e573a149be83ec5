import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes

from security.errors import PreconditionFailed, check_not_empty


def _derive_key(secret: str) -> bytes:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secret.encode("utf-8"))
    return base64.urlsafe_b64encode(digest.finalize())


class FernetCipher:
    """
    Two-way encryption for values kept at rest (TOTP secrets), keyed by the
    application-wide crypto secret. Anything exposing ``encrypt(str) -> str``
    and ``decrypt(str) -> str`` can replace it.
    """

    def __init__(self, secret: str):
        check_not_empty(secret, "encryption secret")
        self._fernet = Fernet(_derive_key(secret))

    def encrypt(self, plaintext: str) -> str:
        check_not_empty(plaintext, "plaintext")
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        check_not_empty(ciphertext, "ciphertext")
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            raise PreconditionFailed("stored value cannot be decrypted with the configured secret") from exc
