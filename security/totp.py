"""
TOTP (Time-based One-Time Password) engine.

Implements RFC 6238 on top of the RFC 4226 HOTP construction:

    HOTP(K, C) = Truncate(HMAC(K, C))

where C is the 8-byte big-endian counter ``floor(unix_time / time_step)``.
HMAC-SHA-1 is the default because most authenticator apps ignore any
other algorithm advertised in the enrollment URI.

Verification accepts a code if it was valid at any second within
``window`` seconds before or after the given time, which tolerates clock
drift and slow typists beyond a single time step.
"""

import base64
import binascii
import hashlib
import hmac
import secrets
import struct
from urllib.parse import quote, urlencode

from security.errors import InvalidArgument, check_argument

TOTP_ALGORITHMS = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}


def secret_to_base32(raw: bytes) -> str:
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def base32_to_secret(encoded: str) -> bytes:
    padding = -len(encoded) % 8
    try:
        return base64.b32decode(encoded.upper() + "=" * padding)
    except (binascii.Error, ValueError) as exc:
        raise InvalidArgument("secret is not valid base32") from exc


class TotpAuth:
    """
    Stateless TOTP generator/verifier.

    Example:
        >>> auth = TotpAuth(issuer="AuthGate")
        >>> secret = auth.generate_secret()
        >>> auth.check_code(secret, auth.generate_code(secret, 1_700_000_000), 1_700_000_000)
        True
    """

    def __init__(self, algorithm: str = "SHA1", time_step: int = 30, window: int = 30,
                 secret_bytes: int = 10, digits: int = 6, issuer: str = "AuthGate"):
        algorithm = (algorithm or "").upper()
        if algorithm not in TOTP_ALGORITHMS:
            raise InvalidArgument(f"unsupported TOTP algorithm: {algorithm!r}")
        check_argument(time_step > 0, "time step must be positive")
        check_argument(window >= 0, "window must not be negative")
        check_argument(secret_bytes > 0, "secret length must be positive")
        check_argument(1 <= digits <= 9, "digits must be between 1 and 9")
        check_argument(bool(issuer), "empty issuer")

        self.algorithm = algorithm
        self.time_step = time_step
        self.window = window
        self.secret_bytes = secret_bytes
        self.digits = digits
        self.issuer = issuer
        self._digest = TOTP_ALGORITHMS[algorithm]

    @classmethod
    def from_settings(cls, settings) -> "TotpAuth":
        return cls(
            algorithm=settings.totp_algorithm,
            time_step=settings.totp_time_step,
            window=settings.totp_window,
            secret_bytes=settings.totp_secret_bytes,
            digits=settings.totp_digits,
            issuer=settings.totp_issuer,
        )

    def generate_secret(self) -> str:
        """New base32 secret from a CSPRNG. Each prover must get its own."""
        return secret_to_base32(secrets.token_bytes(self.secret_bytes))

    def generate_code(self, secret: str, time: int) -> str:
        """
        Code for ``secret`` at unix time ``time`` (seconds).
        """
        key = self._decode_secret(secret)
        self._check_time(time)
        return self._hotp(key, int(time) // self.time_step)

    def check_code(self, secret: str, code: str, time: int) -> bool:
        """
        True if ``code`` was the valid code at any second in
        ``[time - window, time + window]``.
        """
        key = self._decode_secret(secret)
        self.check_code_format(code)
        self._check_time(time)

        time = int(time)
        counters = []
        for offset in range(-self.window, self.window + 1):
            moment = time + offset
            if moment < 0:
                continue
            counter = moment // self.time_step
            if not counters or counters[-1] != counter:
                counters.append(counter)

        matched = False
        for counter in counters:
            # no early exit, keep the work independent of which step matched
            if hmac.compare_digest(code, self._hotp(key, counter)):
                matched = True
        return matched

    def check_code_format(self, code: str):
        if not isinstance(code, str) or len(code) != self.digits or not (code.isascii() and code.isdigit()):
            raise InvalidArgument("invalid amount of digits")

    def generate_uri(self, user: str, secret: str) -> str:
        """
        otpauth:// URI for authenticator apps. Some clients ignore
        algorithm/digits/period and assume the RFC defaults.
        """
        check_argument(isinstance(user, str) and bool(user), "empty user")
        check_argument(isinstance(secret, str) and bool(secret), "empty secret")
        label = quote(f"{self.issuer}:{user}", safe=":@")
        query = urlencode({
            "secret": secret,
            "issuer": self.issuer,
            "algorithm": self.algorithm,
            "digits": self.digits,
            "period": self.time_step,
        }, quote_via=quote)
        return f"otpauth://totp/{label}?{query}"

    def _hotp(self, key: bytes, counter: int) -> str:
        digest = hmac.new(key, struct.pack(">Q", counter), self._digest).digest()

        # dynamic truncation: low nibble of the last byte picks a 4-byte window
        offset = digest[-1] & 0x0F
        truncated = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF

        return str(truncated % (10 ** self.digits)).zfill(self.digits)

    @staticmethod
    def _decode_secret(secret: str) -> bytes:
        check_argument(isinstance(secret, str) and bool(secret), "empty secret")
        key = base32_to_secret(secret)
        check_argument(bool(key), "empty secret")
        return key

    @staticmethod
    def _check_time(time: int):
        check_argument(time is not None and time >= 0, "invalid timestamp")
