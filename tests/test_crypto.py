"""
Unit tests for the at-rest cipher.
"""

import pytest

from security.crypto import FernetCipher
from security.errors import InvalidArgument, PreconditionFailed


class TestFernetCipher:

    def test_round_trip(self):
        """decrypt(encrypt(x)) == x."""
        cipher = FernetCipher("app-secret")
        token = cipher.encrypt("JBSWY3DPEHPK3PXP")
        assert token != "JBSWY3DPEHPK3PXP"
        assert cipher.decrypt(token) == "JBSWY3DPEHPK3PXP"

    def test_same_key_from_same_secret(self):
        """Two instances with the same secret interoperate (process restarts)."""
        token = FernetCipher("app-secret").encrypt("value")
        assert FernetCipher("app-secret").decrypt(token) == "value"

    def test_wrong_secret(self):
        """A different secret cannot decrypt."""
        token = FernetCipher("app-secret").encrypt("value")
        with pytest.raises(PreconditionFailed):
            FernetCipher("other-secret").decrypt(token)

    def test_tampered_ciphertext(self):
        """Modified ciphertext is detected."""
        cipher = FernetCipher("app-secret")
        token = cipher.encrypt("value")
        tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")
        with pytest.raises(PreconditionFailed):
            cipher.decrypt(tampered)

    def test_empty_secret(self):
        with pytest.raises(InvalidArgument):
            FernetCipher("")
