"""Cookie sealing using libsodium (PyNaCl)."""

import base64
import logging

import nacl.encoding
import nacl.hash
import nacl.secret
import nacl.utils

from prdoc.config import Settings

logger = logging.getLogger(__name__)


class CryptoService:
    """Symmetric authenticated encryption using NaCl SecretBox (XSalsa20-Poly1305).

    Sealed values are url-safe base64 so they can be stored in cookies. A
    value that was tampered with or sealed under another key fails to open.
    """

    def __init__(self, settings: Settings) -> None:
        key_b64 = settings.encryption_key.get_secret_value()
        if not key_b64:
            # Derived from the session secret so every worker agrees (NOT for production)
            logger.warning("No encryption key configured; deriving dev key from session secret.")
            self._key = nacl.hash.blake2b(
                settings.session_secret.get_secret_value().encode("utf-8"),
                digest_size=nacl.secret.SecretBox.KEY_SIZE,
                encoder=nacl.encoding.RawEncoder,
            )
        else:
            self._key = base64.b64decode(key_b64)
        self._box = nacl.secret.SecretBox(self._key)

    def encrypt(self, plaintext: str) -> str:
        """Seal a string and return url-safe base64 text (nonce prepended)."""
        sealed = self._box.encrypt(plaintext.encode("utf-8"))
        return base64.urlsafe_b64encode(bytes(sealed)).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Open a value produced by ``encrypt``.

        Raises ``nacl.exceptions.CryptoError`` or ``ValueError`` on bad input.
        """
        raw = base64.urlsafe_b64decode(ciphertext.encode("ascii"))
        return self._box.decrypt(raw).decode("utf-8")


_crypto_services: dict[str, CryptoService] = {}


def get_crypto_service(settings: Settings) -> CryptoService:
    cache_key = settings.encryption_key.get_secret_value() or settings.session_secret.get_secret_value()
    if cache_key not in _crypto_services:
        _crypto_services[cache_key] = CryptoService(settings)
    return _crypto_services[cache_key]
