"""Credential vault: provider secret encryption and administrator password hashing.

Provider credentials are encrypted with Fernet (AES-128-CBC + HMAC-SHA256)
under a key derived from the configured master key, so a stored ciphertext is
readable by every process sharing that configuration. Administrator passwords
are hashed with bcrypt and can only be verified, never recovered.

None of these operations perform I/O.
"""

import base64
from functools import lru_cache
from typing import Optional

import bcrypt
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import CryptoError
from ..settings import settings

MASK = "****"

# bcrypt only looks at the first 72 bytes of a password
_BCRYPT_MAX_BYTES = 72


def _derive_fernet_key(secret_key: str, salt: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt.encode("utf-8"),
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret_key.encode("utf-8")))


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def mask_secret(secret: Optional[str]) -> str:
    """Display form of a secret: first and last four characters around a mask.

    Secrets of eight characters or fewer are fully masked.
    """
    if not secret or len(secret) <= 8:
        return MASK
    return secret[:4] + MASK + secret[-4:]


class CredentialVault:
    """Symmetric cipher for provider secrets plus bcrypt password hashing."""

    def __init__(
        self,
        secret_key: Optional[str],
        salt: str = "zhanwen-admin-credential-salt",
        hash_rounds: int = 10,
    ):
        self._secret_key = secret_key or ""
        self._salt = salt
        self.hash_rounds = hash_rounds
        self._fernet: Optional[Fernet] = None

    @property
    def is_configured(self) -> bool:
        return bool(self._secret_key)

    def ensure_configured(self) -> None:
        if not self._secret_key:
            raise CryptoError("Encryption key is not configured")

    def _cipher(self) -> Fernet:
        self.ensure_configured()
        if self._fernet is None:
            self._fernet = Fernet(_derive_fernet_key(self._secret_key, self._salt))
        return self._fernet

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext secret into an opaque ciphertext string."""
        token = self._cipher().encrypt(plaintext.encode("utf-8"))
        return token.decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a ciphertext produced by :meth:`encrypt`.

        An empty decryption result is treated as a failure.
        """
        cipher = self._cipher()
        if not ciphertext:
            raise CryptoError("Ciphertext is empty")
        try:
            plaintext = cipher.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError, ValueError) as e:
            raise CryptoError("Decryption failed") from e
        if not plaintext:
            raise CryptoError("Decryption result is empty")
        return plaintext

    def hash_password(self, password: str) -> str:
        """One-way salted bcrypt hash of an administrator password."""
        salt = bcrypt.gensalt(rounds=self.hash_rounds)
        return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Check a password against a hash from :meth:`hash_password`."""
        try:
            return bcrypt.checkpw(
                _password_bytes(password), password_hash.encode("utf-8")
            )
        except ValueError as e:
            raise CryptoError("Password hash is malformed") from e

    mask_secret = staticmethod(mask_secret)


@lru_cache(maxsize=1)
def get_vault() -> CredentialVault:
    """Process-wide vault built from settings."""
    return CredentialVault(
        settings.encryption_key,
        salt=settings.encryption_salt,
        hash_rounds=settings.password_hash_rounds,
    )
