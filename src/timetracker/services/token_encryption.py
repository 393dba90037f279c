"""
Encryption of stored OAuth tokens

AES-256-GCM with a key derived from the configured secret. The stored form is
base64(iv + tag + ciphertext).
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_LENGTH = 12
TAG_LENGTH = 16


class TokenEncryptionError(ValueError):
    """Token could not be encrypted or decrypted"""


class TokenEncryption:
    """Encrypts and decrypts OAuth tokens for storage"""

    def __init__(self, secret: str):
        if not secret:
            raise TokenEncryptionError("Encryption key not configured")
        self._aesgcm = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    def encrypt(self, token: str) -> str:
        if not token:
            return ""

        iv = os.urandom(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, token.encode("utf-8"), None)
        # AESGCM appends the tag, storage puts it in front of the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def decrypt(self, encrypted: str) -> str:
        if not encrypted:
            return ""

        try:
            combined = base64.b64decode(encrypted, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TokenEncryptionError("Invalid encrypted token format") from e

        if len(combined) < IV_LENGTH + TAG_LENGTH:
            raise TokenEncryptionError("Encrypted token too short")

        iv = combined[:IV_LENGTH]
        tag = combined[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
        ciphertext = combined[IV_LENGTH + TAG_LENGTH:]
        try:
            plain = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise TokenEncryptionError("Token decryption failed") from e
        return plain.decode("utf-8")
