"""
Credential Vault

Encrypts per-channel API credentials at rest.

Stored format: base64(iv + ciphertext), AES-256-CBC with PKCS7 padding, key
= sha256(site secret), JSON plaintext of string key/value pairs.
"""

import base64
import binascii
import hashlib
import json
import logging
import os
from typing import Dict

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

IV_SIZE = 16


class CredentialVault:
    def __init__(self, secret: str):
        if not secret:
            raise ValueError("CredentialVault requires a non-empty secret")
        self._key = hashlib.sha256(secret.encode("utf-8")).digest()

    def encrypt(self, credentials: Dict[str, str]) -> str:
        plaintext = json.dumps(credentials or {}, separators=(",", ":")).encode("utf-8")

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()

        iv = os.urandom(IV_SIZE)
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> Dict[str, str]:
        """
        Decrypt a stored blob. Values written before encryption was enabled
        are plain JSON and are read as-is. Anything unreadable yields {}.
        """
        if not blob:
            return {}

        try:
            return self._decrypt(blob)
        except (ValueError, binascii.Error, UnicodeDecodeError) as e:
            logger.debug(f"Credential blob is not encrypted ({e}), trying plain JSON")

        try:
            data = json.loads(blob)
        except (ValueError, TypeError):
            logger.warning("Stored channel credentials could not be decrypted or parsed")
            return {}

        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items()}

    def _decrypt(self, blob: str) -> Dict[str, str]:
        raw = base64.b64decode(blob, validate=True)
        if len(raw) <= IV_SIZE or (len(raw) - IV_SIZE) % IV_SIZE:
            raise ValueError("ciphertext has an invalid length")

        iv, ciphertext = raw[:IV_SIZE], raw[IV_SIZE:]
        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()

        data = json.loads(plaintext.decode("utf-8"))
        if not isinstance(data, dict):
            raise ValueError("decrypted payload is not an object")
        return data
