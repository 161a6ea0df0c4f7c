"""Symmetric key lifecycle and password encryption."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .storage import ensure_directory

LOG = logging.getLogger(__name__)

KEY_FILE_NAME = "encryption.key"
KEY_SIZE = 32
IV_SIZE = 16
TAG_SIZE = 16


class DecryptionError(RuntimeError):
    """Raised when a stored secret fails authentication or cannot be decoded."""


@dataclass(frozen=True, slots=True)
class EncryptedSecret:
    """Hex-encoded AES-256-GCM output, stored next to a masked profile."""

    ciphertext: str
    iv: str
    auth_tag: str

    def to_json(self) -> dict[str, str]:
        return {"encrypted": self.ciphertext, "iv": self.iv, "tag": self.auth_tag}

    @classmethod
    def from_json(cls, data: dict[str, str]) -> EncryptedSecret:
        return cls(ciphertext=data["encrypted"], iv=data["iv"], auth_tag=data["tag"])


class KeyStore:
    """Loads or lazily creates the 256-bit key under ``data_dir``.

    The key is generated on first use and written once; a key file of any length
    other than 32 bytes is replaced.
    """

    def __init__(self, data_dir: Path) -> None:
        self._path = Path(data_dir) / KEY_FILE_NAME
        self._key: bytes | None = None

    @property
    def path(self) -> Path:
        return self._path

    def get_or_create_key(self) -> bytes:
        if self._key is not None:
            return self._key
        try:
            key = self._path.read_bytes()
        except FileNotFoundError:
            key = b""
        if len(key) != KEY_SIZE:
            if key:
                LOG.warning("Replacing malformed encryption key", extra={"path": str(self._path)})
            key = os.urandom(KEY_SIZE)
            ensure_directory(self._path.parent)
            self._path.write_bytes(key)
            try:
                self._path.chmod(0o600)
            except OSError:  # pragma: no cover - platform dependent
                LOG.debug("Could not restrict key file permissions", extra={"path": str(self._path)})
        self._key = key
        return key

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        """Encrypt with a fresh random IV on every call."""

        iv = os.urandom(IV_SIZE)
        sealed = AESGCM(self.get_or_create_key()).encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return EncryptedSecret(ciphertext=ciphertext.hex(), iv=iv.hex(), auth_tag=tag.hex())

    def decrypt(self, secret: EncryptedSecret) -> str:
        try:
            iv = bytes.fromhex(secret.iv)
            sealed = bytes.fromhex(secret.ciphertext) + bytes.fromhex(secret.auth_tag)
            plaintext = AESGCM(self.get_or_create_key()).decrypt(iv, sealed, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError) as exc:
            raise DecryptionError("Stored secret could not be decrypted.") from exc


__all__ = [
    "DecryptionError",
    "EncryptedSecret",
    "KEY_FILE_NAME",
    "KeyStore",
]
