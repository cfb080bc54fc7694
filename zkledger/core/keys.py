"""
================================================================================
KEY MANAGEMENT - Password-Derived Keys and Salt Persistence
================================================================================

Derives the per-user symmetric key that protects every transaction.

Key Derivation:
    - Algorithm: PBKDF2-HMAC-SHA256
    - Iterations: 100,000 (policy constant, configurable per KeyManager)
    - Output: 256-bit key for AES-GCM
    - Salt: 16 random bytes per user, generated once at registration

Secret vs. non-secret material:
    The salt is NOT secret. It lives in a client-local store the server never
    sees, keyed by user id. The derived key IS secret: it exists only in
    process memory, is recomputed from the password at every login and is
    never written anywhere.

    Losing the salt store is equivalent to losing all of that user's data.
    There is no recovery path.

Latency:
    Derivation is deliberately slow (hundreds of milliseconds). The *_async
    helpers hand it to a worker thread so an event loop keeps serving other
    work while a login is in progress.
================================================================================
"""

import os
import json
import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

import filelock
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from zkledger.core.codec import to_bytes, b64encode, b64decode
from zkledger.exceptions import SaltNotFoundError, ValidationError
from zkledger.utils.constants import SALT_LENGTH, KDF_ITERATIONS, KEY_LENGTH

logger = logging.getLogger("zkledger")


def generate_salt() -> bytes:
    """Generate a cryptographically random per-user salt."""
    return os.urandom(SALT_LENGTH)


def derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    """
    Derive a 256-bit key from a password and salt using PBKDF2.

    Two calls with the same (password, salt, iterations) return identical
    bytes.

    Args:
        password: User password (never logged)
        salt: 16-byte salt from the salt store
        iterations: PBKDF2 rounds

    Returns:
        32 raw key bytes
    """
    if not isinstance(password, str) or password == "":
        raise ValidationError("Password must be a non-empty string")
    if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_LENGTH:
        raise ValidationError(f"Salt must be {SALT_LENGTH} bytes")
    if iterations < 1:
        raise ValidationError("Iteration count must be positive")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
    )
    return kdf.derive(to_bytes(password))


# ====================================================================================
# SALT STORES
# ====================================================================================

class SaltStore:
    """Non-secret, client-local association user_id -> salt bytes."""

    def save(self, user_id, salt: bytes) -> None:
        raise NotImplementedError

    def get(self, user_id) -> Optional[bytes]:
        raise NotImplementedError

    def remove(self, user_id) -> None:
        raise NotImplementedError


class MemorySaltStore(SaltStore):
    """In-process salt store; lost when the process exits."""

    def __init__(self):
        self._salts: Dict[str, bytes] = {}

    def save(self, user_id, salt: bytes) -> None:
        self._salts[str(user_id)] = bytes(salt)

    def get(self, user_id) -> Optional[bytes]:
        return self._salts.get(str(user_id))

    def remove(self, user_id) -> None:
        self._salts.pop(str(user_id), None)


class FileSaltStore(SaltStore):
    """
    JSON file of Base64 salts keyed by user id.

    Writes are serialized with a file lock and the file is restricted to the
    owner (0600). A file that cannot be parsed reads as empty, but writes
    refuse to overwrite it so the remaining salts are not destroyed.
    """

    def __init__(self, path: Path, lock_timeout: float = 10):
        self.path = Path(path)
        self.lock = filelock.FileLock(str(self.path) + '.lock', timeout=lock_timeout)

    def _read(self, strict: bool = False) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("salt file must contain a JSON object")
            return data
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"[KEYS] Salt store {self.path.name} unreadable: {e}")
            if strict:
                raise ValueError(
                    f"Salt store {self.path} is corrupted; refusing to overwrite it"
                ) from e
            return {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=4, sort_keys=True)
        try:
            os.chmod(tmp_path, 0o600)
        except OSError:
            logger.warning(f"[SECURITY] Could not restrict permissions on {self.path.name}.")
        os.replace(tmp_path, self.path)

    def save(self, user_id, salt: bytes) -> None:
        try:
            with self.lock:
                data = self._read(strict=True)
                data[str(user_id)] = b64encode(bytes(salt))
                self._write(data)
        except filelock.Timeout:
            logger.error(f"[KEYS] Failed to acquire lock for {self.path}")
            raise

    def get(self, user_id) -> Optional[bytes]:
        with self.lock:
            encoded = self._read().get(str(user_id))
        if encoded is None:
            return None
        try:
            return b64decode(encoded)
        except ValueError:
            logger.error(f"[KEYS] Stored salt for user {user_id} is not valid Base64")
            return None

    def remove(self, user_id) -> None:
        try:
            with self.lock:
                data = self._read(strict=True)
                if data.pop(str(user_id), None) is not None:
                    self._write(data)
        except filelock.Timeout:
            logger.error(f"[KEYS] Failed to acquire lock for {self.path}")
            raise


# ====================================================================================
# KEY MANAGER
# ====================================================================================

class KeyManager:
    """Creates, persists and looks up salts; derives keys from them."""

    def __init__(self, salt_store: SaltStore, iterations: int = KDF_ITERATIONS):
        self.salt_store = salt_store
        self.iterations = iterations

    def initialize(self, user_id, password: str) -> bytes:
        """
        First-time setup at registration: new salt, persist it, derive key.

        Raises:
            ValidationError: a salt already exists for this user. Replacing it
                would make all existing ciphertext undecryptable.
        """
        if self.salt_store.get(user_id) is not None:
            raise ValidationError(f"Encryption is already initialized for user {user_id}")
        salt = generate_salt()
        key = derive_key(password, salt, self.iterations)
        self.salt_store.save(user_id, salt)
        logger.info(f"[ENCRYPTION] Initialized key material for user {user_id}")
        return key

    def resume(self, user_id, password: str) -> bytes:
        """
        Rebuild the key at login from the stored salt.

        Raises:
            SaltNotFoundError: no salt stored locally for this user
        """
        salt = self.salt_store.get(user_id)
        if salt is None:
            logger.warning(f"[ENCRYPTION] No salt for user {user_id}; re-registration required")
            raise SaltNotFoundError(user_id)
        return derive_key(password, salt, self.iterations)

    def clear(self, user_id) -> None:
        """Forget the stored salt (logout). Server data is untouched."""
        self.salt_store.remove(user_id)
        logger.info(f"[ENCRYPTION] Cleared local salt for user {user_id}")

    def has_salt(self, user_id) -> bool:
        return self.salt_store.get(user_id) is not None

    async def initialize_async(self, user_id, password: str) -> bytes:
        return await asyncio.to_thread(self.initialize, user_id, password)

    async def resume_async(self, user_id, password: str) -> bytes:
        return await asyncio.to_thread(self.resume, user_id, password)
