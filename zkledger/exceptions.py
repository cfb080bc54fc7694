"""
Error taxonomy for the ledger core.

    ZKLedgerError
      +-- SaltNotFoundError   salt missing locally, re-registration required
      +-- DecryptionError     authentication tag failed, message never says why
      +-- ValidationError     caller passed malformed input (also a ValueError)

Statistical edge cases are not errors; the anomaly engine reports them as
informational results instead.
"""

from zkledger.utils.constants import DECRYPTION_FAILED_MESSAGE


class ZKLedgerError(Exception):
    """Base class for all ledger errors."""


class SaltNotFoundError(ZKLedgerError):
    """No salt is stored locally for the user; their key cannot be rebuilt."""

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(
            f"Encryption salt not found for user {user_id}. "
            "Re-authentication required."
        )


class DecryptionError(ZKLedgerError):
    """
    Authenticated decryption failed.

    Wrong key, tampered ciphertext and corrupted IV all produce the same
    message so callers cannot act as a decryption oracle.
    """

    def __init__(self, message: str = DECRYPTION_FAILED_MESSAGE):
        super().__init__(message)


class ValidationError(ZKLedgerError, ValueError):
    """Input violated a precondition (non-positive amount, empty text, bad date)."""
