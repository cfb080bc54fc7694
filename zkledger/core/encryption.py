"""
================================================================================
ENCRYPTION PROTOCOL - Authenticated Envelopes for Transaction Records
================================================================================

Everything the server stores about a transaction's content is produced here.

Encryption Technology:
    - Algorithm: AES-256-GCM (authentication tag appended to ciphertext)
    - IV: 96 bits, freshly random for every encrypt() call
    - Transport: ciphertext and IV Base64-encoded

Record layout (server-visible):
    encrypted_data    full transaction, canonical JSON, encrypted
    iv                IV of encrypted_data
    amount_encrypted  amount only, independently encrypted with its own IV
                      ("<b64 iv>:<b64 ciphertext>"); written for future
                      server-side numeric work, not read by any display path
    category, date    plaintext by design (filtering and range queries)

Failure semantics:
    decrypt() fails closed. Wrong key, tampered ciphertext and corrupted IV
    all raise DecryptionError with the same message. Batch reads isolate
    failures per record and keep the input order.
================================================================================
"""

import os
import json
import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from zkledger.core.codec import to_bytes, from_bytes, b64encode, b64decode
from zkledger.exceptions import DecryptionError, ValidationError
from zkledger.decimal_utils import to_decimal
from zkledger.models import Transaction, StoredTransaction, parse_iso_date
from zkledger.utils.constants import IV_LENGTH, KEY_LENGTH, DECRYPTION_FAILED_MESSAGE

logger = logging.getLogger("zkledger")

AMOUNT_FIELD_SEPARATOR = ':'


@dataclass(frozen=True)
class Envelope:
    """Base64 ciphertext (tag included) and the IV it was sealed with."""

    ciphertext: str
    iv: str


@dataclass(frozen=True)
class EncryptedRecord:
    full: Envelope
    amount: Envelope
    category: Optional[str]
    date: str

    @property
    def amount_encrypted(self) -> str:
        return f"{self.amount.iv}{AMOUNT_FIELD_SEPARATOR}{self.amount.ciphertext}"

    def to_storage(self) -> Dict:
        """Write shape for the persistence layer."""
        return {
            'encrypted_data': self.full.ciphertext,
            'iv': self.full.iv,
            'category': self.category,
            'amount_encrypted': self.amount_encrypted,
            'date': self.date,
        }


@dataclass(frozen=True)
class DecryptResult:
    """Outcome of decrypting one stored record within a batch."""

    record_id: Optional[int]
    transaction: Optional[Transaction] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.transaction is not None


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        raise ValidationError(f"Key must be {KEY_LENGTH} bytes")


# ====================================================================================
# ENVELOPES
# ====================================================================================

def encrypt(plaintext: bytes, key: bytes) -> Envelope:
    """Seal bytes under key with a fresh random IV."""
    _check_key(key)
    iv = os.urandom(IV_LENGTH)
    ciphertext = AESGCM(bytes(key)).encrypt(iv, bytes(plaintext), None)
    return Envelope(ciphertext=b64encode(ciphertext), iv=b64encode(iv))


def decrypt(envelope: Envelope, key: bytes) -> bytes:
    """
    Open an envelope.

    Raises:
        DecryptionError: tag verification failed or the envelope is malformed.
            The message does not say which.
    """
    _check_key(key)
    try:
        iv = b64decode(envelope.iv)
        ciphertext = b64decode(envelope.ciphertext)
        if len(iv) != IV_LENGTH:
            raise ValueError("bad IV length")
        return AESGCM(bytes(key)).decrypt(iv, ciphertext, None)
    except (InvalidTag, ValueError, TypeError):
        raise DecryptionError() from None


# ====================================================================================
# TRANSACTION RECORDS
# ====================================================================================

def serialize_transaction(tx: Transaction) -> bytes:
    """Canonical JSON bytes: sorted keys, no whitespace, amount as decimal text."""
    payload = {
        'amount': str(tx.amount),
        'description': tx.description,
        'category': tx.category,
        'date': tx.date.isoformat(),
    }
    if tx.merchant is not None:
        payload['merchant'] = tx.merchant
    return to_bytes(json.dumps(payload, sort_keys=True, separators=(',', ':'), ensure_ascii=False))


def deserialize_transaction(data: bytes, id: Optional[int] = None,
                            fallback_date: Optional[str] = None) -> Transaction:
    payload = json.loads(from_bytes(data))
    return Transaction(
        amount=to_decimal(payload['amount']),
        description=payload['description'],
        category=payload['category'],
        date=payload.get('date') or fallback_date,
        merchant=payload.get('merchant'),
        id=id,
    )


def encrypt_record(tx: Transaction, key: bytes) -> EncryptedRecord:
    """Encrypt the full record and, separately, the amount alone (distinct IVs)."""
    full = encrypt(serialize_transaction(tx), key)
    amount = encrypt(to_bytes(str(tx.amount)), key)
    return EncryptedRecord(
        full=full,
        amount=amount,
        category=tx.category,
        date=tx.date.isoformat(),
    )


def decrypt_record(stored: StoredTransaction, key: bytes) -> Transaction:
    """
    Rebuild the plaintext transaction from the full envelope.

    Raises:
        DecryptionError: the envelope did not verify, or what it contained
            is not a transaction
    """
    plaintext = decrypt(Envelope(ciphertext=stored.encrypted_data, iv=stored.iv), key)
    try:
        return deserialize_transaction(plaintext, id=stored.id, fallback_date=stored.date)
    except (ValueError, KeyError, TypeError, UnicodeDecodeError):
        # Authentic bytes that are not a transaction: same answer as a bad tag
        raise DecryptionError() from None


def decrypt_amount(amount_encrypted: str, key: bytes) -> Decimal:
    """Open the secondary amount-only envelope."""
    iv, sep, ciphertext = amount_encrypted.partition(AMOUNT_FIELD_SEPARATOR)
    if not sep:
        raise DecryptionError()
    plaintext = decrypt(Envelope(ciphertext=ciphertext, iv=iv), key)
    try:
        amount = to_decimal(from_bytes(plaintext), None)
    except UnicodeDecodeError:
        raise DecryptionError() from None
    if amount is None:
        raise DecryptionError()
    return amount


def _decrypt_one(stored: StoredTransaction, key: bytes) -> DecryptResult:
    try:
        return DecryptResult(record_id=stored.id, transaction=decrypt_record(stored, key))
    except DecryptionError:
        logger.warning(f"[ENCRYPTION] Could not decrypt transaction {stored.id}")
        return DecryptResult(record_id=stored.id, error=DECRYPTION_FAILED_MESSAGE)


def decrypt_records(records: Iterable[StoredTransaction], key: bytes) -> List[DecryptResult]:
    """
    Decrypt a batch, one result per record, in input order.

    A record that fails is reported in place; the rest of the batch is
    still returned.
    """
    _check_key(key)
    results = [_decrypt_one(stored, key) for stored in records]
    failed = sum(1 for r in results if not r.ok)
    if failed:
        logger.warning(f"[ENCRYPTION] {failed} of {len(results)} transactions could not be decrypted")
    return results


async def decrypt_records_async(records: Iterable[StoredTransaction], key: bytes) -> List[DecryptResult]:
    """Same as decrypt_records, each record decrypted on a worker thread."""
    _check_key(key)
    return list(await asyncio.gather(
        *(asyncio.to_thread(_decrypt_one, stored, key) for stored in records)
    ))
