"""
Encryption protocol tests.

Envelope round-trips, fail-closed decryption (wrong key, tampered
ciphertext, tampered IV), record layout and per-record batch isolation.
"""

import asyncio
import base64
import json
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from zkledger.core.encryption import (
    Envelope,
    encrypt,
    decrypt,
    encrypt_record,
    decrypt_record,
    decrypt_records,
    decrypt_records_async,
    decrypt_amount,
    serialize_transaction,
)
from zkledger.core.keys import derive_key
from zkledger.exceptions import DecryptionError, ValidationError
from zkledger.models import StoredTransaction, Transaction
from zkledger.utils.constants import DECRYPTION_FAILED_MESSAGE, IV_LENGTH

KEY = derive_key('password', b'\x00' * 16, 1000)
OTHER_KEY = derive_key('password', b'\x01' * 16, 1000)


def _flip_first_bit(b64_text):
    raw = bytearray(base64.b64decode(b64_text))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode('ascii')


def _flip_bit(b64_text, position):
    raw = bytearray(base64.b64decode(b64_text))
    raw[position // 8] ^= 1 << (position % 8)
    return base64.b64encode(bytes(raw)).decode('ascii')


SHORT_ENVELOPE = encrypt(b'x', KEY)  # 1 byte of ciphertext + 16-byte tag
CIPHERTEXT_BITS = len(base64.b64decode(SHORT_ENVELOPE.ciphertext)) * 8
IV_BITS = IV_LENGTH * 8


def _stored(tx, key=KEY, id=1):
    record = encrypt_record(tx, key)
    return StoredTransaction(id=id, user_id=1, **record.to_storage())


@pytest.fixture
def tx():
    return Transaction.create('42.50', 'Weekly groceries', 'Food', '2026-03-14', merchant='Corner Shop')


class TestEnvelope:
    @pytest.mark.parametrize('payload', [b'', b'x', b'a' * 5000, 'Café ☕'.encode('utf-8')])
    def test_round_trip(self, payload):
        assert decrypt(encrypt(payload, KEY), KEY) == payload

    def test_fresh_iv_every_call(self):
        first = encrypt(b'same', KEY)
        second = encrypt(b'same', KEY)
        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext
        assert len(base64.b64decode(first.iv)) == IV_LENGTH

    def test_wrong_key_fails(self):
        envelope = encrypt(b'secret', KEY)
        with pytest.raises(DecryptionError) as exc:
            decrypt(envelope, OTHER_KEY)
        assert str(exc.value) == DECRYPTION_FAILED_MESSAGE

    def test_tampered_ciphertext_fails(self):
        envelope = encrypt(b'secret', KEY)
        tampered = Envelope(ciphertext=_flip_first_bit(envelope.ciphertext), iv=envelope.iv)
        with pytest.raises(DecryptionError):
            decrypt(tampered, KEY)

    def test_tampered_iv_fails(self):
        envelope = encrypt(b'secret', KEY)
        tampered = Envelope(ciphertext=envelope.ciphertext, iv=_flip_first_bit(envelope.iv))
        with pytest.raises(DecryptionError):
            decrypt(tampered, KEY)

    @pytest.mark.parametrize('position', range(CIPHERTEXT_BITS))
    def test_every_ciphertext_bit_is_authenticated(self, position):
        tampered = Envelope(ciphertext=_flip_bit(SHORT_ENVELOPE.ciphertext, position), iv=SHORT_ENVELOPE.iv)
        with pytest.raises(DecryptionError):
            decrypt(tampered, KEY)

    @pytest.mark.parametrize('position', range(IV_BITS))
    def test_every_iv_bit_is_authenticated(self, position):
        tampered = Envelope(ciphertext=SHORT_ENVELOPE.ciphertext, iv=_flip_bit(SHORT_ENVELOPE.iv, position))
        with pytest.raises(DecryptionError):
            decrypt(tampered, KEY)

    def test_short_envelope_opens_untouched(self):
        assert decrypt(SHORT_ENVELOPE, KEY) == b'x'

    def test_malformed_base64_fails_with_same_message(self):
        with pytest.raises(DecryptionError) as exc:
            decrypt(Envelope(ciphertext='%%%', iv='%%%'), KEY)
        assert str(exc.value) == DECRYPTION_FAILED_MESSAGE

    def test_wrong_iv_length_fails(self):
        envelope = encrypt(b'secret', KEY)
        short_iv = base64.b64encode(b'\x00' * 8).decode('ascii')
        with pytest.raises(DecryptionError):
            decrypt(Envelope(ciphertext=envelope.ciphertext, iv=short_iv), KEY)

    def test_bad_key_size_rejected(self):
        with pytest.raises(ValidationError):
            encrypt(b'data', b'short key')


class TestRecords:
    def test_record_round_trip(self, tx):
        restored = decrypt_record(_stored(tx, id=9), KEY)
        assert restored == tx.with_id(9)
        assert restored.amount == Decimal('42.50')
        assert restored.merchant == 'Corner Shop'

    def test_only_category_and_date_in_clear(self, tx):
        storage = encrypt_record(tx, KEY).to_storage()
        assert storage['category'] == 'Food'
        assert storage['date'] == '2026-03-14'
        blob = json.dumps(storage)
        assert 'groceries' not in blob
        assert 'Corner Shop' not in blob
        assert '42.50' not in blob

    def test_amount_envelope_independent(self, tx):
        record = encrypt_record(tx, KEY)
        assert record.amount.iv != record.full.iv
        assert decrypt_amount(record.amount_encrypted, KEY) == Decimal('42.50')

    def test_amount_envelope_wrong_key(self, tx):
        record = encrypt_record(tx, KEY)
        with pytest.raises(DecryptionError):
            decrypt_amount(record.amount_encrypted, OTHER_KEY)

    def test_amount_envelope_with_non_utf8_payload(self):
        envelope = encrypt(b'\xff\xfe\xfd', KEY)
        with pytest.raises(DecryptionError):
            decrypt_amount(f"{envelope.iv}:{envelope.ciphertext}", KEY)

    def test_amount_envelope_without_separator(self):
        with pytest.raises(DecryptionError):
            decrypt_amount('no-separator-here', KEY)

    def test_serialization_is_canonical(self, tx):
        payload = serialize_transaction(tx)
        assert payload == serialize_transaction(tx)
        assert b' ' not in payload.replace(b'Weekly groceries', b'').replace(b'Corner Shop', b'')
        assert json.loads(payload)['amount'] == '42.50'

    def test_merchant_omitted_when_absent(self):
        tx = Transaction.create('5', 'Bus', 'Transportation', '2026-01-01')
        assert 'merchant' not in json.loads(serialize_transaction(tx))

    def test_authentic_non_transaction_payload_fails(self):
        envelope = encrypt(b'{"hello": "world"}', KEY)
        stored = StoredTransaction(
            id=1, user_id=1, encrypted_data=envelope.ciphertext, iv=envelope.iv,
            amount_encrypted='x:y', date='2026-01-01',
        )
        with pytest.raises(DecryptionError):
            decrypt_record(stored, KEY)


class TestBatch:
    def _batch(self):
        good = [
            Transaction.create(str(10 + i), f'Item {i}', 'Food', date(2026, 1, i + 1))
            for i in range(3)
        ]
        records = [_stored(t, id=i + 1) for i, t in enumerate(good)]
        records[1] = replace(records[1], encrypted_data=_flip_first_bit(records[1].encrypted_data))
        return records

    def test_failure_isolated_and_order_kept(self):
        results = decrypt_records(self._batch(), KEY)
        assert [r.record_id for r in results] == [1, 2, 3]
        assert [r.ok for r in results] == [True, False, True]
        assert results[1].error == DECRYPTION_FAILED_MESSAGE
        assert results[1].transaction is None
        assert results[2].transaction.description == 'Item 2'

    def test_async_matches_sync(self):
        records = self._batch()
        results = asyncio.run(decrypt_records_async(records, KEY))
        assert [r.record_id for r in results] == [1, 2, 3]
        assert [r.ok for r in results] == [True, False, True]

    def test_all_fail_with_wrong_key(self):
        results = decrypt_records(self._batch(), OTHER_KEY)
        assert not any(r.ok for r in results)

    def test_empty_batch(self):
        assert decrypt_records([], KEY) == []
