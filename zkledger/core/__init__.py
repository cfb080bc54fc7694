"""
================================================================================
CORE MODULE - Key Management, Encryption and Storage
================================================================================

Exported Classes:
    KeyManager - Salt lifecycle and PBKDF2 key derivation
    FileSaltStore, MemorySaltStore - Client-local salt persistence
    SessionManager, Session - Explicit login session context
    DatabaseManager - SQLite storage of ciphertext and findings

Exported Functions:
    Encryption protocol:
        - encrypt, decrypt
        - encrypt_record, decrypt_record, decrypt_records
    Key derivation:
        - derive_key, generate_salt

Usage:
    from zkledger.core import KeyManager, MemorySaltStore, encrypt_record

Last Modified: October 2026
================================================================================
"""

from zkledger.core.keys import (
    KeyManager,
    SaltStore,
    FileSaltStore,
    MemorySaltStore,
    derive_key,
    generate_salt,
)
from zkledger.core.encryption import (
    Envelope,
    EncryptedRecord,
    DecryptResult,
    encrypt,
    decrypt,
    encrypt_record,
    decrypt_record,
    decrypt_records,
    decrypt_amount,
)
from zkledger.core.session import Session, SessionManager
from zkledger.core.database import DatabaseManager

__all__ = [
    'KeyManager',
    'SaltStore',
    'FileSaltStore',
    'MemorySaltStore',
    'derive_key',
    'generate_salt',
    'Envelope',
    'EncryptedRecord',
    'DecryptResult',
    'encrypt',
    'decrypt',
    'encrypt_record',
    'decrypt_record',
    'decrypt_records',
    'decrypt_amount',
    'Session',
    'SessionManager',
    'DatabaseManager',
]
