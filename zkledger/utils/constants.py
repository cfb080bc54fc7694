"""
================================================================================
CONSTANTS - System-Wide Configuration Values
================================================================================

Centralized repository for the hardcoded constants used throughout the
zero-knowledge ledger. Organized by functional category.

Constant Categories:
    1. File Paths - Directory and file locations
    2. Key Derivation - PBKDF2 policy and salt size
    3. Encryption - AES-GCM envelope parameters
    4. Anomaly Detection - Statistical thresholds and sample minimums

Key Constants:

    Key Derivation:
        KDF_ITERATIONS = 100000
            PBKDF2-HMAC-SHA256 rounds. Higher values slow login and
            brute-force attempts alike.

        SALT_LENGTH = 16
            Per-user random salt, generated once at registration

    Encryption:
        IV_LENGTH = 12
            96-bit AES-GCM nonce, fresh for every encryption call

    Anomaly Detection:
        AMOUNT_Z_THRESHOLD = 2.5
            |z| above which a single amount is unusual

File Path Constants:
    All paths are relative to BASE_DIR (working directory)
    Supports monkeypatching for test isolation

Note:
    Values in this file are STATIC. For runtime-configurable settings,
    use config.json via zkledger.utils.config.

Last Modified: October 2026
================================================================================
"""

from pathlib import Path
from decimal import Decimal

# ==========================================
# FILE PATHS
# ==========================================
BASE_DIR = Path.cwd()
DATA_DIR = BASE_DIR / 'data'
OUTPUT_DIR = BASE_DIR / 'outputs'
LOG_DIR = OUTPUT_DIR / 'logs'
DB_FILE = DATA_DIR / 'finance.db'
KEYS_DIR = BASE_DIR / 'keys'
SALT_FILE = KEYS_DIR / 'salts.json'
CONFIG_FILE = BASE_DIR / 'configs' / 'config.json'

# ==========================================
# KEY DERIVATION
# ==========================================
"""
Password-based key derivation policy. The iteration count is a tunable
security/latency knob, not an implementation detail.
"""
SALT_LENGTH = 16  # Bytes of random salt per user
KDF_ITERATIONS = 100000  # PBKDF2-HMAC-SHA256 rounds
KEY_LENGTH = 32  # 256-bit derived key
PASSWORD_ENV_VAR = 'ZKLEDGER_PASSWORD'

# ==========================================
# ENCRYPTION
# ==========================================
IV_LENGTH = 12  # 96-bit AES-GCM nonce
DECRYPTION_FAILED_MESSAGE = 'unable to decrypt this item'

# ==========================================
# ANOMALY DETECTION
# ==========================================
"""
Thresholds for the statistical rules. Defaults can be overridden in the
'anomaly' section of config.json.
"""
AMOUNT_Z_THRESHOLD = Decimal('2.5')
CATEGORY_Z_THRESHOLD = Decimal('2.0')
FREQUENCY_RATIO_THRESHOLD = Decimal('2.0')
SPIKE_RATIO_THRESHOLD = Decimal('1.5')
LARGE_TRANSACTION_MULTIPLIER = Decimal('2')
LARGE_TRANSACTION_HIGH_MULTIPLIER = Decimal('5')
LARGE_TRANSACTION_PERCENTILE = 90

MIN_AMOUNT_HISTORY = 5  # Samples needed for z-score rules
MIN_LARGE_TX_HISTORY = 10  # Samples needed for percentile rule
MIN_SPIKE_PERIODS = 3  # Historical periods needed for spike rule
MIN_BATCH_SIZE = 10  # Transactions needed for a retrospective scan

DEFAULT_FINDINGS_LIMIT = 50

DEFAULT_CATEGORIES = (
    'Food', 'Transportation', 'Shopping', 'Entertainment', 'Bills',
    'Healthcare', 'Education', 'Travel', 'Other',
)
