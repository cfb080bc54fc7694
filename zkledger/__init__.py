"""
================================================================================
ZKLEDGER PACKAGE - Zero-Knowledge Personal Finance Tracker
================================================================================

Client-side encrypted spending ledger with statistical anomaly detection.
The storage layer only ever holds ciphertext plus category and date.

Package Structure:
    zkledger/core/     - Key management, encryption protocol, sessions, storage
    zkledger/utils/    - Shared utilities (logging, config, constants)
    zkledger/models.py - Transactions, findings, severity and anomaly types
    zkledger/anomaly_detector.py - Statistical anomaly rules
    zkledger/summary.py - Spending aggregates (pandas)
    zkledger/tracker.py - Client workflow tying the pieces together

Last Modified: October 2026
================================================================================
"""

__version__ = "2026.1"
