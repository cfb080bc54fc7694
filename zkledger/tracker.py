"""
Client-side ledger workflow.

Ties a logged-in Session to the persistence layer: plaintext goes in,
ciphertext goes to storage, decrypted history feeds the anomaly detector and
anomalous results come back as stored findings.
"""

import logging
from datetime import date
from typing import List, Optional, Tuple

from zkledger.anomaly_detector import AnomalyDetector
from zkledger.core.database import DatabaseManager
from zkledger.core.encryption import DecryptResult, encrypt_record, decrypt_records
from zkledger.core.session import Session
from zkledger.exceptions import DecryptionError
from zkledger.models import Finding, Transaction
from zkledger.summary import spending_summary

logger = logging.getLogger("zkledger")


class FinanceTracker:
    def __init__(self, session: Session, db: DatabaseManager, detector: Optional[AnomalyDetector] = None):
        self.session = session
        self.db = db
        self.detector = detector or AnomalyDetector()

    @property
    def user_id(self):
        return self.session.user_id

    def _owned_transaction(self, transaction_id: int):
        stored = self.db.get_transaction(transaction_id)
        if stored is None or stored.user_id != self.user_id:
            raise LookupError(f"Transaction {transaction_id} not found")
        return stored

    def _readable_history(self) -> List[Transaction]:
        """
        Decrypted history for a write path.

        Raises:
            DecryptionError: the user has stored records and the session key
                opens none of them (wrong password). Writing under that key
                would produce records the real password can never read.
        """
        results = self.list_transactions()
        if results and not any(r.ok for r in results):
            logger.warning(f"[TRACKER] Session key for user {self.user_id} opens none of {len(results)} records")
            raise DecryptionError()
        return [r.transaction for r in results if r.ok]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def add_transaction(self, tx: Transaction) -> Tuple[int, List[Finding]]:
        """
        Analyze, encrypt and store a new transaction.

        The candidate is checked against the history as it was before the
        insert. Any anomalies are stored as findings linked to the new id.
        Nothing is written when the session key cannot read existing records.

        Returns:
            (transaction id, stored findings)
        """
        anomalies = self.detector.analyze_transaction(tx, self._readable_history())
        record = encrypt_record(tx, self.session.key)
        transaction_id = self.db.create_transaction(self.user_id, record.to_storage())
        findings = [
            self.db.create_finding(self.user_id, anomaly, transaction_id=transaction_id)
            for anomaly in anomalies
        ]
        logger.info(f"[TRACKER] Stored transaction {transaction_id} with {len(findings)} finding(s)")
        return transaction_id, findings

    def list_transactions(self, start_date: Optional[str] = None,
                          end_date: Optional[str] = None) -> List[DecryptResult]:
        """Decrypt stored transactions, newest first; failures reported per record."""
        stored = self.db.find_transactions(self.user_id, start_date, end_date)
        return decrypt_records(stored, self.session.key)

    def history(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[Transaction]:
        """Successfully decrypted transactions only."""
        return [r.transaction for r in self.list_transactions(start_date, end_date) if r.ok]

    def update_transaction(self, transaction_id: int, tx: Transaction) -> Transaction:
        self._owned_transaction(transaction_id)
        self._readable_history()
        record = encrypt_record(tx, self.session.key)
        self.db.update_transaction(transaction_id, **record.to_storage())
        return tx.with_id(transaction_id)

    def delete_transaction(self, transaction_id: int) -> bool:
        self._owned_transaction(transaction_id)
        return self.db.delete_transaction(transaction_id)

    # ------------------------------------------------------------------
    # Anomalies
    # ------------------------------------------------------------------

    def scan_history(self) -> List[Finding]:
        """Retrospective scan of the whole history; stores what it flags."""
        flagged = self.detector.batch_analyze(self.history(), user_id=self.user_id)
        return [self.db.create_finding(self.user_id, finding) for finding in flagged]

    def scan_periods(self, as_of: Optional[date] = None) -> List[Finding]:
        """Monthly spike/frequency checks; stores what they flag (unlinked)."""
        results = self.detector.analyze_periods(self.history(), as_of=as_of)
        return [self.db.create_finding(self.user_id, result) for result in results]

    def findings(self, limit: int = 50) -> List[Finding]:
        return self.db.find_findings(self.user_id, limit)

    def unacknowledged(self) -> List[Finding]:
        return self.db.find_unacknowledged(self.user_id)

    def acknowledge(self, finding_id: int) -> bool:
        finding = self.db.get_finding(finding_id)
        if finding is None or finding.user_id != self.user_id:
            raise LookupError(f"Anomaly {finding_id} not found")
        return self.db.acknowledge(finding_id)

    def summary(self, as_of: Optional[date] = None):
        return spending_summary(self.history(), as_of=as_of)
