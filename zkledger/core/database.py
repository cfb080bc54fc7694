"""
Database Management Module

Reference persistence layer for the ledger:
- SQLite connection management
- Ciphertext transaction CRUD (server never sees plaintext)
- Anomaly finding storage and acknowledgement
- Integrity check and account-level cascade deletion

Only category and date are stored in the clear. Everything else about a
transaction arrives already encrypted.
"""

import re
import sqlite3
import shutil
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from zkledger.exceptions import ValidationError
from zkledger.models import AnomalyResult, Finding, StoredTransaction, Severity, AnomalyType
from zkledger.utils.constants import DEFAULT_FINDINGS_LIMIT

logger = logging.getLogger("zkledger")

ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

TRANSACTION_FIELDS = ('encrypted_data', 'iv', 'category', 'amount_encrypted', 'date')
REQUIRED_TRANSACTION_FIELDS = ('encrypted_data', 'iv', 'amount_encrypted', 'date')


def _check_date(value: str, label: str = 'date') -> str:
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        raise ValidationError(f"{label} must be in YYYY-MM-DD format")
    return value


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


# ====================================================================================
# DATABASE MANAGER
# ====================================================================================

class DatabaseManager:
    """
    Manages SQLite storage of encrypted transactions and anomaly findings.

    Features:
    - Schema creation with indexes on user, date and detection time
    - Integrity checking and recovery of a corrupted file
    - Weak transaction reference from findings (nulled on delete)
    """

    def __init__(self, db_path: Path):
        """Open (or create) the database and ensure the schema exists."""
        self.db_path = Path(db_path)
        if str(self.db_path) != ':memory:':
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_integrity()
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.cursor = self.conn.cursor()
        self._init_tables()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _ensure_integrity(self):
        """
        Check database integrity before opening.
        Recovers corrupted database by moving it aside and starting fresh.
        """
        if not self.db_path.exists():
            return
        conn = None
        try:
            conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
            result = conn.execute("PRAGMA integrity_check").fetchone()
            if result is None or result[0] != 'ok':
                raise sqlite3.DatabaseError(f"integrity_check returned {result}")
        except sqlite3.DatabaseError as e:
            logger.error(f"[DB] Integrity check failed: {e}")
            if conn:
                conn.close()
                conn = None
            self._recover_db()
        finally:
            if conn:
                conn.close()

    def _recover_db(self):
        """Move a corrupted database aside so a fresh one can be created."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        corrupt_path = self.db_path.with_name(f"CORRUPT_{timestamp}_{self.db_path.name}")
        shutil.move(str(self.db_path), str(corrupt_path))
        logger.error(f"[DB] Database corrupted. Moved to {corrupt_path}. Created fresh DB.")

    def _init_tables(self):
        self.cursor.executescript('''
            CREATE TABLE IF NOT EXISTS transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                encrypted_data TEXT NOT NULL,
                iv TEXT NOT NULL,
                category TEXT,
                amount_encrypted TEXT NOT NULL,
                date TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
                updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
            );

            CREATE TABLE IF NOT EXISTS anomalies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                transaction_id INTEGER REFERENCES transactions(id) ON DELETE SET NULL,
                anomaly_type TEXT NOT NULL,
                severity TEXT NOT NULL CHECK (severity IN ('low', 'medium', 'high')),
                description TEXT,
                detected_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
                acknowledged INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_transactions_user_id ON transactions(user_id);
            CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
            CREATE INDEX IF NOT EXISTS idx_anomalies_user_id ON anomalies(user_id);
            CREATE INDEX IF NOT EXISTS idx_anomalies_detected_at ON anomalies(detected_at);
        ''')
        self.conn.commit()

    def close(self):
        try:
            self.conn.close()
        except sqlite3.Error as e:
            logger.warning(f"[DB] Error closing connection: {e}")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(self, user_id: int, record: Dict) -> int:
        """
        Store one encrypted transaction.

        Args:
            user_id: Owner
            record: {encrypted_data, iv, category?, amount_encrypted, date}

        Returns:
            Assigned transaction id
        """
        missing = [f for f in REQUIRED_TRANSACTION_FIELDS if not record.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        _check_date(record['date'])

        self.cursor.execute(
            '''INSERT INTO transactions (user_id, encrypted_data, iv, category, amount_encrypted, date)
               VALUES (?, ?, ?, ?, ?, ?)''',
            (
                user_id,
                record['encrypted_data'],
                record['iv'],
                record.get('category') or None,
                record['amount_encrypted'],
                record['date'],
            ),
        )
        self.conn.commit()
        return self.cursor.lastrowid

    def get_transaction(self, transaction_id: int) -> Optional[StoredTransaction]:
        row = self.cursor.execute(
            "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
        ).fetchone()
        return StoredTransaction.from_row(row) if row else None

    def find_transactions(self, user_id: int, start_date: Optional[str] = None,
                          end_date: Optional[str] = None) -> List[StoredTransaction]:
        """
        All of a user's transactions, newest first.

        When both bounds are given only dates within [start_date, end_date]
        (inclusive) are returned.
        """
        if start_date and end_date:
            _check_date(start_date, 'start_date')
            _check_date(end_date, 'end_date')
            rows = self.cursor.execute(
                '''SELECT * FROM transactions
                   WHERE user_id = ? AND date BETWEEN ? AND ?
                   ORDER BY date DESC, id DESC''',
                (user_id, start_date, end_date),
            ).fetchall()
        else:
            rows = self.cursor.execute(
                "SELECT * FROM transactions WHERE user_id = ? ORDER BY date DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [StoredTransaction.from_row(row) for row in rows]

    def update_transaction(self, transaction_id: int, **fields) -> Optional[StoredTransaction]:
        """Replace the given ciphertext/metadata fields; unknown field names are rejected."""
        unknown = set(fields) - set(TRANSACTION_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown transaction fields: {sorted(unknown)}")
        updates = {k: v for k, v in fields.items() if v is not None}
        if 'date' in updates:
            _check_date(updates['date'])
        if not updates:
            return self.get_transaction(transaction_id)

        assignments = ', '.join(f"{name} = ?" for name in updates)
        self.cursor.execute(
            f'''UPDATE transactions
                SET {assignments}, updated_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')
                WHERE id = ?''',
            (*updates.values(), transaction_id),
        )
        self.conn.commit()
        return self.get_transaction(transaction_id)

    def delete_transaction(self, transaction_id: int) -> bool:
        """Delete one transaction. Findings referencing it keep existing, unlinked."""
        self.cursor.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
        self.conn.commit()
        return self.cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Anomaly findings
    # ------------------------------------------------------------------

    def create_finding(self, user_id: int, finding, transaction_id: Optional[int] = None) -> Finding:
        """
        Persist an anomaly.

        Args:
            user_id: Owner
            finding: Finding, AnomalyResult, or a dict
                {transaction_id?, anomaly_type, severity, description?}
            transaction_id: Overrides the transaction reference

        Raises:
            ValidationError: unknown severity/type, or an informational
                result ('normal', 'insufficient_data', 'new_category')
        """
        if isinstance(finding, AnomalyResult):
            finding = Finding.from_result(finding, user_id, transaction_id)
        elif isinstance(finding, dict):
            finding = Finding(
                user_id=user_id,
                anomaly_type=finding.get('anomaly_type'),
                severity=finding.get('severity'),
                description=finding.get('description'),
                transaction_id=finding.get('transaction_id'),
            )
        if transaction_id is None:
            transaction_id = finding.transaction_id
        if transaction_id is not None and self.get_transaction(transaction_id) is None:
            logger.warning(f"[DB] Finding references missing transaction {transaction_id}; storing unlinked")
            transaction_id = None

        payload = finding.to_storage()
        self.cursor.execute(
            '''INSERT INTO anomalies (user_id, transaction_id, anomaly_type, severity, description)
               VALUES (?, ?, ?, ?, ?)''',
            (user_id, transaction_id, payload['anomaly_type'], payload['severity'], payload['description']),
        )
        self.conn.commit()
        return self.get_finding(self.cursor.lastrowid)

    def _finding_from_row(self, row) -> Finding:
        return Finding(
            id=row['id'],
            user_id=row['user_id'],
            transaction_id=row['transaction_id'],
            anomaly_type=AnomalyType.parse(row['anomaly_type']),
            severity=Severity.parse(row['severity']),
            description=row['description'],
            detected_at=_parse_timestamp(row['detected_at']),
            acknowledged=bool(row['acknowledged']),
        )

    def get_finding(self, finding_id: int) -> Optional[Finding]:
        row = self.cursor.execute("SELECT * FROM anomalies WHERE id = ?", (finding_id,)).fetchone()
        return self._finding_from_row(row) if row else None

    def find_findings(self, user_id: int, limit: int = DEFAULT_FINDINGS_LIMIT) -> List[Finding]:
        """Most recent findings first."""
        rows = self.cursor.execute(
            '''SELECT * FROM anomalies WHERE user_id = ?
               ORDER BY detected_at DESC, id DESC LIMIT ?''',
            (user_id, int(limit)),
        ).fetchall()
        return [self._finding_from_row(row) for row in rows]

    def find_unacknowledged(self, user_id: int) -> List[Finding]:
        rows = self.cursor.execute(
            '''SELECT * FROM anomalies WHERE user_id = ? AND acknowledged = 0
               ORDER BY detected_at DESC, id DESC''',
            (user_id,),
        ).fetchall()
        return [self._finding_from_row(row) for row in rows]

    def acknowledge(self, finding_id: int) -> bool:
        """
        Mark a finding acknowledged.

        Returns True when the finding exists, including when it was already
        acknowledged. Only the flag changes.
        """
        self.cursor.execute("UPDATE anomalies SET acknowledged = 1 WHERE id = ?", (finding_id,))
        self.conn.commit()
        return self.cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Account cascade
    # ------------------------------------------------------------------

    def delete_user_data(self, user_id: int) -> int:
        """Remove every finding and transaction of a user. Returns rows deleted."""
        self.cursor.execute("DELETE FROM anomalies WHERE user_id = ?", (user_id,))
        removed = self.cursor.rowcount
        self.cursor.execute("DELETE FROM transactions WHERE user_id = ?", (user_id,))
        removed += self.cursor.rowcount
        self.conn.commit()
        logger.info(f"[DB] Deleted {removed} rows for user {user_id}")
        return removed
