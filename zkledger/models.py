"""
Data model for the ledger.

Plaintext transactions exist only on the client. The server-visible shape
(StoredTransaction) carries ciphertext plus the two fields deliberately left
in the clear: category and date.
"""

import re
from dataclasses import dataclass, replace, asdict
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from zkledger.exceptions import ValidationError
from zkledger.decimal_utils import to_decimal
from zkledger.utils.constants import DEFAULT_CATEGORIES

ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

__all__ = [
    'Severity',
    'AnomalyType',
    'Transaction',
    'StoredTransaction',
    'AnomalyResult',
    'Finding',
    'DEFAULT_CATEGORIES',
    'parse_iso_date',
]


class Severity(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'

    @classmethod
    def parse(cls, value) -> 'Severity':
        """Accept a Severity or its string value; reject anything else."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(f"Unknown severity: {value!r}") from None


class AnomalyType(str, Enum):
    """Anomaly types the engine emits. The last three are informational."""

    UNUSUAL_AMOUNT = 'unusual_amount'
    UNUSUAL_CATEGORY_AMOUNT = 'unusual_category_amount'
    LARGE_TRANSACTION = 'large_transaction'
    SPENDING_SPIKE = 'spending_spike'
    UNUSUAL_FREQUENCY = 'unusual_frequency'
    INSUFFICIENT_DATA = 'insufficient_data'
    NEW_CATEGORY = 'new_category'
    NORMAL = 'normal'

    @property
    def is_informational(self) -> bool:
        return self in _INFORMATIONAL_TYPES

    @classmethod
    def parse(cls, value) -> 'AnomalyType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValidationError(f"Unknown anomaly type: {value!r}") from None


_INFORMATIONAL_TYPES = frozenset({
    AnomalyType.INSUFFICIENT_DATA,
    AnomalyType.NEW_CATEGORY,
    AnomalyType.NORMAL,
})


def parse_iso_date(value) -> date:
    """Parse YYYY-MM-DD text (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        raise ValidationError(f"Date must be in YYYY-MM-DD format: {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid calendar date: {value!r}") from None


@dataclass(frozen=True)
class Transaction:
    """A plaintext transaction. Construction validates; invalid data never exists."""

    amount: Decimal
    description: str
    category: str
    date: date
    merchant: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))
        if not self.amount.is_finite() or self.amount <= 0:
            raise ValidationError(f"Amount must be greater than zero, got {self.amount}")
        if not isinstance(self.description, str) or not self.description.strip():
            raise ValidationError("Description must not be empty")
        if not isinstance(self.category, str) or not self.category.strip():
            raise ValidationError("Category must not be empty")
        if self.merchant is not None and not isinstance(self.merchant, str):
            raise ValidationError("Merchant must be text")
        object.__setattr__(self, 'date', parse_iso_date(self.date))

    @classmethod
    def create(cls, amount, description, category, date, merchant=None, id=None):
        """Coerce loosely typed input (strings from a form or CLI) and validate."""
        if merchant is not None and not str(merchant).strip():
            merchant = None
        return cls(
            amount=to_decimal(amount),
            description=description,
            category=category,
            date=date,
            merchant=merchant,
            id=id,
        )

    @property
    def is_default_category(self) -> bool:
        return self.category in DEFAULT_CATEGORIES

    def with_id(self, id: int) -> 'Transaction':
        return replace(self, id=id)


@dataclass(frozen=True)
class StoredTransaction:
    """Server-visible record: ciphertext plus plaintext category and date."""

    id: Optional[int]
    user_id: int
    encrypted_data: str
    iv: str
    amount_encrypted: str
    date: str
    category: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> 'StoredTransaction':
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            encrypted_data=row['encrypted_data'],
            iv=row['iv'],
            amount_encrypted=row['amount_encrypted'],
            date=row['date'],
            category=row['category'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )


@dataclass(frozen=True)
class AnomalyResult:
    is_anomaly: bool
    type: AnomalyType
    severity: Severity
    description: str

    def to_dict(self) -> Dict:
        return {
            'is_anomaly': self.is_anomaly,
            'type': self.type.value,
            'severity': self.severity.value,
            'description': self.description,
        }


@dataclass(frozen=True)
class Finding:
    """
    A persisted anomaly.

    Lifecycle: Detected -> Acknowledged (terminal). acknowledge() is
    idempotent and never changes detected_at or anomaly_type.
    """

    user_id: int
    anomaly_type: AnomalyType
    severity: Severity
    description: Optional[str] = None
    transaction_id: Optional[int] = None
    id: Optional[int] = None
    detected_at: Optional[datetime] = None
    acknowledged: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'anomaly_type', AnomalyType.parse(self.anomaly_type))
        object.__setattr__(self, 'severity', Severity.parse(self.severity))
        if self.anomaly_type.is_informational:
            raise ValidationError(
                f"{self.anomaly_type.value} is informational and cannot be stored as a finding"
            )

    @classmethod
    def from_result(cls, result: AnomalyResult, user_id: int,
                    transaction_id: Optional[int] = None) -> 'Finding':
        return cls(
            user_id=user_id,
            anomaly_type=result.type,
            severity=result.severity,
            description=result.description,
            transaction_id=transaction_id,
        )

    def acknowledge(self) -> 'Finding':
        if self.acknowledged:
            return self
        return replace(self, acknowledged=True)

    def to_storage(self) -> Dict:
        """Write shape accepted by the persistence layer."""
        return {
            'transaction_id': self.transaction_id,
            'anomaly_type': self.anomaly_type.value,
            'severity': self.severity.value,
            'description': self.description,
        }

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['anomaly_type'] = self.anomaly_type.value
        data['severity'] = self.severity.value
        if self.detected_at is not None:
            data['detected_at'] = self.detected_at.isoformat()
        return data
