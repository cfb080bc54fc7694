"""Anomaly detection for decrypted spending history.

Statistical rules, each independent; several may fire for one transaction:
- Unusual amount (z-score against all history)
- Unusual amount within the transaction's category
- Large transaction (multiple of the 90th percentile)
- Spending spike (period total against earlier period totals)
- Unusual frequency (recent count in a category against its average)

Everything here is pure and deterministic: no I/O, no randomness. The
detector works on plaintext, so it only ever runs on the client after
decryption. Small samples produce an 'insufficient_data' result, never an
exception.
"""
import math
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from zkledger.decimal_utils import to_decimal, ZERO
from zkledger.models import AnomalyResult, AnomalyType, Finding, Severity
from zkledger.utils import constants

logger = logging.getLogger("zkledger")


# ====================================================================================
# STATISTICS
# ====================================================================================

def mean(values: Sequence) -> Decimal:
    """Arithmetic mean; 0 for an empty sequence."""
    if not values:
        return ZERO
    return sum((to_decimal(v) for v in values), ZERO) / Decimal(len(values))


def stddev(values: Sequence) -> Decimal:
    """Population standard deviation (divides by n); 0 for an empty sequence."""
    if not values:
        return ZERO
    avg = mean(values)
    square_diffs = [(to_decimal(v) - avg) ** 2 for v in values]
    return mean(square_diffs).sqrt()


def z_score(value, avg, std) -> Decimal:
    """(value - mean) / stddev, or 0 when the distribution has no spread."""
    std = to_decimal(std)
    if std == 0:
        return ZERO
    return (to_decimal(value) - to_decimal(avg)) / std


def percentile(sorted_values: Sequence, p) -> Decimal:
    """
    Nearest-rank percentile of an ascending sequence.

    Element at index ceil(p/100 * n) - 1, clamped at 0. Not interpolated.
    Computed in exact arithmetic so e.g. p=70, n=10 selects index 6.
    """
    if not sorted_values:
        return ZERO
    index = math.ceil(to_decimal(p) * len(sorted_values) / 100) - 1
    return to_decimal(sorted_values[max(0, index)])


def severity_for_z(abs_z: Decimal) -> Severity:
    """Bands shared by the z-score rules: low (<=3], medium (<=4], high (>4)."""
    if abs_z > 4:
        return Severity.HIGH
    if abs_z > 3:
        return Severity.MEDIUM
    return Severity.LOW


def _normal(description: str) -> AnomalyResult:
    return AnomalyResult(False, AnomalyType.NORMAL, Severity.LOW, description)


def _insufficient(description: str) -> AnomalyResult:
    return AnomalyResult(False, AnomalyType.INSUFFICIENT_DATA, Severity.LOW, description)


class AnomalyDetector:
    def __init__(self, config: Optional[Dict] = None):
        """Initialize detector with thresholds, optionally overridden by the 'anomaly' config section."""
        cfg = config or {}
        self.amount_z_threshold = to_decimal(cfg.get('amount_z_threshold'), constants.AMOUNT_Z_THRESHOLD)
        self.category_z_threshold = to_decimal(cfg.get('category_z_threshold'), constants.CATEGORY_Z_THRESHOLD)
        self.frequency_ratio_threshold = to_decimal(
            cfg.get('frequency_ratio_threshold'), constants.FREQUENCY_RATIO_THRESHOLD)
        self.spike_ratio_threshold = to_decimal(cfg.get('spike_ratio_threshold'), constants.SPIKE_RATIO_THRESHOLD)
        self.min_amount_history = int(cfg.get('min_amount_history', constants.MIN_AMOUNT_HISTORY))
        self.min_large_tx_history = int(cfg.get('min_large_tx_history', constants.MIN_LARGE_TX_HISTORY))
        self.min_batch_size = int(cfg.get('min_batch_size', constants.MIN_BATCH_SIZE))

    # ------------------------------------------------------------------
    # Individual rules
    # ------------------------------------------------------------------

    def detect_amount_anomaly(self, amount, historical_amounts: Sequence, threshold=None) -> AnomalyResult:
        """Flag an amount whose |z-score| against history exceeds threshold.

        Returns:
            'insufficient_data' with fewer than min_amount_history samples,
            'unusual_amount' when flagged, else 'normal'.
        """
        threshold = self.amount_z_threshold if threshold is None else to_decimal(threshold)
        if len(historical_amounts) < self.min_amount_history:
            return _insufficient('Not enough historical data for analysis')

        amount = to_decimal(amount)
        avg = mean(historical_amounts)
        z = abs(z_score(amount, avg, stddev(historical_amounts)))

        if z > threshold:
            return AnomalyResult(
                is_anomaly=True,
                type=AnomalyType.UNUSUAL_AMOUNT,
                severity=severity_for_z(z),
                description=(
                    f"Transaction amount (${amount:.2f}) is {z:.1f} standard deviations "
                    f"from your average (${avg:.2f})"
                ),
            )
        return _normal('Transaction amount is within normal range')

    def detect_frequency_anomaly(self, category: str, recent_count, historical_average,
                                 threshold=None) -> AnomalyResult:
        """Flag a category used far more often than usual in the recent window."""
        threshold = self.frequency_ratio_threshold if threshold is None else to_decimal(threshold)
        historical_average = to_decimal(historical_average)
        if historical_average == 0:
            return AnomalyResult(False, AnomalyType.NEW_CATEGORY, Severity.LOW,
                                 'New category - establishing baseline')

        ratio = to_decimal(recent_count) / historical_average
        if ratio > threshold:
            if ratio > 4:
                severity = Severity.HIGH
            elif ratio > 3:
                severity = Severity.MEDIUM
            else:
                severity = Severity.LOW
            return AnomalyResult(
                is_anomaly=True,
                type=AnomalyType.UNUSUAL_FREQUENCY,
                severity=severity,
                description=(
                    f"Unusual number of {category} transactions "
                    f"({recent_count} vs average {historical_average:.1f})"
                ),
            )
        return _normal('Transaction frequency is normal')

    def detect_large_transaction(self, amount, percentile_90) -> AnomalyResult:
        """Flag amounts above twice the 90th percentile; above five times is high."""
        amount = to_decimal(amount)
        p90 = to_decimal(percentile_90)
        if amount > p90 * constants.LARGE_TRANSACTION_MULTIPLIER:
            severity = (Severity.HIGH if amount > p90 * constants.LARGE_TRANSACTION_HIGH_MULTIPLIER
                        else Severity.MEDIUM)
            return AnomalyResult(
                is_anomaly=True,
                type=AnomalyType.LARGE_TRANSACTION,
                severity=severity,
                description=(
                    f"Large transaction detected: ${amount:.2f} "
                    "(significantly above your typical spending)"
                ),
            )
        return _normal('Transaction size is normal')

    def detect_spending_spike(self, period_total, historical_period_totals: Sequence,
                              threshold=None) -> AnomalyResult:
        """Flag a period whose total exceeds threshold x the average earlier period."""
        threshold = self.spike_ratio_threshold if threshold is None else to_decimal(threshold)
        if len(historical_period_totals) < constants.MIN_SPIKE_PERIODS:
            return _insufficient('Not enough historical data')

        period_total = to_decimal(period_total)
        avg = mean(historical_period_totals)
        if period_total > avg * threshold:
            if period_total > avg * Decimal('2.5'):
                severity = Severity.HIGH
            elif period_total > avg * 2:
                severity = Severity.MEDIUM
            else:
                severity = Severity.LOW
            return AnomalyResult(
                is_anomaly=True,
                type=AnomalyType.SPENDING_SPIKE,
                severity=severity,
                description=f"High spending period: ${period_total:.2f} (avg: ${avg:.2f})",
            )
        return _normal('Spending is within normal range')

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def analyze_transaction(self, candidate, history: Iterable) -> List[AnomalyResult]:
        """Check one new transaction against the existing history.

        Args:
            candidate: Object with .amount and .category (a Transaction)
            history: Previously recorded transactions, decrypted

        Returns:
            Anomalous results only; empty when nothing fired.
        """
        history = list(history)
        amounts = [to_decimal(t.amount) for t in history]
        anomalies = []

        amount_check = self.detect_amount_anomaly(candidate.amount, amounts)
        if amount_check.is_anomaly:
            anomalies.append(amount_check)

        if len(amounts) >= self.min_large_tx_history:
            p90 = percentile(sorted(amounts), constants.LARGE_TRANSACTION_PERCENTILE)
            large_check = self.detect_large_transaction(candidate.amount, p90)
            if large_check.is_anomaly:
                anomalies.append(large_check)

        category = getattr(candidate, 'category', None)
        if category:
            category_amounts = [to_decimal(t.amount) for t in history if t.category == category]
            if len(category_amounts) >= self.min_amount_history:
                category_check = self.detect_amount_anomaly(
                    candidate.amount, category_amounts, self.category_z_threshold)
                if category_check.is_anomaly:
                    anomalies.append(AnomalyResult(
                        is_anomaly=True,
                        type=AnomalyType.UNUSUAL_CATEGORY_AMOUNT,
                        severity=category_check.severity,
                        description=f"Unusual amount for {category}: {category_check.description}",
                    ))

        if anomalies:
            logger.info(f"[ANOMALY] {len(anomalies)} rule(s) fired for candidate transaction")
        return anomalies

    def batch_analyze(self, transactions: Iterable, user_id=None) -> List[Finding]:
        """Retrospective scan of a whole history against one global distribution.

        Unlike analyze_transaction, every transaction is measured against a
        mean and stddev that include itself. No-op below min_batch_size.

        Returns:
            One unpersisted 'unusual_amount' Finding per flagged transaction,
            in input order.
        """
        transactions = list(transactions)
        if len(transactions) < self.min_batch_size:
            return []

        amounts = [to_decimal(t.amount) for t in transactions]
        avg = mean(amounts)
        std = stddev(amounts)

        findings = []
        for tx, amount in zip(transactions, amounts):
            z = abs(z_score(amount, avg, std))
            if z > self.amount_z_threshold:
                findings.append(Finding(
                    user_id=user_id,
                    transaction_id=getattr(tx, 'id', None),
                    anomaly_type=AnomalyType.UNUSUAL_AMOUNT,
                    severity=severity_for_z(z),
                    description=f"Amount (${amount:.2f}) is {z:.1f}σ from average",
                ))
        logger.info(f"[ANOMALY] Batch scan flagged {len(findings)} of {len(transactions)} transactions")
        return findings

    def analyze_periods(self, transactions: Iterable, as_of: Optional[date] = None) -> List[AnomalyResult]:
        """Monthly checks: spending spike for the current month and per-category frequency.

        The current month is the month of as_of (default: latest transaction
        date). Earlier months, gaps included as zero, form the baseline.
        """
        from zkledger.summary import monthly_totals, monthly_category_counts

        transactions = list(transactions)
        if not transactions:
            return []
        if as_of is None:
            as_of = max(t.date for t in transactions)
        current = f"{as_of.year:04d}-{as_of.month:02d}"
        transactions = [t for t in transactions if t.date <= as_of]

        anomalies = []
        totals = monthly_totals(transactions, through=as_of)
        earlier = [total for month, total in totals if month < current]
        current_total = sum((total for month, total in totals if month == current), ZERO)
        spike = self.detect_spending_spike(current_total, earlier)
        if spike.is_anomaly:
            anomalies.append(spike)

        counts = monthly_category_counts(transactions, through=as_of)
        earlier_months = [month for month in counts if month < current]
        current_counts = counts.get(current, {})
        categories = sorted({c for month_counts in counts.values() for c in month_counts})
        for category in categories:
            if not earlier_months:
                break
            historical = sum(counts[m].get(category, 0) for m in earlier_months)
            average = Decimal(historical) / Decimal(len(earlier_months))
            check = self.detect_frequency_anomaly(category, current_counts.get(category, 0), average)
            if check.is_anomaly:
                anomalies.append(check)

        return anomalies
