#!/usr/bin/env python3
"""
================================================================================
CLI - Command Line Interface
================================================================================

Command-line access to the encrypted ledger:
    - Registration (salt creation) and logout
    - Adding and listing transactions (encrypted at rest)
    - Spending summaries
    - Anomaly findings: list, acknowledge, retrospective scans

Every command derives the key from the password again; nothing secret is
written to disk. The password is read from ZKLEDGER_PASSWORD when set,
otherwise prompted for.

Usage:
    python cli.py --user 1 register
    python cli.py --user 1 add --amount 42.50 --description "Groceries" --category Food
    python cli.py --user 1 anomalies --unacknowledged
    python cli.py --help

Last Modified: October 2026
================================================================================
"""

import os
import sys
import json
import argparse
from datetime import date
from getpass import getpass
from pathlib import Path
from typing import Any, Optional

from zkledger.anomaly_detector import AnomalyDetector
from zkledger.core.database import DatabaseManager
from zkledger.decimal_utils import format_usd
from zkledger.core.keys import FileSaltStore, KeyManager
from zkledger.core.session import SessionManager
from zkledger.exceptions import DecryptionError, SaltNotFoundError, ValidationError
from zkledger.models import Transaction, parse_iso_date
from zkledger.tracker import FinanceTracker
from zkledger.utils.config import load_config, resolve_path
from zkledger.utils.constants import (
    DB_FILE, SALT_FILE, PASSWORD_ENV_VAR, DEFAULT_FINDINGS_LIMIT, DEFAULT_CATEGORIES,
)
from zkledger.utils.logger import setup_logging


# ANSI color codes
class Colors:
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def _pretty_json(payload: Any):
    """Render JSON to stdout with stable formatting."""
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def print_success(text):
    """Print success message"""
    print(f"{Colors.GREEN}✓{Colors.ENDC} {text}")


def print_error(text):
    """Print error message"""
    print(f"{Colors.RED}✗{Colors.ENDC} {text}")


def print_info(text):
    """Print info message"""
    print(f"{Colors.CYAN}ℹ{Colors.ENDC} {text}")


# ==================================
# WIRING
# ==================================

def _read_password(confirm: bool = False) -> str:
    password = os.environ.get(PASSWORD_ENV_VAR)
    if password:
        return password
    password = getpass("Password: ")
    if confirm and getpass("Confirm password: ") != password:
        raise ValidationError("Passwords do not match")
    return password


def _session_manager(config) -> SessionManager:
    salt_path = resolve_path(config['storage'].get('salt_file'), SALT_FILE)
    key_manager = KeyManager(FileSaltStore(salt_path), iterations=int(config['encryption']['kdf_iterations']))
    return SessionManager(key_manager)


def _open_db(config) -> DatabaseManager:
    return DatabaseManager(resolve_path(config['storage'].get('db_file'), DB_FILE))


def _tracker(args) -> FinanceTracker:
    sessions = _session_manager(args.config)
    session = sessions.login(args.user, _read_password())
    return FinanceTracker(session, _open_db(args.config), AnomalyDetector(args.config['anomaly']))


# ==================================
# COMMANDS
# ==================================

def cmd_register(args):
    sessions = _session_manager(args.config)
    sessions.register(args.user, _read_password(confirm=True))
    print_success(f"Encryption initialized for user {args.user}")
    print_info("Keep the salt file safe: without it your data cannot be decrypted.")
    return True


def cmd_logout(args):
    sessions = _session_manager(args.config)
    if args.forget_salt:
        sessions.key_manager.clear(args.user)
        print_success(f"Local salt removed for user {args.user}")
    else:
        print_info("Nothing is cached between commands; use --forget-salt to remove the local salt.")
    return True


def cmd_add(args):
    tx = Transaction.create(
        amount=args.amount,
        description=args.description,
        category=args.category,
        date=args.date or date.today().isoformat(),
        merchant=args.merchant,
    )
    tracker = _tracker(args)
    try:
        transaction_id, findings = tracker.add_transaction(tx)
    finally:
        tracker.db.close()
    print_success(f"Transaction created with id {transaction_id} ({format_usd(tx.amount)})")
    for finding in findings:
        print(f"{Colors.YELLOW}!{Colors.ENDC} [{finding.severity.value}] {finding.description}")
    return True


def cmd_list(args):
    tracker = _tracker(args)
    try:
        results = tracker.list_transactions(args.start, args.end)
    finally:
        tracker.db.close()
    rows = []
    for result in results:
        if result.ok:
            tx = result.transaction
            rows.append({
                'id': tx.id,
                'date': tx.date.isoformat(),
                'amount': str(tx.amount),
                'category': tx.category,
                'description': tx.description,
                'merchant': tx.merchant,
            })
        else:
            rows.append({'id': result.record_id, 'error': result.error})
    _pretty_json({'count': len(rows), 'transactions': rows})
    return True


def cmd_summary(args):
    tracker = _tracker(args)
    try:
        summary = tracker.summary(as_of=parse_iso_date(args.as_of) if args.as_of else None)
    finally:
        tracker.db.close()
    _pretty_json(summary)
    return True


def cmd_anomalies(args):
    tracker = _tracker(args)
    try:
        findings = tracker.unacknowledged() if args.unacknowledged else tracker.findings(args.limit)
    finally:
        tracker.db.close()
    _pretty_json({'count': len(findings), 'anomalies': [f.to_dict() for f in findings]})
    return True


def cmd_ack(args):
    tracker = _tracker(args)
    try:
        tracker.acknowledge(args.id)
    except LookupError as e:
        print_error(str(e))
        return False
    finally:
        tracker.db.close()
    print_success(f"Anomaly {args.id} acknowledged")
    return True


def cmd_scan(args):
    tracker = _tracker(args)
    try:
        findings = tracker.scan_periods() if args.periods else tracker.scan_history()
    finally:
        tracker.db.close()
    print_success(f"Scan complete: {len(findings)} new finding(s)")
    for finding in findings:
        print(f"{Colors.YELLOW}!{Colors.ENDC} [{finding.severity.value}] {finding.description}")
    return True


# ==================================
# ENTRY POINT
# ==================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Zero-knowledge personal finance tracker")
    parser.add_argument('--user', type=int, required=True, help='User id')
    parser.add_argument('--config', dest='config_file', help='Path to config.json')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('register', help='Create the encryption salt for a new user')
    p.set_defaults(func=cmd_register)

    p = sub.add_parser('logout', help='End the session')
    p.add_argument('--forget-salt', action='store_true', help='Also delete the local salt')
    p.set_defaults(func=cmd_logout)

    p = sub.add_parser('add', help='Add a transaction')
    p.add_argument('--amount', required=True)
    p.add_argument('--description', required=True)
    p.add_argument('--category', required=True, help=f"e.g. {', '.join(DEFAULT_CATEGORIES)}")
    p.add_argument('--date', help='YYYY-MM-DD (default: today)')
    p.add_argument('--merchant')
    p.set_defaults(func=cmd_add)

    p = sub.add_parser('list', help='List decrypted transactions')
    p.add_argument('--start', help='Start date YYYY-MM-DD (inclusive)')
    p.add_argument('--end', help='End date YYYY-MM-DD (inclusive)')
    p.set_defaults(func=cmd_list)

    p = sub.add_parser('summary', help='Spending summary')
    p.add_argument('--as-of', help='Reference date YYYY-MM-DD')
    p.set_defaults(func=cmd_summary)

    p = sub.add_parser('anomalies', help='List anomaly findings')
    p.add_argument('--unacknowledged', action='store_true')
    p.add_argument('--limit', type=int, default=DEFAULT_FINDINGS_LIMIT)
    p.set_defaults(func=cmd_anomalies)

    p = sub.add_parser('ack', help='Acknowledge an anomaly')
    p.add_argument('id', type=int)
    p.set_defaults(func=cmd_ack)

    p = sub.add_parser('scan', help='Scan stored history for anomalies')
    p.add_argument('--periods', action='store_true', help='Monthly spike/frequency checks instead')
    p.set_defaults(func=cmd_scan)

    return parser


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.config = load_config(Path(args.config_file) if args.config_file else None)
    # stdout carries command output (JSON for list/summary/anomalies)
    setup_logging('cli', level=args.config['logging'].get('level', 'INFO'), stream=sys.stderr)

    try:
        ok = args.func(args)
    except SaltNotFoundError:
        print_error("Re-authentication required: no encryption salt for this user on this device.")
        return 2
    except DecryptionError as e:
        print_error(f"Decryption failed: {e}")
        return 2
    except ValidationError as e:
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print_info("Interrupted by user")
        return 130
    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())
