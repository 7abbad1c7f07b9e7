"""
Passbook - Source Package

A single-user budget ledger: a running cash balance, monthly allowance
periods and individual expenses, guarded by a PIN.

DESIGN PRINCIPLES:
1. The expense record is the source of truth; totals are derived counters
2. Every mutation is a fixed sequence of single-item store operations
3. Services are stateless; every operation re-reads what it needs
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Passbook Team"
