"""
Stock Kernel - batch/lot stock ledger and invoice settlement core.

A transactional, auditable stock system with:
- Expiry-ordered batch allocation
- Append-only stock ledger reconciled against batch balances
- Atomic invoice confirmation with all-or-nothing batch deduction
- Returns, write-offs and count corrections with invoice credit
- Hash-chained audit trail
"""

__version__ = "0.1.0"
