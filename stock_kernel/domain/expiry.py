"""
Expiry ordering for batch allocation.

Batches are consumed earliest-expiry first.  A batch without an expiry
date is treated as expiring at ``NEVER_EXPIRES`` so that it sorts after
every dated batch under a plain total order; no None checks leak into
comparison code.
"""

from datetime import date

NEVER_EXPIRES: date = date.max


def effective_expiry(expiry_date: date | None) -> date:
    """Expiry date with the never-expires sentinel substituted for None."""
    return NEVER_EXPIRES if expiry_date is None else expiry_date


def expiry_sort_key(expiry_date: date | None, lot_number: str = "") -> tuple[date, str]:
    """
    Total-order key for allocation: expiry ascending, undated last.

    The lot number breaks ties between batches sharing an expiry date so
    repeated allocations over the same data pick the same batch.
    """
    return (effective_expiry(expiry_date), lot_number)


def is_expired(expiry_date: date | None, as_of: date) -> bool:
    """A batch is sellable through its expiry date inclusive."""
    return effective_expiry(expiry_date) < as_of
