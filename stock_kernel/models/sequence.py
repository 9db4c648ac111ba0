"""Named counters behind invoice, quotation and audit numbering."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  The row is locked
    (``SELECT ... FOR UPDATE``) while it is incremented.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
