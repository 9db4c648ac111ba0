"""
Adjustment requests -- one variant per kind of non-sale stock movement.

    ReturnRequest           goods coming back against a settled invoice
    WriteOffRequest         DAMAGE / EXPIRED / LOST, always reduces stock
    CountCorrectionRequest  FOUND / CORRECTION, signed stock-count fix

Each variant carries only the fields its kind needs and validates them on
construction, so AdjustmentService never sees a RETURN without an invoice
or a write-off with a signed quantity.  Dispatch on the variant type.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from stock_kernel.exceptions import ValidationError


class AdjustmentType(str, Enum):
    RETURN = "return"
    DAMAGE = "damage"
    EXPIRED = "expired"
    LOST = "lost"
    FOUND = "found"
    CORRECTION = "correction"


class ReturnAction(str, Enum):
    """What happens to returned goods."""

    RESTOCK = "restock"  # back into the batch, cost added back in P&L
    SCRAP = "scrap"  # discarded, invoice credited only


WRITE_OFF_TYPES = frozenset(
    {AdjustmentType.DAMAGE, AdjustmentType.EXPIRED, AdjustmentType.LOST}
)

COUNT_CORRECTION_TYPES = frozenset({AdjustmentType.FOUND, AdjustmentType.CORRECTION})

# Write-offs that reduce net profit
PROFIT_WRITE_OFF_TYPES = frozenset({AdjustmentType.DAMAGE, AdjustmentType.EXPIRED})


def _coerce_kind(kind) -> AdjustmentType | None:
    try:
        return AdjustmentType(kind)
    except ValueError:
        return None


@dataclass(frozen=True)
class ReturnRequest:
    invoice_id: UUID
    product_id: UUID
    batch_id: UUID
    quantity: int
    action: ReturnAction
    reason: str = "customer return"

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValidationError(
                f"Return quantity must be positive, got {self.quantity}", field="quantity"
            )
        try:
            ReturnAction(self.action)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown return action: {self.action!r}", field="action"
            ) from exc

    @property
    def adjustment_type(self) -> AdjustmentType:
        return AdjustmentType.RETURN


@dataclass(frozen=True)
class WriteOffRequest:
    kind: AdjustmentType
    product_id: UUID
    batch_id: UUID
    quantity: int
    reason: str

    def __post_init__(self) -> None:
        if _coerce_kind(self.kind) not in WRITE_OFF_TYPES:
            raise ValidationError(
                f"{self.kind} is not a write-off type", field="kind"
            )
        if self.quantity <= 0:
            raise ValidationError(
                f"Write-off quantity must be positive, got {self.quantity}",
                field="quantity",
            )

    @property
    def adjustment_type(self) -> AdjustmentType:
        return AdjustmentType(self.kind)


@dataclass(frozen=True)
class CountCorrectionRequest:
    """Positive quantity adds stock, negative removes it."""

    kind: AdjustmentType
    product_id: UUID
    batch_id: UUID
    quantity: int
    reason: str

    def __post_init__(self) -> None:
        if _coerce_kind(self.kind) not in COUNT_CORRECTION_TYPES:
            raise ValidationError(
                f"{self.kind} is not a count correction type", field="kind"
            )
        if self.quantity == 0:
            raise ValidationError("Correction quantity must be non-zero", field="quantity")

    @property
    def adjustment_type(self) -> AdjustmentType:
        return AdjustmentType(self.kind)


AdjustmentRequest = ReturnRequest | WriteOffRequest | CountCorrectionRequest
