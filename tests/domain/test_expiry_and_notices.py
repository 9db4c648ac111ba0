"""Tests for expiry ordering, stock notices and adjustment request validation."""

from datetime import date
from uuid import uuid4

import pytest

from stock_kernel.domain.adjustments import (
    AdjustmentType,
    CountCorrectionRequest,
    ReturnAction,
    ReturnRequest,
    WriteOffRequest,
)
from stock_kernel.domain.dtos import StockNoticeKind, stock_notice_for
from stock_kernel.domain.expiry import NEVER_EXPIRES, expiry_sort_key, is_expired
from stock_kernel.exceptions import ValidationError


class TestExpiry:
    def test_undated_sorts_after_every_dated_batch(self):
        assert expiry_sort_key(None) > expiry_sort_key(date(2999, 12, 31))
        assert expiry_sort_key(None)[0] == NEVER_EXPIRES

    def test_sellable_through_expiry_date(self):
        assert not is_expired(date(2024, 6, 1), date(2024, 6, 1))
        assert is_expired(date(2024, 6, 1), date(2024, 6, 2))
        assert not is_expired(None, date(2999, 1, 1))


class TestStockNotices:
    def _notice(self, remaining, threshold=50):
        return stock_notice_for(uuid4(), "Cetirizine", uuid4(), "CTZ-1", remaining, threshold)

    def test_out_of_stock(self):
        notice = self._notice(0)
        assert notice.kind == StockNoticeKind.OUT_OF_STOCK
        assert "out of stock" in notice.message

    def test_low_stock_at_threshold(self):
        notice = self._notice(50)
        assert notice.kind == StockNoticeKind.LOW_STOCK
        assert "50 left" in notice.message

    def test_healthy_stock_has_no_notice(self):
        assert self._notice(51) is None


class TestAdjustmentRequests:
    def test_return_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            ReturnRequest(uuid4(), uuid4(), uuid4(), 0, ReturnAction.RESTOCK)

    def test_return_action_must_be_known(self):
        with pytest.raises(ValidationError):
            ReturnRequest(uuid4(), uuid4(), uuid4(), 1, "donate")

    def test_write_off_kind_checked(self):
        with pytest.raises(ValidationError):
            WriteOffRequest(AdjustmentType.FOUND, uuid4(), uuid4(), 1, "miscount")

    def test_write_off_accepts_plain_string_kind(self):
        request = WriteOffRequest("damage", uuid4(), uuid4(), 2, "broken vials")
        assert request.adjustment_type == AdjustmentType.DAMAGE

    def test_write_off_quantity_positive(self):
        with pytest.raises(ValidationError):
            WriteOffRequest(AdjustmentType.DAMAGE, uuid4(), uuid4(), -2, "broken")

    def test_correction_quantity_non_zero(self):
        with pytest.raises(ValidationError):
            CountCorrectionRequest(AdjustmentType.CORRECTION, uuid4(), uuid4(), 0, "recount")

    def test_correction_kind_checked(self):
        with pytest.raises(ValidationError):
            CountCorrectionRequest(AdjustmentType.LOST, uuid4(), uuid4(), -1, "recount")
