"""
Config -> Kernel Bridges.

Functions that turn a ``StockConfig`` into kernel objects.  They live here
because the kernel must never import stock_config.

Usage:
    config = get_active_config()
    init_engine_from_config(config)
    with session_scope() as session:
        services = build_services(session, config)
        services.settlement.confirm_invoice(invoice_id, actor_id)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_kernel.db.engine import init_engine_from_url
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.services.adjustment_service import AdjustmentService
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.batch_service import BatchService
from stock_kernel.services.catalog_service import CatalogService
from stock_kernel.services.quotation_service import QuotationService
from stock_kernel.services.settlement_service import SettlementService
from stock_modules.reporting.service import ProfitLossService


def init_engine_from_config(config: StockConfig) -> Engine:
    return init_engine_from_url(
        config.database_url,
        echo=config.echo_sql,
        pool_size=config.pool_size,
        pool_timeout=int(config.store_timeout_seconds),
        store_timeout_seconds=config.store_timeout_seconds,
    )


@dataclass(frozen=True)
class StockServices:
    """Write-side services and the P&L reader sharing one session and clock."""

    auditor: AuditorService
    catalog: CatalogService
    batches: BatchService
    settlement: SettlementService
    adjustments: AdjustmentService
    quotations: QuotationService
    profit_loss: ProfitLossService


def build_services(
    session: Session,
    config: StockConfig,
    clock: Clock | None = None,
) -> StockServices:
    clock = clock or SystemClock()
    auditor = AuditorService(session, clock)
    settlement = SettlementService(
        session,
        clock,
        auditor,
        low_stock_threshold=config.low_stock_threshold,
        invoice_number_prefix=config.invoice_number_prefix,
    )
    return StockServices(
        auditor=auditor,
        catalog=CatalogService(session, clock, auditor),
        batches=BatchService(session, clock, auditor),
        settlement=settlement,
        adjustments=AdjustmentService(session, clock, auditor),
        quotations=QuotationService(
            session,
            clock,
            auditor,
            settlement=settlement,
            allocation_mode=config.allocation_mode,
            quotation_number_prefix=config.quotation_number_prefix,
        ),
        profit_loss=ProfitLossService(
            session,
            clock,
            week_start=config.week_start,
            decimal_places=config.money_decimal_places,
        ),
    )
