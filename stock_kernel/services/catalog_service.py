"""
CatalogService -- reference records behind invoices and reports.

Creates categories, products, customers and sellers, and updates product
prices.  Price updates never touch existing invoice lines: those carry
their own snapshots.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.db.types import to_decimal
from stock_kernel.domain.clock import Clock
from stock_kernel.exceptions import PartyNotFoundError, ProductNotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.models.catalog import Category, Product
from stock_kernel.models.party import Customer, Seller
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService

logger = get_logger("services.catalog")


class CatalogService(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)

    def create_category(self, name: str, actor_id: UUID, description: str | None = None) -> Category:
        if not name or not name.strip():
            raise ValidationError("Category name is required", field="name")
        category = Category(
            name=name.strip(),
            description=description,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(category)
        self.session.flush()
        self._auditor.record("Category", category.id, AuditAction.CREATE, actor_id, {"name": category.name})
        return category

    def create_product(
        self,
        name: str,
        cost_price: Decimal,
        sales_price: Decimal,
        actor_id: UUID,
        tp_rate: Decimal | None = None,
        category_id: UUID | None = None,
        sku: str | None = None,
        unit: str = "pcs",
    ) -> Product:
        """
        Register a product with its three independent prices.

        Raises:
            ValidationError: On a blank name or a negative price.
            PartyNotFoundError: If category_id does not resolve.
        """
        if not name or not name.strip():
            raise ValidationError("Product name is required", field="name")
        prices = {
            "cost_price": to_decimal(cost_price),
            "sales_price": to_decimal(sales_price),
            "tp_rate": to_decimal(tp_rate) if tp_rate is not None else None,
        }
        for field_name, value in prices.items():
            if value is not None and value < 0:
                raise ValidationError(f"{field_name} must be non-negative", field=field_name)
        if category_id is not None and self.session.get(Category, category_id) is None:
            raise PartyNotFoundError("Category", str(category_id))

        product = Product(
            name=name.strip(),
            sku=sku,
            unit=unit,
            category_id=category_id,
            created_at=self.clock.now(),
            created_by_id=actor_id,
            **prices,
        )
        self.session.add(product)
        self.session.flush()

        self._auditor.record(
            "Product",
            product.id,
            AuditAction.CREATE,
            actor_id,
            {"name": product.name, **prices},
        )
        logger.info(
            "product_created",
            extra={"product_id": str(product.id), "product_name": product.name},
        )
        return product

    def update_prices(
        self,
        product_id: UUID,
        actor_id: UUID,
        cost_price: Decimal | None = None,
        tp_rate: Decimal | None = None,
        sales_price: Decimal | None = None,
    ) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))

        changes: dict[str, Decimal] = {}
        for field_name, value in (
            ("cost_price", cost_price),
            ("tp_rate", tp_rate),
            ("sales_price", sales_price),
        ):
            if value is None:
                continue
            value = to_decimal(value)
            if value < 0:
                raise ValidationError(f"{field_name} must be non-negative", field=field_name)
            setattr(product, field_name, value)
            changes[field_name] = value

        product.updated_by_id = actor_id
        self.session.flush()
        self._auditor.record("Product", product.id, AuditAction.UPDATE, actor_id, changes)
        return product

    def create_customer(
        self,
        name: str,
        actor_id: UUID,
        phone: str | None = None,
        address: str | None = None,
    ) -> Customer:
        if not name or not name.strip():
            raise ValidationError("Customer name is required", field="name")
        customer = Customer(
            name=name.strip(),
            phone=phone,
            address=address,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(customer)
        self.session.flush()
        self._auditor.record("Customer", customer.id, AuditAction.CREATE, actor_id, {"name": customer.name})
        return customer

    def create_seller(self, name: str, actor_id: UUID, phone: str | None = None) -> Seller:
        if not name or not name.strip():
            raise ValidationError("Seller name is required", field="name")
        seller = Seller(
            name=name.strip(),
            phone=phone,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(seller)
        self.session.flush()
        self._auditor.record("Seller", seller.id, AuditAction.CREATE, actor_id, {"name": seller.name})
        return seller
