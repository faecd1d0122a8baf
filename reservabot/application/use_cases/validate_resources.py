from __future__ import annotations

import logging
from typing import Any

from reservabot.application.ports.inventory import InventoryPort
from reservabot.application.ports.reservations import ReservationRepositoryPort
from reservabot.application.utils.service_resolver import is_table_service
from reservabot.domain.entities.business import Business, Resource, ServiceDefinition
from reservabot.domain.entities.validation import ProductIssue, ResourceValidation

TABLE_NOT_FOUND = "table_not_found"
TABLE_UNAVAILABLE = "table_unavailable"
TABLE_TOO_SMALL = "table_too_small"
TABLE_TAKEN = "table_taken"
NO_TABLE = "no_table"

PRODUCT_NOT_FOUND = "not_found"
PRODUCT_UNAVAILABLE = "unavailable"
PRODUCT_NOT_ON_DATE = "not_available_on_date"
PRODUCT_INSUFFICIENT_STOCK = "insufficient_stock"


class ResourceValidator:
    def __init__(self, reservations: ReservationRepositoryPort, inventory: InventoryPort) -> None:
        self._reservations = reservations
        self._inventory = inventory
        self._logger = logging.getLogger(__name__)

    def validate(
        self,
        business: Business,
        service: ServiceDefinition | None,
        collected: dict[str, Any],
    ) -> ResourceValidation:
        """
        Validate the table and the products of a complete reservation.

        A requested table that cannot be used is replaced by the smallest free
        table that fits. Products are checked one by one: failing items are
        reported with a reason and valid items are kept.
        """
        date_value = collected.get("date") or ""
        time_value = collected.get("time") or ""

        table_id: str | None = None
        table_reason: str | None = None
        table_ok = True
        if service is not None and is_table_service(service) and business.tables():
            table_id, table_reason = self._pick_table(
                business,
                requested=collected.get("tableId"),
                guests=int(collected.get("guests") or 1),
                date_value=date_value,
                time_value=time_value,
            )
            table_ok = table_id is not None

        valid_products: list[dict[str, Any]] = []
        issues: list[ProductIssue] = []
        for item in collected.get("products") or []:
            issue = self._check_product(business, item, date_value)
            if issue is None:
                valid_products.append({"id": item["id"], "quantity": int(item.get("quantity") or 1)})
            else:
                issues.append(issue)

        is_valid = table_ok and not issues
        message = self._message(table_ok, table_reason, issues)
        if not is_valid:
            self._logger.info(
                "Resource validation failed",
                extra={"business_id": business.id, "reason": table_reason or issues[0].reason},
            )

        return ResourceValidation(
            is_valid=is_valid,
            table_id=table_id,
            table_reason=table_reason,
            message=message,
            valid_products=tuple(valid_products),
            invalid_products=tuple(issues),
        )

    def _pick_table(
        self,
        business: Business,
        requested: str | None,
        guests: int,
        date_value: str,
        time_value: str,
    ) -> tuple[str | None, str | None]:
        busy = {
            r.table_id
            for r in self._reservations.find_active_on(business.id, date_value)
            if r.time == time_value and r.table_id
        }

        reason: str | None = None
        if requested:
            table = next((t for t in business.tables() if t.id == requested), None)
            reason = self._table_problem(table, guests, busy)
            if reason is None:
                return requested, None

        candidates = sorted(
            (t for t in business.tables() if self._table_problem(t, guests, busy) is None),
            key=lambda t: (t.capacity, t.id),
        )
        if not candidates:
            return None, NO_TABLE
        return candidates[0].id, reason

    @staticmethod
    def _table_problem(table: Resource | None, guests: int, busy: set[str]) -> str | None:
        if table is None:
            return TABLE_NOT_FOUND
        if not table.available:
            return TABLE_UNAVAILABLE
        if table.capacity < guests:
            return TABLE_TOO_SMALL
        if table.id in busy:
            return TABLE_TAKEN
        return None

    def _check_product(self, business: Business, item: dict[str, Any], date_value: str) -> ProductIssue | None:
        product_id = str(item.get("id") or "")
        quantity = int(item.get("quantity") or 1)
        product = business.get_product(product_id)
        if product is None:
            return ProductIssue(
                product_id=product_id,
                name=product_id,
                reason=PRODUCT_NOT_FOUND,
                message=f"No encontramos el producto {product_id}.",
                requested=quantity,
            )
        if not product.available:
            return ProductIssue(
                product_id=product.id,
                name=product.name,
                reason=PRODUCT_UNAVAILABLE,
                message=f"{product.name} no está disponible por ahora.",
                requested=quantity,
            )
        if date_value in product.excluded_dates or (
            product.available_dates and date_value not in product.available_dates
        ):
            return ProductIssue(
                product_id=product.id,
                name=product.name,
                reason=PRODUCT_NOT_ON_DATE,
                message=f"{product.name} no está disponible el {date_value}.",
                requested=quantity,
            )
        stock = self._inventory.get_stock(business.id, product.id)
        if stock is not None and stock < quantity:
            return ProductIssue(
                product_id=product.id,
                name=product.name,
                reason=PRODUCT_INSUFFICIENT_STOCK,
                message=f"Solo nos quedan {stock} de {product.name}.",
                requested=quantity,
                available_stock=stock,
            )
        return None

    @staticmethod
    def _message(table_ok: bool, table_reason: str | None, issues: list[ProductIssue]) -> str | None:
        parts: list[str] = []
        if not table_ok:
            parts.append("No tenemos una mesa libre para ese número de personas a esa hora.")
        elif table_reason:
            parts.append("La mesa que pediste no está disponible, te asignamos otra.")
        parts.extend(issue.message for issue in issues)
        return " ".join(parts) or None
