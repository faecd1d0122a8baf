from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from reservabot.application.utils.message_rules import (
    mentions_delivery,
    mentions_food,
    normalize_text,
    rejects_delivery,
)
from reservabot.application.utils.product_mentions import find_product_by_name
from reservabot.domain.entities.business import Business, ServiceDefinition

FIELD_LABELS = {
    "service": "servicio",
    "products": "productos",
    "date": "fecha",
    "time": "hora",
    "address": "dirección",
    "phone": "teléfono",
    "guests": "número de personas",
    "tableId": "mesa",
    "name": "nombre",
}

FAMILY_WORDS = {
    "domicilio": ("domicilio", "delivery", "envio"),
    "mesa": ("mesa", "restaurante", "para llevar", "local"),
    "cita": ("cita", "consulta"),
}


@dataclass(frozen=True)
class ServiceRequirements:
    service_key: str | None
    required_fields: tuple[str, ...]
    requires_payment: bool = False
    reservation_noun: str = "reserva"
    validator_config: dict[str, Any] = field(default_factory=dict)


def is_delivery(service: ServiceDefinition) -> bool:
    text = normalize_text(f"{service.key} {service.name}")
    return service.requires_address or any(word in text for word in FAMILY_WORDS["domicilio"])


def is_table_service(service: ServiceDefinition) -> bool:
    text = normalize_text(f"{service.key} {service.name}")
    return service.requires_table or any(word in text for word in ("mesa", "restaurante"))


def requires_guests(service: ServiceDefinition, guests_by_default: bool = True) -> bool:
    if service.requires_guests is not None:
        return service.requires_guests
    return guests_by_default and not service.requires_products


def required_fields_for(service: ServiceDefinition, guests_by_default: bool = True) -> tuple[str, ...]:
    if service.required_fields:
        return tuple(service.required_fields)
    fields: list[str] = []
    if service.requires_products:
        fields.append("products")
    fields.extend(["date", "time"])
    if service.requires_address:
        fields.append("address")
    fields.append("phone")
    if requires_guests(service, guests_by_default):
        fields.append("guests")
    return tuple(fields)


def match_service(business: Business, value: Any) -> str | None:
    """Catalog key for a key, display name, synonym or service family word."""
    if not isinstance(value, str):
        return None
    wanted = normalize_text(value)
    if not wanted:
        return None
    services = business.active_services()

    for service in services:
        if normalize_text(service.key) == wanted or normalize_text(service.name) == wanted:
            return service.key
    for service in services:
        if wanted in (normalize_text(s) for s in service.synonyms):
            return service.key
    for service in services:
        key = normalize_text(service.key)
        name = normalize_text(service.name)
        if key in wanted or wanted in key or (len(wanted) >= 4 and wanted in name):
            return service.key

    family = next((f for f, words in FAMILY_WORDS.items() if f == wanted or wanted in words), None)
    if family == "domicilio":
        return next((s.key for s in services if is_delivery(s)), None)
    if family == "mesa":
        return next((s.key for s in services if is_table_service(s)), None)
    if family == "cita":
        candidates = [s for s in services if not is_delivery(s) and not is_table_service(s)]
        return candidates[0].key if len(candidates) == 1 else None
    return None


def field_label(field_name: str) -> str:
    return FIELD_LABELS.get(field_name, field_name)


class ServiceResolver:
    def __init__(self, guests_by_default: bool = True) -> None:
        self._guests_by_default = guests_by_default
        self._logger = logging.getLogger(__name__)

    def resolve(self, business: Business, service_key: str | None) -> ServiceRequirements:
        service = business.get_service(service_key)
        if service is None:
            return ServiceRequirements(service_key=None, required_fields=self._unresolved_fields(business))

        return ServiceRequirements(
            service_key=service.key,
            required_fields=required_fields_for(service, self._guests_by_default),
            requires_payment=service.requires_payment,
            reservation_noun="pedido" if is_delivery(service) else "reserva",
            validator_config={
                "requires_table": service.requires_table,
                "requires_products": service.requires_products,
                "capacity": service.capacity,
                "min_advance_minutes": service.min_advance_minutes,
                "hours": service.hours or business.hours,
                "delivery_fee": service.delivery_fee,
            },
        )

    def _unresolved_fields(self, business: Business) -> tuple[str, ...]:
        """`service` plus the fields every offered service needs, in precedence order."""
        services = business.active_services()
        if not services:
            return ("date", "time", "phone")
        per_service = [required_fields_for(s, self._guests_by_default) for s in services]
        common = [f for f in per_service[0] if all(f in fields for fields in per_service[1:])]
        return ("service", *common) if len(services) > 1 else tuple(common)

    def single_service_key(self, business: Business) -> str | None:
        services = business.active_services()
        return services[0].key if len(services) == 1 else None

    def correct_slot_names(self, business: Business, extracted: dict[str, Any]) -> dict[str, Any]:
        """Move a product name extracted as `service` into products and re-route to the products service."""
        value = extracted.get("service")
        if not value or match_service(business, value):
            return extracted

        product_id = find_product_by_name(business, str(value))
        if not product_id:
            return extracted

        corrected = dict(extracted)
        products = list(corrected.get("products") or [])
        if not any(item.get("id") == product_id for item in products):
            products.append({"id": product_id, "quantity": 1})
        corrected["products"] = products
        product_services = [s for s in business.active_services() if s.requires_products]
        if len(product_services) == 1:
            corrected["service"] = product_services[0].key
        else:
            corrected.pop("service", None)
        self._logger.info(
            "Service slot held a product name",
            extra={"business_id": business.id, "product_id": product_id},
        )
        return corrected

    def infer_service(
        self,
        business: Business,
        message: str,
        current_service: str | None,
        explicit_service: str | None,
        mentioned_products: list[dict[str, Any]],
    ) -> str | None:
        """
        Pick the service for this turn.

        Precedence: an explicit "no delivery" switches to the table service; an
        explicit service named in this message wins; an already chosen service
        is kept; only then products / delivery / food mentions infer the
        products service. A single offered service is always assigned.
        """
        services = business.active_services()
        if len(services) == 1:
            return services[0].key

        if rejects_delivery(message):
            table = next((s.key for s in services if is_table_service(s) and not is_delivery(s)), None)
            if table:
                return table

        if explicit_service:
            return explicit_service
        if current_service and business.get_service(current_service):
            return current_service

        if mentioned_products or mentions_delivery(message) or mentions_food(message):
            delivery = [s for s in services if s.requires_products and is_delivery(s)]
            candidates = delivery or [s for s in services if s.requires_products]
            if candidates:
                return candidates[0].key
        return None

    def service_options(self, business: Business) -> list[str]:
        return [f"{s.name} ({s.key})" for s in business.active_services()]
