from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reservabot.application.utils.date_parser import WEEKDAYS_EN
from reservabot.domain.entities.business import (
    Business,
    IntentionDefinition,
    KeywordPattern,
    ProductDefinition,
    Resource,
    ServiceDefinition,
)

_WINDOW_RE = re.compile(r"^\d{2}:\d{2}-\d{2}:\d{2}(?:\s*,\s*\d{2}:\d{2}-\d{2}:\d{2})*$")
_SPANISH_DAYS = {
    "lunes": "monday",
    "martes": "tuesday",
    "miercoles": "wednesday",
    "miércoles": "wednesday",
    "jueves": "thursday",
    "viernes": "friday",
    "sabado": "saturday",
    "sábado": "saturday",
    "domingo": "sunday",
}


def _normalize_hours(value: dict[str, str] | None) -> dict[str, str] | None:
    if value is None:
        return None
    hours: dict[str, str] = {}
    for day, window in value.items():
        key = _SPANISH_DAYS.get(day.strip().lower(), day.strip().lower())
        if key not in WEEKDAYS_EN:
            raise ValueError(f"unknown weekday {day!r}")
        text = str(window).strip().lower()
        if text not in ("cerrado", "closed") and not _WINDOW_RE.match(text):
            raise ValueError(f"invalid hours {window!r} for {day}")
        hours[key] = "cerrado" if text == "closed" else text
    return hours


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class KeywordConfig(_Model):
    value: str
    weight: float = Field(default=0.8, ge=0.0, le=1.0)
    whole_word: bool = Field(default=False, alias="wholeWord")


class IntentionConfig(_Model):
    name: str
    patterns: list[KeywordConfig] = Field(default_factory=list, alias="keywords")
    examples: list[str] = Field(default_factory=list)
    priority: int = 0

    @field_validator("patterns", mode="before")
    @classmethod
    def plain_keywords(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"value": item} if isinstance(item, str) else item for item in value]
        return value


class ServiceConfig(_Model):
    key: str
    name: str
    requires_products: bool = Field(default=False, alias="requiresProducts")
    requires_guests: bool | None = Field(default=None, alias="requiresGuests")
    requires_table: bool = Field(default=False, alias="requiresTable")
    requires_payment: bool = Field(default=False, alias="requiresPayment")
    requires_address: bool = Field(default=False, alias="requiresAddress")
    required_fields: list[str] | None = Field(default=None, alias="requiredFields")
    synonyms: list[str] = Field(default_factory=list)
    capacity: int | None = Field(default=None, ge=1)
    delivery_fee: int = Field(default=0, ge=0, alias="deliveryFee")
    min_advance_minutes: int = Field(default=0, ge=0, alias="minAdvanceMinutes")
    hours: dict[str, str] | None = None
    enabled: bool = True

    @field_validator("hours")
    @classmethod
    def valid_hours(cls, value: dict[str, str] | None) -> dict[str, str] | None:
        return _normalize_hours(value)


class ProductConfig(_Model):
    id: str
    name: str
    price: float = Field(default=0.0, ge=0.0)
    category: str | None = None
    description: str | None = None
    available: bool = True
    stock: int | None = Field(default=None, ge=0)
    available_dates: list[str] = Field(default_factory=list, alias="availableDates")
    excluded_dates: list[str] = Field(default_factory=list, alias="excludedDates")
    duration: int | None = None


class ResourceConfig(_Model):
    id: str
    name: str
    capacity: int = Field(ge=1)
    type: str = "table"
    available: bool = True


class BusinessConfig(_Model):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: str = "generic"
    hours: dict[str, str] = Field(default_factory=dict)
    services: list[ServiceConfig] = Field(default_factory=list)
    products: list[ProductConfig] = Field(default_factory=list)
    resources: list[ResourceConfig] = Field(default_factory=list)
    intentions: list[IntentionConfig] = Field(default_factory=list)
    payment_percentage: int = Field(default=100, ge=0, le=100, alias="paymentPercentage")
    capacity: int | None = Field(default=None, ge=1)
    address: str | None = None

    @field_validator("hours")
    @classmethod
    def valid_hours(cls, value: dict[str, str]) -> dict[str, str]:
        return _normalize_hours(value) or {}

    @field_validator("type")
    @classmethod
    def known_type(cls, value: str) -> str:
        value = value.strip().lower()
        return value if value in ("restaurant", "clinic", "spa", "generic") else "generic"


def parse_business(raw: dict[str, Any]) -> Business:
    """Validate a raw business configuration and build the typed Business. Raises pydantic.ValidationError."""
    config = BusinessConfig.model_validate(raw)
    return Business(
        id=config.id,
        name=config.name,
        type=config.type,
        hours=config.hours,
        services=tuple(
            ServiceDefinition(
                key=s.key,
                name=s.name,
                requires_products=s.requires_products,
                requires_guests=s.requires_guests,
                requires_table=s.requires_table,
                requires_payment=s.requires_payment,
                requires_address=s.requires_address,
                required_fields=tuple(s.required_fields) if s.required_fields else None,
                synonyms=tuple(s.synonyms),
                capacity=s.capacity,
                delivery_fee=s.delivery_fee,
                min_advance_minutes=s.min_advance_minutes,
                hours=s.hours,
                enabled=s.enabled,
            )
            for s in config.services
        ),
        products=tuple(
            ProductDefinition(
                id=p.id,
                name=p.name,
                price=p.price,
                category=p.category,
                description=p.description,
                available=p.available,
                stock=p.stock,
                available_dates=tuple(p.available_dates),
                excluded_dates=tuple(p.excluded_dates),
                duration=p.duration,
            )
            for p in config.products
        ),
        resources=tuple(
            Resource(id=r.id, name=r.name, capacity=r.capacity, type=r.type, available=r.available)
            for r in config.resources
        ),
        intentions=tuple(
            IntentionDefinition(
                name=i.name,
                patterns=tuple(
                    KeywordPattern(value=k.value, weight=k.weight, whole_word=k.whole_word) for k in i.patterns
                ),
                examples=tuple(i.examples),
                priority=i.priority,
            )
            for i in config.intentions
        ),
        payment_percentage=config.payment_percentage,
        capacity=config.capacity,
        address=config.address,
    )


def business_to_dict(business: Business) -> dict[str, Any]:
    """Inverse of parse_business, used to cache business configurations as JSON."""
    return {
        "id": business.id,
        "name": business.name,
        "type": business.type,
        "hours": dict(business.hours),
        "services": [
            {
                "key": s.key,
                "name": s.name,
                "requiresProducts": s.requires_products,
                "requiresGuests": s.requires_guests,
                "requiresTable": s.requires_table,
                "requiresPayment": s.requires_payment,
                "requiresAddress": s.requires_address,
                "requiredFields": list(s.required_fields) if s.required_fields else None,
                "synonyms": list(s.synonyms),
                "capacity": s.capacity,
                "deliveryFee": s.delivery_fee,
                "minAdvanceMinutes": s.min_advance_minutes,
                "hours": s.hours,
                "enabled": s.enabled,
            }
            for s in business.services
        ],
        "products": [
            {
                "id": p.id,
                "name": p.name,
                "price": p.price,
                "category": p.category,
                "description": p.description,
                "available": p.available,
                "stock": p.stock,
                "availableDates": list(p.available_dates),
                "excludedDates": list(p.excluded_dates),
                "duration": p.duration,
            }
            for p in business.products
        ],
        "resources": [
            {"id": r.id, "name": r.name, "capacity": r.capacity, "type": r.type, "available": r.available}
            for r in business.resources
        ],
        "intentions": [
            {
                "name": i.name,
                "keywords": [{"value": k.value, "weight": k.weight, "wholeWord": k.whole_word} for k in i.patterns],
                "examples": list(i.examples),
                "priority": i.priority,
            }
            for i in business.intentions
        ],
        "paymentPercentage": business.payment_percentage,
        "capacity": business.capacity,
        "address": business.address,
    }
