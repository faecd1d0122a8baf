from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class KeywordPattern:
    value: str
    weight: float
    # match only as a whole word (or its plural) instead of anywhere in the message
    whole_word: bool = False


@dataclass(frozen=True)
class IntentionDefinition:
    name: str
    patterns: tuple[KeywordPattern, ...] = ()
    examples: tuple[str, ...] = ()
    priority: int = 0


@dataclass(frozen=True)
class ServiceDefinition:
    key: str
    name: str
    requires_products: bool = False
    requires_guests: bool | None = None  # None: derived from requires_products
    requires_table: bool = False
    requires_payment: bool = False
    requires_address: bool = False
    required_fields: tuple[str, ...] | None = None
    synonyms: tuple[str, ...] = ()
    capacity: int | None = None  # bookings per slot, appointment style
    delivery_fee: int = 0
    min_advance_minutes: int = 0
    hours: dict[str, str] | None = None
    enabled: bool = True


@dataclass(frozen=True)
class ProductDefinition:
    id: str
    name: str
    price: float = 0.0
    category: str | None = None
    description: str | None = None
    available: bool = True
    stock: int | None = None  # None: stock not tracked
    available_dates: tuple[str, ...] = ()
    excluded_dates: tuple[str, ...] = ()
    duration: int | None = None


@dataclass(frozen=True)
class Resource:
    id: str
    name: str
    capacity: int
    type: str = "table"
    available: bool = True


@dataclass(frozen=True)
class Business:
    id: str
    name: str
    type: str = "generic"  # restaurant | clinic | spa | generic
    hours: dict[str, str] = field(default_factory=dict)
    services: tuple[ServiceDefinition, ...] = ()
    products: tuple[ProductDefinition, ...] = ()
    resources: tuple[Resource, ...] = ()
    intentions: tuple[IntentionDefinition, ...] = ()
    payment_percentage: int = 100
    capacity: int | None = None
    address: str | None = None

    def active_services(self) -> list[ServiceDefinition]:
        return [s for s in self.services if s.enabled]

    def get_service(self, key: str | None) -> ServiceDefinition | None:
        if not key:
            return None
        normalized = key.lower().strip()
        for service in self.active_services():
            if service.key.lower() == normalized:
                return service
        return None

    def get_product(self, product_id: str | None) -> ProductDefinition | None:
        if not product_id:
            return None
        for product in self.products:
            if product.id == product_id:
                return product
        return None

    def tables(self) -> list[Resource]:
        return [r for r in self.resources if r.type == "table"]
