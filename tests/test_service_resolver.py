"""
Tests for service requirements, service matching and service inference.
"""

from __future__ import annotations

from conftest import clinic_business, restaurant_business

from reservabot.application.utils.product_mentions import merge_products, parse_product_mentions
from reservabot.application.utils.service_resolver import ServiceResolver, match_service
from reservabot.infrastructure.directory.business_parser import parse_business


def test_requirements_per_service():
    resolver = ServiceResolver()
    restaurant = restaurant_business()

    mesa = resolver.resolve(restaurant, "mesa")
    assert mesa.required_fields == ("date", "time", "phone", "guests")
    assert mesa.reservation_noun == "reserva"
    assert not mesa.requires_payment

    domicilio = resolver.resolve(restaurant, "domicilio")
    assert domicilio.required_fields == ("products", "date", "time", "address", "phone")
    assert domicilio.reservation_noun == "pedido"
    assert domicilio.requires_payment
    assert domicilio.validator_config["delivery_fee"] == 5000

    consulta = resolver.resolve(clinic_business(), "consulta")
    assert consulta.required_fields == ("date", "time", "name", "phone")


def test_unresolved_service_asks_for_service_first():
    """Without a service only the fields every service shares are required."""
    requirements = ServiceResolver().resolve(restaurant_business(), None)
    assert requirements.service_key is None
    assert requirements.required_fields == ("service", "date", "time", "phone")


def test_match_service_by_key_name_synonym_and_family():
    restaurant = restaurant_business()
    assert match_service(restaurant, "Domicilio") == "domicilio"
    assert match_service(restaurant, "delivery") == "domicilio"
    assert match_service(restaurant, "restaurante") == "mesa"
    assert match_service(restaurant, "Mesa en restaurante") == "mesa"
    assert match_service(restaurant, "spa") is None
    assert match_service(restaurant, None) is None
    assert match_service(clinic_business(), "cita") == "consulta"


def test_product_name_in_service_slot_moves_to_products():
    corrected = ServiceResolver().correct_slot_names(restaurant_business(), {"service": "lasagna"})
    assert corrected["products"] == [{"id": "lasagna", "quantity": 1}]
    assert corrected["service"] == "domicilio"


def test_valid_service_slot_is_untouched():
    slots = {"service": "mesa"}
    assert ServiceResolver().correct_slot_names(restaurant_business(), slots) is slots


def test_infer_service_precedence():
    resolver = ServiceResolver()
    restaurant = restaurant_business()

    # explicit rejection of delivery switches to the table service
    assert resolver.infer_service(restaurant, "no quiero domicilio, mejor en el local", "domicilio", None, []) == "mesa"
    # an explicit service beats product mentions
    assert resolver.infer_service(restaurant, "una mesa y una pizza", None, "mesa", [{"id": "pizza-margarita"}]) == "mesa"
    # the current service is kept
    assert resolver.infer_service(restaurant, "a las 8", "mesa", None, []) == "mesa"
    # products imply the delivery service
    assert resolver.infer_service(restaurant, "2 lasagnas", None, None, [{"id": "lasagna", "quantity": 2}]) == "domicilio"
    assert resolver.infer_service(restaurant, "a las 8", None, None, []) is None


def test_single_service_is_always_assigned():
    business = parse_business({"id": "spa", "name": "Spa Zen", "services": [{"key": "masaje", "name": "Masaje"}]})
    resolver = ServiceResolver()
    assert resolver.single_service_key(business) == "masaje"
    assert resolver.infer_service(business, "hola", None, None, []) == "masaje"


def test_product_mentions_with_quantities():
    mentions = parse_product_mentions(restaurant_business(), "quiero 2 lasagnas y una pizza margarita")
    assert {"id": "lasagna", "quantity": 2} in mentions
    assert {"id": "pizza-margarita", "quantity": 1} in mentions


def test_merge_products_replaces_quantities():
    merged = merge_products(
        [{"id": "lasagna", "quantity": 1}, {"id": "tiramisu", "quantity": 1}],
        [{"id": "lasagna", "quantity": 3}],
    )
    assert merged == [{"id": "lasagna", "quantity": 3}, {"id": "tiramisu", "quantity": 1}]
