"""
Tests for validating business configurations.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from reservabot.infrastructure.directory.business_parser import business_to_dict, parse_business
from reservabot.infrastructure.directory.sample_businesses import SAMPLE_BUSINESSES


def test_spanish_day_names_are_normalized():
    business = parse_business({"id": "b1", "name": "Café", "hours": {"Lunes": "08:00-12:00", "sábado": "Closed"}})
    assert business.hours == {"monday": "08:00-12:00", "saturday": "cerrado"}


@pytest.mark.parametrize(
    "hours",
    [
        {"monday": "8-12"},
        {"funday": "08:00-12:00"},
        {"monday": "08:00-12:00,"},
    ],
)
def test_invalid_hours_are_rejected(hours):
    with pytest.raises(ValidationError):
        parse_business({"id": "b1", "name": "Café", "hours": hours})


def test_plain_string_keywords():
    business = parse_business(
        {"id": "b1", "name": "Café", "intentions": [{"name": "greeting", "keywords": ["hola", {"value": "buenas", "weight": 0.6}]}]}
    )
    [greeting] = business.intentions
    assert [(k.value, k.weight) for k in greeting.patterns] == [("hola", 0.8), ("buenas", 0.6)]


def test_missing_name_is_rejected():
    with pytest.raises(ValidationError):
        parse_business({"id": "b1"})


def test_unknown_type_becomes_generic():
    assert parse_business({"id": "b1", "name": "Café", "type": "Bakery"}).type == "generic"


def test_round_trip_through_dict():
    for raw in SAMPLE_BUSINESSES:
        business = parse_business(raw)
        assert parse_business(business_to_dict(business)) == business
