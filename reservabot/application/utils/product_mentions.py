from __future__ import annotations

import re
from typing import Any

from reservabot.application.utils.message_rules import NUMBER_WORDS, normalize_text, parse_quantity
from reservabot.domain.entities.business import Business

_QUANTITY = rf"(\d{{1,2}}|{'|'.join(sorted(NUMBER_WORDS, key=len, reverse=True))})"


def parse_product_mentions(business: Business, message: str) -> list[dict[str, Any]]:
    """Catalog products named in the message, with digit or number-word quantities (default 1)."""
    remaining = normalize_text(message)
    found: list[dict[str, Any]] = []

    for product in sorted(business.products, key=lambda p: len(p.name), reverse=True):
        name = normalize_text(product.name)
        if not name:
            continue
        pattern = re.compile(rf"(?:(?<!\w){_QUANTITY}\s+(?:de\s+)?)?(?<!\w){re.escape(name)}(?:s|es)?(?!\w)")
        match = pattern.search(remaining)
        if not match:
            continue
        quantity = parse_quantity(match.group(1)) if match.group(1) else None
        found.append({"id": product.id, "quantity": quantity or 1})
        remaining = remaining[: match.start()] + " " + remaining[match.end() :]

    return found


def merge_products(existing: list[dict[str, Any]] | None, mentioned: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Newly mentioned items replace the quantity of the same id; other existing items are kept."""
    merged: dict[str, dict[str, Any]] = {}
    for item in existing or []:
        if item.get("id"):
            merged[item["id"]] = {"id": item["id"], "quantity": int(item.get("quantity") or 1)}
    for item in mentioned:
        merged[item["id"]] = {"id": item["id"], "quantity": int(item.get("quantity") or 1)}
    return list(merged.values())


def product_names(business: Business) -> list[str]:
    return [product.name for product in business.products]


def find_product_by_name(business: Business, value: str) -> str | None:
    normalized = normalize_text(value)
    if not normalized:
        return None
    for product in business.products:
        if normalize_text(product.name) == normalized or product.id == value:
            return product.id
    return None
