from __future__ import annotations

import json
from datetime import date

from reservabot.application.utils.date_parser import date_references
from reservabot.application.utils.service_resolver import field_label
from reservabot.domain.entities.business import Business
from reservabot.domain.entities.conversation_state import ConversationState

SCHEMA_HINT = (
    "{\n"
    "  \"intention\": \"greeting|reserve|cancel|query|farewell|other\",\n"
    "  \"confidence\": 0.0,\n"
    "  \"extractedData\": {\n"
    "    \"date\": \"YYYY-MM-DD or null\",\n"
    "    \"time\": \"HH:MM or null\",\n"
    "    \"guests\": \"number or null\",\n"
    "    \"phone\": \"string or null\",\n"
    "    \"name\": \"string or null\",\n"
    "    \"service\": \"service key or null\",\n"
    "    \"address\": \"string or null\",\n"
    "    \"products\": [{\"id\": \"product id\", \"quantity\": 1}]\n"
    "  },\n"
    "  \"missingFields\": [\"field\"],\n"
    "  \"suggestedReply\": \"short reply in Spanish or null\"\n"
    "}\n"
)


def _services_block(business: Business) -> str:
    services = business.active_services()
    if not services:
        return "  (no services configured)\n"
    lines = []
    for service in services:
        synonyms = f" synonyms: {', '.join(service.synonyms)}" if service.synonyms else ""
        lines.append(f"  - key: \"{service.key}\" name: {service.name}{synonyms}\n")
    return "".join(lines)


def _products_block(business: Business, max_products: int) -> str:
    if not business.products:
        return "  (no products)\n"
    return "".join(
        f"  - id: \"{p.id}\" name: {p.name} price: {p.price:g}\n" for p in business.products[:max_products]
    )


def _history_block(state: ConversationState | None, turns: int) -> str:
    if state is None or not state.history:
        return "  (no previous messages)\n"
    return "".join(f"  {turn.role}: {turn.text}\n" for turn in state.history[-turns:])


def build_detection_prompt(
    message: str,
    business: Business,
    state: ConversationState | None,
    required_fields: list[str] | tuple[str, ...],
    today: date,
    history_turns: int = 15,
    max_products: int = 20,
) -> str:
    refs = date_references(today)
    refs_block = "".join(f"  - {label}: {iso}\n" for label, iso in refs.items())
    multiple_services = len(business.active_services()) > 1

    current = "  stage: idle\n"
    if state is not None:
        current = (
            f"  stage: {state.stage}\n"
            f"  last_intention: {state.last_intention}\n"
            f"  collected: {json.dumps(state.collected_data, ensure_ascii=False)}\n"
        )

    required = ", ".join(f"{f} ({field_label(f)})" for f in required_fields) or "none"

    return (
        "You classify customer messages for a booking assistant and extract reservation data.\n"
        "Return ONLY valid JSON. No markdown. No extra text.\n"
        "Output schema:\n"
        f"{SCHEMA_HINT}"
        "Rules:\n"
        "  - Use null for anything the customer did not say. Never invent values.\n"
        "  - Resolve relative dates with the date references below.\n"
        "  - time is 24h HH:MM (\"7pm\" -> \"19:00\").\n"
        "  - phone is digits only, 7 to 10 digits.\n"
        "  - products use the exact ids listed below.\n"
        + ("  - service MUST be one of the listed keys when the customer mentions any variant of it.\n" if multiple_services else "")
        + "  - If only a time is given, do not assume a date.\n"
        "\n"
        f"Business: {business.name} (type: {business.type})\n"
        "Services:\n"
        f"{_services_block(business)}"
        "Products:\n"
        f"{_products_block(business, max_products)}"
        "Date references:\n"
        f"{refs_block}"
        "Conversation so far:\n"
        f"{_history_block(state, history_turns)}"
        "Current state:\n"
        f"{current}"
        f"Required fields: {required}\n"
        "\n"
        f"Message: {json.dumps(message, ensure_ascii=False)}\n"
    )
