from __future__ import annotations

import re
import unicodedata

GREETING_KEYWORDS = ("hola", "buenos dias", "buenas tardes", "buenas noches", "buen dia", "hey", "hi")

FAREWELL_KEYWORDS = ("adios", "chao", "hasta luego", "nos vemos", "hasta pronto", "bye")

THANKS_KEYWORDS = ("gracias", "muchas gracias", "thanks", "thank you")

PRODUCTS_KEYWORDS = (
    "menu",
    "productos",
    "que tienen",
    "opciones",
    "carta",
    "que hay",
    "que venden",
    "que ofrecen",
    "servicios",
    "tratamientos",
)

QUERY_KEYWORDS = (
    "horario",
    "abren",
    "cierran",
    "atencion",
    "que dias",
    "direccion",
    "ubicacion",
    "donde estan",
    "disponibilidad",
    "disponible",
)

PRICE_KEYWORDS = ("cuanto cuesta", "cuanto vale", "cuanto sale", "precio", "costo")

RESERVATION_KEYWORDS = ("reservar", "reserva", "cita", "agendar", "quiero", "necesito", "deseo", "pedir", "pedido")

CANCEL_KEYWORDS = ("cancelar", "cancela", "anular", "eliminar reserva", "borrar reserva")

DELIVERY_KEYWORDS = ("domicilio", "delivery", "a casa", "que me lo traigan", "que me lo lleven", "envio")

NO_DELIVERY_PATTERNS = (
    "no quiero domicilio",
    "no quiero que me lo traigan",
    "no quiero que me la traigan",
    "no necesito domicilio",
    "sin domicilio",
)

FOOD_KEYWORDS = ("pizza", "pasta", "lasagna", "hamburguesa", "coca", "bebida", "postre", "comida", "almuerzo", "cena")

NUMBER_WORDS = {
    "un": 1,
    "una": 1,
    "uno": 1,
    "dos": 2,
    "tres": 3,
    "cuatro": 4,
    "cinco": 5,
    "seis": 6,
    "siete": 7,
    "ocho": 8,
    "nueve": 9,
    "diez": 10,
}


def normalize_text(text: str) -> str:
    """Lower-case, strip accents and collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    without_marks = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return re.sub(r"\s+", " ", without_marks).strip()


def contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    normalized = normalize_text(text)
    return any(_contains_word(normalized, keyword) for keyword in keywords)


def _contains_word(normalized: str, keyword: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", normalized) is not None


def is_greeting(text: str) -> bool:
    return contains_any(text, GREETING_KEYWORDS)


def is_thanks(text: str) -> bool:
    return contains_any(text, THANKS_KEYWORDS)


def is_explicit_goodbye(text: str) -> bool:
    return contains_any(text, FAREWELL_KEYWORDS)


def asks_for_products(text: str) -> bool:
    return contains_any(text, PRODUCTS_KEYWORDS)


def asks_for_price(text: str) -> bool:
    return contains_any(text, PRICE_KEYWORDS)


def has_query_keywords(text: str) -> bool:
    return contains_any(text, QUERY_KEYWORDS) or asks_for_price(text)


def mentions_reservation(text: str) -> bool:
    return contains_any(text, RESERVATION_KEYWORDS)


def mentions_cancel(text: str) -> bool:
    return contains_any(text, CANCEL_KEYWORDS)


def mentions_delivery(text: str) -> bool:
    return contains_any(text, DELIVERY_KEYWORDS)


def rejects_delivery(text: str) -> bool:
    normalized = normalize_text(text)
    return any(pattern in normalized for pattern in NO_DELIVERY_PATTERNS)


def mentions_food(text: str) -> bool:
    return contains_any(text, FOOD_KEYWORDS)


def parse_quantity(token: str) -> int | None:
    token = normalize_text(token)
    if token.isdigit():
        return int(token)
    return NUMBER_WORDS.get(token)
