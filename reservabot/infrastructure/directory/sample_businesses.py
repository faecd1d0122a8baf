from __future__ import annotations

from typing import Any

_EVERY_DAY = {day: "12:00-23:00" for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")}

_COMMON_INTENTIONS: list[dict[str, Any]] = [
    {
        "name": "greeting",
        "priority": 1,
        "keywords": [
            {"value": "hola", "weight": 0.9},
            {"value": "buenos dias", "weight": 0.9},
            {"value": "buenas tardes", "weight": 0.9},
            {"value": "buenas noches", "weight": 0.9},
            {"value": "saludos", "weight": 0.8},
        ],
        "examples": ["hola", "buenas", "buenos días", "hola, ¿cómo estás?"],
    },
    {
        "name": "cancel",
        "priority": 3,
        "keywords": [
            {"value": "cancelar", "weight": 0.95},
            {"value": "anular", "weight": 0.9},
            {"value": "ya no voy", "weight": 0.85},
        ],
        "examples": ["quiero cancelar mi reserva", "cancela todo", "ya no la necesito"],
    },
    {
        "name": "farewell",
        "priority": 1,
        "keywords": [
            {"value": "adios", "weight": 0.95},
            {"value": "chao", "weight": 0.9},
            {"value": "hasta luego", "weight": 0.9},
            {"value": "gracias", "weight": 0.7},
        ],
        "examples": ["gracias, hasta luego", "chao", "eso es todo, gracias"],
    },
]

SAMPLE_BUSINESSES: list[dict[str, Any]] = [
    {
        "id": "restaurante-demo",
        "name": "La Terraza",
        "type": "restaurant",
        "address": "Calle 10 # 43-12, Medellín",
        "hours": _EVERY_DAY,
        "paymentPercentage": 100,
        "services": [
            {
                "key": "mesa",
                "name": "Mesa en restaurante",
                "requiresTable": True,
                "synonyms": ["reservar mesa", "comer en el local", "restaurante"],
            },
            {
                "key": "domicilio",
                "name": "Domicilio",
                "requiresProducts": True,
                "requiresAddress": True,
                "requiresPayment": True,
                "deliveryFee": 5000,
                "synonyms": ["delivery", "envio", "a domicilio"],
            },
        ],
        "products": [
            {"id": "pizza-margarita", "name": "Pizza margarita", "price": 28000, "category": "pizzas", "stock": 20},
            {"id": "lasagna", "name": "Lasagna", "price": 32000, "category": "pastas", "stock": 5},
            {"id": "tiramisu", "name": "Tiramisu", "price": 15000, "category": "postres", "stock": 3},
            {"id": "limonada", "name": "Limonada", "price": 8000, "category": "bebidas"},
        ],
        "resources": [
            {"id": "mesa-1", "name": "Mesa 1", "capacity": 2},
            {"id": "mesa-2", "name": "Mesa 2", "capacity": 4},
            {"id": "mesa-3", "name": "Mesa 3", "capacity": 4},
            {"id": "mesa-4", "name": "Mesa 4", "capacity": 6},
            {"id": "mesa-5", "name": "Mesa 5", "capacity": 8},
        ],
        "intentions": [
            *_COMMON_INTENTIONS,
            {
                "name": "reserve",
                "priority": 2,
                "keywords": [
                    {"value": "reservar", "weight": 0.9},
                    {"value": "reserva", "weight": 0.85},
                    {"value": "mesa", "weight": 0.7},
                    {"value": "domicilio", "weight": 0.8},
                    {"value": "pedir", "weight": 0.7},
                    {"value": "pedido", "weight": 0.75},
                    {"value": "quiero", "weight": 0.5},
                ],
                "examples": ["quiero reservar una mesa", "quiero hacer un pedido", "me gustaría pedir a domicilio"],
            },
            {
                "name": "query",
                "priority": 1,
                "keywords": [
                    {"value": "menu", "weight": 0.85},
                    {"value": "carta", "weight": 0.8},
                    {"value": "horario", "weight": 0.85},
                    {"value": "precio", "weight": 0.8},
                    {"value": "cuanto cuesta", "weight": 0.85},
                    {"value": "direccion", "weight": 0.8},
                ],
                "examples": ["¿qué tienen en el menú?", "¿a qué hora abren?", "¿dónde quedan?"],
            },
        ],
    },
    {
        "id": "clinica-demo",
        "name": "Clínica Sonrisa",
        "type": "clinic",
        "address": "Carrera 7 # 72-41, Bogotá",
        "hours": {
            "monday": "08:00-18:00",
            "tuesday": "08:00-18:00",
            "wednesday": "08:00-18:00",
            "thursday": "08:00-18:00",
            "friday": "08:00-18:00",
            "saturday": "08:00-12:00",
            "sunday": "cerrado",
        },
        "paymentPercentage": 50,
        "services": [
            {
                "key": "consulta",
                "name": "Consulta general",
                "requiresGuests": False,
                "capacity": 1,
                "minAdvanceMinutes": 60,
                "requiredFields": ["date", "time", "name", "phone"],
                "synonyms": ["cita", "valoracion", "chequeo"],
            },
            {
                "key": "limpieza",
                "name": "Limpieza dental",
                "requiresGuests": False,
                "requiresProducts": True,
                "requiresPayment": True,
                "capacity": 1,
                "synonyms": ["profilaxis"],
            },
        ],
        "products": [
            {"id": "limpieza-basica", "name": "Limpieza basica", "price": 90000, "duration": 30},
            {"id": "blanqueamiento", "name": "Blanqueamiento", "price": 250000, "duration": 60},
        ],
        "intentions": [
            *_COMMON_INTENTIONS,
            {
                "name": "reserve",
                "priority": 2,
                "keywords": [
                    {"value": "cita", "weight": 0.9},
                    {"value": "agendar", "weight": 0.9},
                    {"value": "consulta", "weight": 0.7},
                    {"value": "quiero", "weight": 0.5},
                ],
                "examples": ["quiero agendar una cita", "necesito una consulta", "me pueden atender el lunes"],
            },
            {
                "name": "query",
                "priority": 1,
                "keywords": [
                    {"value": "horario", "weight": 0.85},
                    {"value": "precio", "weight": 0.8},
                    {"value": "cuanto cuesta", "weight": 0.85},
                    {"value": "servicios", "weight": 0.8},
                ],
                "examples": ["¿qué servicios tienen?", "¿cuánto cuesta una limpieza?"],
            },
        ],
    },
]
