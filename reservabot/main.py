import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reservabot.api.messages import router as messages_router
from reservabot.core.config import settings
from reservabot.wiring.dependencies import (
    close_cascade,
    get_cache_sweeper,
    get_circuit_breaker,
    get_context_cache,
)


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("business_id", "user_id", "intention", "confidence", "stage", "layer", "reason", "error"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = get_cache_sweeper()
    sweeper.start()
    yield
    sweeper.stop()
    close_cascade()


app = FastAPI(title="Reservabot", version="1.0.0", lifespan=lifespan)

app.include_router(messages_router, tags=["messages"])


@app.get("/health")
def health() -> dict[str, object]:
    return {
        "status": "ok",
        "semantic_breaker": get_circuit_breaker().get_stats(),
        "cache": get_context_cache().stats(),
    }
