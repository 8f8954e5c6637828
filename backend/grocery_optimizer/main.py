from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from grocery_optimizer.api.routes import router as api_router
from grocery_optimizer.config import settings
from grocery_optimizer.logging import configure_logging, get_logger
from grocery_optimizer.storage.db import create_db_and_tables

app = FastAPI(title="Grocery Trip Optimizer API")
logger = get_logger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _field_path(loc) -> str:
    """("body", "items", 0, "quantity") -> "items[0].quantity"."""
    path = ""
    for part in loc:
        if part in ("body", "query", "path", "header"):
            continue
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    payload = {"error": first.get("msg", "Invalid request")}
    field = _field_path(first.get("loc", ()))
    if field:
        payload["field"] = field
    logger.info("request.invalid path=%s field=%s error=%s", request.url.path, field, payload["error"])
    return JSONResponse(payload, status_code=400)


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    logger.info("startup: env=%s distance_matrix=%s", settings.env, bool(settings.google_maps_api_key))
    create_db_and_tables()


app.include_router(api_router)
