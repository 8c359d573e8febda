from fastapi import FastAPI, Request
import logging
import re
import traceback
import uvicorn
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

from core.config import settings
from core.errors import ConflictError, InvalidStateError, InventoryError, NotFoundError, ValidationFailedError
from db.database import create_db_and_tables
from routers.locations import router as locations_router
from routers.products import router as products_router
from routers.stock import router as stock_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("inventory")

API_VERSION = "1.0.0"

ERROR_STATUS = {
    NotFoundError: 404,
    ConflictError: 409,
    InvalidStateError: 400,
    ValidationFailedError: 400,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Inventory Management API",
    description="Products, locations, per-location stock levels, adjustments and transfers",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _format_validation_errors(exc: RequestValidationError) -> list:
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc)
        msg = err.get("msg", "invalid value")
        out.append(f"{field}: {msg}" if field else msg)
    return out


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    content = {"success": False, "message": exc.message}
    if isinstance(exc, ValidationFailedError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation error", "errors": _format_validation_errors(exc)},
    )


_DUPLICATE_KEY_PATTERNS = (
    re.compile(r"UNIQUE constraint failed: \w+\.(\w+)"),  # sqlite
    re.compile(r"duplicate key value violates unique constraint.*Key \((\w+)", re.S),  # postgres
)


def duplicate_key_field(exc: IntegrityError):
    """Name of the first column behind a unique violation, or None for other integrity errors."""
    text = str(exc.orig)
    for pattern in _DUPLICATE_KEY_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    field = duplicate_key_field(exc)
    if field:
        # Unique-key races that slipped past the explicit checks.
        return JSONResponse(
            status_code=409,
            content={"success": False, "message": f"{field.replace('_', ' ').capitalize()} already exists"},
        )
    return JSONResponse(status_code=400, content={"success": False, "message": "Data integrity constraint violated"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    else:
        message = str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Internal Server Error"}
    if settings.is_development:
        content["message"] = str(exc) or content["message"]
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=content)


app.include_router(products_router, prefix=f"{settings.api_prefix}/products", tags=["products"])
app.include_router(locations_router, prefix=f"{settings.api_prefix}/locations", tags=["locations"])
app.include_router(stock_router, prefix=settings.api_prefix, tags=["stock"])


ENDPOINTS = [
    ("POST", "/products", "Create a new product"),
    ("PUT", "/products/{id}", "Update product details"),
    ("POST", "/locations", "Create a new location"),
    ("POST", "/stocklevels/initial", "Set initial stock level"),
    ("POST", "/stockadjustments", "Record stock adjustment"),
    ("POST", "/stocktransfers", "Initiate stock transfer"),
    ("GET", "/products/{product_id}/stock", "Get stock levels for product across locations"),
    ("GET", "/locations/{location_id}/stock", "Get stock levels for location"),
    ("GET", "/products/low-stock?threshold=X", "Get products below threshold across locations"),
    ("GET", "/products/{product_id}/history", "Get stock movement history for product"),
]


@app.get("/")
async def health():
    prefix = settings.api_prefix
    return {
        "success": True,
        "message": "Inventory Management API is running",
        "version": API_VERSION,
        "endpoints": {
            "products": f"{prefix}/products",
            "locations": f"{prefix}/locations",
            "stock_levels": f"{prefix}/stocklevels",
            "stock_adjustments": f"{prefix}/stockadjustments",
            "stock_transfers": f"{prefix}/stocktransfers",
        },
    }


@app.get(settings.api_prefix)
async def api_info():
    return {
        "success": True,
        "message": "Inventory Management API",
        "version": API_VERSION,
        "documentation": "/docs",
        "endpoints": [
            {"method": method, "path": f"{settings.api_prefix}{path}", "description": description}
            for (method, path, description) in ENDPOINTS
        ],
    }


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=settings.is_development)
