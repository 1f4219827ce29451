import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse, Response

from dispatch_api.config import allowed_origins, ensure_secure_runtime_settings, settings
from dispatch_api.db.migration_check import prepare_schema
from dispatch_api.db.session import engine, session_scope
from dispatch_api.dependencies import driver_index
from dispatch_api.errors import DispatchError
from dispatch_api.observability import configure_logging, log_event, metrics_store, set_request_id
from dispatch_api.routers.assignments import router as assignments_router
from dispatch_api.routers.dispatch import router as dispatch_router
from dispatch_api.routers.drivers import router as drivers_router
from dispatch_api.routers.health import router as health_router
from dispatch_api.routers.metrics import router as metrics_router
from dispatch_api.routers.orders import router as orders_router
from dispatch_api.routers.realtime import router as realtime_router
from dispatch_api.services.drivers_service import rebuild_index


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    ensure_secure_runtime_settings()
    prepare_schema(engine)
    with session_scope() as db:
        rebuild_index(db, driver_index)
    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Delivery assignment, driver matching and dispatch API",
    lifespan=lifespan,
)


def custom_openapi():
    """
    Adds HTTP Bearer (JWT) auth to the OpenAPI schema so Swagger UI shows an
    'Authorize' button and sends the Authorization: Bearer <token> header.
    """
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})
    security_schemes["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DispatchError)
async def dispatch_error_handler(_request: Request, exc: DispatchError) -> JSONResponse:
    metrics_store.increment(f"dispatch_error_{exc.code.lower()}_total")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"code": exc.code, "message": exc.message}},
    )


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event(
        f"http_request {request.method} {request.url.path} {response.status_code}",
        assignment_id=request.path_params.get("assignment_id"),
        order_id=request.path_params.get("order_id"),
    )
    return response


app.include_router(health_router)
app.include_router(assignments_router)
app.include_router(drivers_router)
app.include_router(orders_router)
app.include_router(dispatch_router)
app.include_router(realtime_router)
app.include_router(metrics_router)
