import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .settings import settings
from .db import init_db, open_session
from .accounts import ensure_superadmin
from .errors import PaddockError

logging.basicConfig(
    level=settings.PADDOCK_LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Paddock")

from .auth import AuthCookieMiddleware
app.add_middleware(AuthCookieMiddleware)

@app.on_event("startup")
def _startup() -> None:
    init_db()
    # Ensure the bootstrap superadmin exists
    s = open_session()
    try:
        ensure_superadmin(s)
    finally:
        s.close()

# ---------------------------
# Errors
# ---------------------------

@app.exception_handler(PaddockError)
def paddock_error(request: Request, exc: PaddockError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)

@app.exception_handler(StarletteHTTPException)
def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
def validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "Invalid request")
    return JSONResponse({"error": f"{where}: {msg}" if where else msg}, status_code=400)

@app.exception_handler(Exception)
def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)

# ---------------------------
# Routers
# ---------------------------

from .account_routes import router as account_router
from .event_routes import router as event_router
from .registration_routes import router as registration_router
from .processing_routes import router as processing_router
from .startlist_routes import router as startlist_router

app.include_router(account_router, tags=["accounts"])
app.include_router(event_router, tags=["events"])
app.include_router(registration_router, tags=["registrations"])
app.include_router(processing_router, tags=["processing"])
app.include_router(startlist_router, tags=["startlist"])
