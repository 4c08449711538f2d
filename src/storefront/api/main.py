from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from storefront import __version__
from storefront.config.settings import configure_logging, get_settings
from storefront.exceptions import StorefrontError
from storefront.api.functions_api import router as functions_router
from storefront.api.referrals_api import router as referrals_router
from storefront.api.tiers_api import router as tiers_router
from storefront.api.users_api import router as users_router
from storefront.api.state import get_store
from storefront.data.store import FrameStore

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title="Storefront API",
    description="Backend API for storefront catalogs, tiered pricing and admin operations",
    version=__version__,
)

# Enable CORS for the storefront frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(functions_router)
app.include_router(tiers_router)
app.include_router(users_router)
app.include_router(referrals_router)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', []))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": details})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unexpected error in %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


@app.get("/")
async def root():
    return {"status": "online", "message": "Storefront API Active"}


@app.get("/system/status")
def get_status(store: FrameStore = Depends(get_store)):
    return {
        "engine_active": True,
        "persistent": store.data_dir is not None,
        "tables": store.table_counts(),
    }
