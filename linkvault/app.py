import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .accounts import ensure_admin_user
from .config import Settings, get_settings
from .database import Base, make_engine, make_session_factory
from .errors import LinkVaultError
from .middleware import AccessLogMiddleware
from .reaper import ExpiryReaper
from .routes.admin import router as admin_router
from .routes.auth import router as auth_router
from .routes.shares import router as shares_router
from .shares import ShareEngine
from .storage import FileStore

logger = logging.getLogger(__name__)


async def linkvault_error_handler(request: Request, exc: LinkVaultError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, **exc.extra()})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = "Invalid request."
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ())[1:])
        detail = f"{field}: {errors[0].get('msg')}" if field else errors[0].get("msg", detail)
    return JSONResponse(status_code=400, content={"detail": detail})


async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    engine = make_engine(settings.database_url)
    session_factory = make_session_factory(engine)
    file_store = FileStore(settings.upload_dir, settings.max_file_size_bytes)
    share_engine = ShareEngine(settings, file_store)
    reaper = ExpiryReaper(session_factory, file_store, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Application startup: upload directory {file_store.upload_dir}")
        file_store.ensure_dir()
        Base.metadata.create_all(bind=engine)
        with session_factory() as db:
            ensure_admin_user(db, settings)
        if settings.cleanup_enabled:
            reaper.start()
        logger.info("Application startup complete.")
        yield
        logger.info("Application shutdown: stopping expired share cleanup")
        reaper.stop()
        engine.dispose()

    app = FastAPI(title="LinkVault API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db_engine = engine
    app.state.session_factory = session_factory
    app.state.file_store = file_store
    app.state.share_engine = share_engine
    app.state.reaper = reaper

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AccessLogMiddleware)

    app.add_exception_handler(LinkVaultError, linkvault_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(auth_router, prefix="/api/auth")
    app.include_router(shares_router, prefix="/api/shares")
    app.include_router(admin_router, prefix="/api/admin")

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("linkvault.app:app", host="0.0.0.0", port=8000)
