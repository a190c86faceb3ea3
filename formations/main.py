import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formations.admin_routes import admin_routers
from formations.config import Settings, get_settings
from formations.database import create_db_engine, create_session_factory, init_db
from formations.errors import register_exception_handlers
from formations.logging_config import configure_logging, log_startup_config
from formations.routes import router
from formations.stripe_service import PaymentGateway

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    log_startup_config(settings)

    engine = create_db_engine(settings.database_url, echo=settings.database_echo)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        logger.info("database ready")
        yield
        engine.dispose()

    app = FastAPI(title="Offshore Formations API", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.gateway = PaymentGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(router)
    for admin_router in admin_routers():
        app.include_router(admin_router)

    @app.get("/health")
    def health():
        return {"status": "healthy", "service": settings.app_name}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("formations.main:app", host="0.0.0.0", port=8000)
