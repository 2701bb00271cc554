from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.audits.router import router as audits_router
from app.api.v1.fulfillment.router import router as fulfillment_router
from app.api.v1.orders.router import router as orders_router
from app.api.v1.progress.router import router as progress_router
from app.core.config import settings
from app.core.logging import configure_logging
from app.realtime.router import router as realtime_router


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Fulfillment Backend")

    # CORS: CORS_ORIGINS is a comma-separated list; unset allows all
    origins = [o.strip() for o in settings.cors_origins.split(",")] if settings.cors_origins else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(orders_router)
    app.include_router(progress_router)
    app.include_router(fulfillment_router)
    app.include_router(audits_router)
    app.include_router(realtime_router)

    return app


app = create_app()
