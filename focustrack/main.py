import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from focustrack.config import get_settings
from focustrack.routes.dashboard import APP_VERSION
from focustrack.routes.dashboard import router as dashboard_router
from focustrack.routes.focus import router as focus_router
from focustrack.routes.streaks import router as streaks_router


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    application = FastAPI(
        title="Focus Tracker API",
        version=APP_VERSION,
        description="Focus sessions, day streaks and productivity metrics.",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(focus_router)
    application.include_router(streaks_router)
    application.include_router(dashboard_router)

    return application


app = create_app()
