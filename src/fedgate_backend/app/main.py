# src/fedgate_backend/app/main.py
from fastapi import FastAPI
from dotenv import load_dotenv

# Load .env before settings are read
load_dotenv()

from fedgate_backend.app.core.logging import setup_logging
setup_logging()

from fedgate_backend.app.api.routes.demo import router as demo_router
from fedgate_backend.app.api.routes.session import router as session_router
from fedgate_backend.app.auth.google import router as google_router
from fedgate_backend.app.core.cors import permissive_cors
from fedgate_backend.app.core.errors import install_error_handlers
from fedgate_backend.app.services.users import InMemoryUserRepository


def create_app() -> FastAPI:
    app = FastAPI(title="fedgate", version="0.1.0")
    app.state.users = InMemoryUserRepository()

    install_error_handlers(app)
    app.middleware("http")(permissive_cors)

    # 0) OAuth federation (authorize / callback)
    app.include_router(google_router)

    # 1) Bearer-protected session routes
    app.include_router(session_router)

    # 2) Demo surface
    app.include_router(demo_router)

    @app.get("/healthz")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
