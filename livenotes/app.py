from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import load_settings
from .errors import install_error_handlers
from .logging import install_app_logging, setup_logging
from .routers.ai_settings import router as ai_settings_router
from .routers.capture import router as capture_router
from .routers.notes import router as notes_router
from .state import State, build_state


def _load_env_file(env_path: Path) -> None:
    """Minimal .env loader: KEY=VALUE lines into os.environ if not set.
    - Ignores comments and blank lines
    - Strips surrounding quotes
    - Supports optional 'export ' prefix
    """
    if not env_path.exists():
        return
    try:
        text = env_path.read_text(encoding="utf-8")
    except OSError as e:
        logging.getLogger("livenotes").warning("could not read %s: %s", env_path, e)
        return
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.lower().startswith("export "):
            line = line[7:].lstrip()
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        key = k.strip()
        val = v.strip().strip('"').strip("'")
        os.environ.setdefault(key, val)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    state: State = app.state.state
    await state.queue.stop()


def create_app() -> FastAPI:
    # Load environment from optional .env files (project root and cwd)
    _load_env_file(Path(__file__).resolve().parent.parent / ".env")
    _load_env_file(Path.cwd() / ".env")

    settings = load_settings()
    setup_logging()

    app = FastAPI(title="Live Notes Worker", version="0.3.0", lifespan=_lifespan)

    # Attach config/state; the database schema is created here, before any request
    app.state.settings = settings
    app.state.state = build_state(settings)

    # CORS
    allow = [o.strip() for o in settings.cors_allow_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_app_logging(app)
    install_error_handlers(app)

    # Versioned API
    app.include_router(capture_router, prefix="/v1")
    app.include_router(notes_router, prefix="/v1")
    app.include_router(ai_settings_router, prefix="/v1")

    # Basic health endpoint (for extension/UI pings)
    @app.get("/health")
    def health():  # pragma: no cover - trivial
        return {"status": "ok"}

    return app


# Convenience for `uvicorn livenotes.app:app`
app = create_app()
