"""
FastAPI control surface for the launcher.

Serves the launcher page (loading screen + log overlay) and the operation
endpoints it calls. The desktop shell runs this app on a background thread and
points a pywebview window at it.
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from jinja2 import Environment, FileSystemLoader, select_autoescape

from launcher_api.models import HealthResponse
from launcher_api.routes import launcher as launcher_routes
from launcher_backend.service import LauncherService
from launcher_version import __version__ as LAUNCHER_VERSION

templates_dir = Path(__file__).parent / "templates"
jinja_env = Environment(
    loader=FileSystemLoader(str(templates_dir)),
    autoescape=select_autoescape(["html"]),
)


def render_template(template_name: str, **context) -> str:
    template = jinja_env.get_template(template_name)
    return template.render(**context)


def create_app(service: Optional[LauncherService] = None) -> FastAPI:
    """Build the control API around `service` (a new LauncherService by default)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # On shutdown: never leave the child server running behind us.
        app.state.service.shutdown()

    app = FastAPI(title="WeylandTavern Launcher", version=LAUNCHER_VERSION, lifespan=lifespan)
    app.state.service = service or LauncherService()

    # CORS for the pywebview page
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(launcher_routes.router)

    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok")

    @app.get("/", response_class=HTMLResponse)
    async def index():
        config = app.state.service.config
        return render_template(
            "launcher.html",
            version=LAUNCHER_VERSION,
            sync_enabled=config.sync_enabled,
        )

    return app
