"""Main FastAPI application serving key link pages."""

import logging
import urllib.parse
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import (
    HTMLResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, settings
from .qr import generate_qr_code, generate_qr_png
from .registry import KeyRegistry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Templates
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

router = APIRouter()


class KeyNotFoundError(Exception):
    """Raised when a requested slug is not bound to any key."""

    def __init__(self, slug: str):
        super().__init__(f"Key not found: {slug}")
        self.slug = slug


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> KeyRegistry:
    """Return the registry built at startup."""
    registry = request.app.state.registry
    if registry is None:
        raise HTTPException(status_code=500, detail="Key registry not available")
    return registry


def lookup_link(slug: str, registry: KeyRegistry = Depends(get_registry)) -> str:
    """Resolve the ``slug`` path parameter to its link or raise KeyNotFoundError."""
    link = registry.get_link(slug)
    if link is None:
        raise KeyNotFoundError(slug)
    return link


def page_context(slug: str, app_settings: Settings, **extra) -> dict:
    return {
        "slug": slug,
        "slug_path": urllib.parse.quote(slug, safe=""),
        "service_name": app_settings.service_name,
        **extra,
    }


async def key_not_found_handler(request: Request, exc: KeyNotFoundError):
    """Render the HTML not-found page for unknown slugs."""
    logger.info(f"Key not found: {exc.slug}")
    app_settings = get_settings(request)
    return templates.TemplateResponse(
        request,
        "not_found.html",
        {
            "slug": exc.slug,
            "service_name": app_settings.service_name,
            "sources": [
                app_settings.users_path.as_posix(),
                app_settings.links_path.as_posix(),
                app_settings.legacy_keys_path.as_posix(),
            ],
        },
        status_code=404,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions including 404 errors."""
    if exc.status_code == 404:
        logger.info(f"404 Not Found: {request.url.path}")
        return Response(
            content="Path not found",
            status_code=404,
            headers={"content-type": "text/plain; charset=utf-8"},
        )
    logger.info(f"HTTP Exception: {exc.status_code} - {exc.detail}")
    return Response(
        content=str(exc.detail),
        status_code=exc.status_code,
        headers={"content-type": "text/plain; charset=utf-8"},
    )


@router.get("/healthz", response_class=PlainTextResponse)
async def liveness_check():
    """Liveness check endpoint."""
    return "ok"


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@router.get("/list")
async def list_slugs(registry: KeyRegistry = Depends(get_registry)):
    """List every bound slug."""
    return {"slugs": registry.list_slugs()}


@router.get("/", response_class=HTMLResponse)
async def home_page(
    request: Request,
    registry: KeyRegistry = Depends(get_registry),
    app_settings: Settings = Depends(get_settings),
):
    """Index page linking to the first keys."""
    slugs = registry.list_slugs()
    limit = app_settings.home_list_limit
    return templates.TemplateResponse(
        request,
        "home.html",
        {
            "service_name": app_settings.service_name,
            "slugs": slugs[:limit],
            "more": max(len(slugs) - limit, 0),
        },
    )


@router.get("/k/{slug}", dependencies=[Depends(lookup_link)])
async def short_link(slug: str):
    """Short links produced by the link generator point here."""
    return RedirectResponse(
        url=f"/u/{urllib.parse.quote(slug, safe='')}/", status_code=307
    )


@router.get("/u/{slug}/", response_class=HTMLResponse)
async def connect_page(
    request: Request,
    slug: str,
    link: str = Depends(lookup_link),
    app_settings: Settings = Depends(get_settings),
):
    """Connect page with deep link, copy button and QR link."""
    return templates.TemplateResponse(
        request,
        "connect.html",
        page_context(
            slug, app_settings, link=link, deeplink_base=app_settings.deeplink_base
        ),
    )


@router.get("/u/{slug}/config.html", response_class=PlainTextResponse)
async def raw_config(link: str = Depends(lookup_link)):
    """Plain text link fetched by client apps through the deep link."""
    return link + "\n"


@router.get(
    "/u/{slug}/direct",
    response_class=HTMLResponse,
    dependencies=[Depends(lookup_link)],
)
async def direct_page(
    request: Request,
    slug: str,
    app_settings: Settings = Depends(get_settings),
):
    """Page that opens the client app right away."""
    return templates.TemplateResponse(
        request,
        "direct.html",
        page_context(slug, app_settings, deeplink_base=app_settings.deeplink_base),
    )


@router.get("/u/{slug}/qr", response_class=HTMLResponse)
async def qr_page(
    request: Request,
    slug: str,
    link: str = Depends(lookup_link),
    app_settings: Settings = Depends(get_settings),
):
    """QR code page for scanning the link with a phone."""
    return templates.TemplateResponse(
        request,
        "qr.html",
        page_context(slug, app_settings, qr_code=generate_qr_code(link)),
    )


@router.get("/u/{slug}/qr.png")
async def qr_image(link: str = Depends(lookup_link)):
    """QR code as a PNG image."""
    return Response(content=generate_qr_png(link), media_type="image/png")


def create_app(
    app_settings: Settings | None = None, registry: KeyRegistry | None = None
) -> FastAPI:
    """Create the application.

    Args:
        app_settings: Settings to use, defaults to the environment settings
        registry: Prebuilt registry; when omitted it is built from the
            configured sources on startup

    Returns:
        FastAPI application
    """
    if app_settings is None:
        app_settings = settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan event handler for startup and shutdown."""
        logger.info("Key server starting up...")
        logger.info(f"Data directory: {app_settings.data_dir}")

        if app.state.registry is None:
            try:
                app.state.registry = KeyRegistry.from_settings(app_settings)
            except Exception as e:
                logger.error(f"Failed to initialize key registry: {e}")

        yield

        logger.info("Key server shutting down...")

    app = FastAPI(
        title="Key Server",
        description="Short shareable pages for VLESS connection links",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.registry = registry

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_exception_handler(KeyNotFoundError, key_not_found_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    uvicorn.run("keyserver.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
