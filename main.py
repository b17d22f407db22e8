from fastapi import FastAPI, HTTPException

from webp_converter import __version__
from webp_converter.api import create_app

DISABLED_DETAIL = "Local API disabled. Set enable_local_api = true in config.toml or WEBP_ENABLE_LOCAL_API=1"


def build_disabled_app() -> FastAPI:
    """Answer every route with 503 so clients see why the API is unavailable."""

    disabled = FastAPI(title="Local WebP Converter (disabled)", version=__version__)

    @disabled.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def api_disabled(path: str) -> None:
        raise HTTPException(status_code=503, detail=DISABLED_DETAIL)

    return disabled


try:
    app = create_app(require_enabled=True)
except RuntimeError:
    app = build_disabled_app()
