"""
Main API module for QR Link Platform.

Responsibilities:
    - Public redirect: GET /{slug} -> 301 to the destination, or a 404 page
    - Management API: POST /api with an `action` field, behind HTTP Basic auth
    - Artifact upload: POST /api/upload (rendered image or logo of a version)
    - Static serving of generated files under /generated

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - Storage is built once per app and injected into the managers.
    - One exception handler maps every QRLinkError to the JSON envelope
      {"success": bool, "message": str, "data"?: ...}.

LLM Prompt Example:
    "Explain how to structure a FastAPI service with an application factory,
    injected dependencies, and a clean separation between API and business logic."
"""

import html
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth.dependencies import get_current_user
from qrlink_platform.config import Settings, settings as default_settings
from qrlink_platform.errors import NotFound, QRLinkError, StorageFailure, ValidationError
from qrlink_platform.manager import (
    CodeManager,
    FavoriteCoordinator,
    RedirectResolver,
    SlugValidator,
    VersionManager,
)
from qrlink_platform.storage import BaseStorage, VersionFileLayout, get_storage

log = logging.getLogger("qrlink")

GENERIC_STORAGE_MESSAGE = "A storage error occurred. Please try again."

NOT_FOUND_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>QR Code Not Found</title>
</head>
<body>
    <h1>QR Code Not Found</h1>
    <p>The QR code you're looking for doesn't exist or may have been removed.</p>
    <a href="{home}">Go to Homepage</a>
</body>
</html>
"""


class ApiRequest(BaseModel):
    """Body of POST /api. Which fields matter depends on `action`."""
    action: str
    code_id: Optional[int] = None
    version_id: Optional[int] = None
    slug: Optional[str] = None
    new_slug: Optional[str] = None
    confirmed: bool = False
    exclude_id: Optional[int] = None
    destination_url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None
    name: Optional[str] = None
    new_name: Optional[str] = None
    # Any: a non-object payload must reach the manager and come back as a 400 envelope.
    style_config: Optional[Any] = None
    clone_from_version_id: Optional[int] = None
    new_favorite_id: Optional[int] = None
    page: int = 1
    limit: Optional[int] = None


def _envelope(status_code: int, success: bool, message: str, data: Any = None, headers=None) -> JSONResponse:
    body: Dict[str, Any] = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _required(value: Any, field: str) -> Any:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    return value


def create_app(settings: Optional[Settings] = None, storage: Optional[BaseStorage] = None) -> FastAPI:
    """
    Factory function to build and configure a new FastAPI app instance.

    Args:
        settings: configuration; defaults to the environment-derived singleton.
        storage: storage backend; defaults to the one selected by settings.

    Returns:
        FastAPI: A fully configured application instance with its own
                 storage and managers.

    LLM Prompt Example:
        "Show how an application factory enables test isolation and easy
        dependency swapping (e.g., in-memory vs DB storage) without code changes."
    """
    settings = settings or default_settings

    # basic console logging unless the host process configured it
    if not logging.getLogger().handlers:
        logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    app = FastAPI(
        title="QR Link Platform",
        description="Dynamic QR codes: editable destinations, click counts and versioned renders",
        docs_url="/docs",
    )

    # ----------------------------------------------------------------
    # Per-app instances (isolated for tests, swappable for production)
    # ----------------------------------------------------------------
    if storage is None:
        storage = get_storage(settings.storage_backend, dsn=settings.db_dsn)
    layout = VersionFileLayout(settings.generated_path)
    validator = SlugValidator(storage, settings.reserved_slugs, max_length=settings.max_slug_length)
    codes = CodeManager(storage, validator, layout, base_url=settings.base_url, code_length=settings.code_length)
    favorites = FavoriteCoordinator(storage, layout)
    versions = VersionManager(
        storage, layout, favorites, max_versions=settings.max_versions, base_url=settings.base_url
    )
    resolver = RedirectResolver(storage, settings.max_slug_length, settings.redirect_timeout)
    log.info("QR Link storage backend: %s", type(storage).__name__)

    # ----------------------------------------------------------------
    # Error mapping
    # ----------------------------------------------------------------
    @app.exception_handler(QRLinkError)
    async def handle_qrlink_error(request: Request, exc: QRLinkError) -> JSONResponse:
        message = exc.message
        if isinstance(exc, StorageFailure):
            log.error("Storage failure on %s: %s", request.url.path, exc.message)
            message = GENERIC_STORAGE_MESSAGE
        return _envelope(exc.status_code, False, message, exc.data)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _envelope(400, False, "Invalid request", {"errors": jsonable_errors(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _envelope(exc.status_code, False, str(exc.detail), headers=getattr(exc, "headers", None))

    # ----------------------------------------------------------------
    # Actions
    # ----------------------------------------------------------------
    def describe_code(code_id: int) -> Dict[str, Any]:
        code = codes.get_code(code_id)
        data = codes.describe(code)
        data["version_count"] = storage.count_versions(code_id)
        favorite = storage.get_version(code.favorite_version_id) if code.favorite_version_id else None
        data["favorite_version"] = versions.describe(favorite) if favorite else None
        return data

    def create_code(req: ApiRequest) -> Tuple[int, str, Any]:
        code = codes.create_code(
            _required(req.destination_url, "Destination URL"),
            _required(req.title, "Title"),
            description=req.description or "",
            tags=req.tags or "",
            slug=req.slug,
        )
        return 201, "QR code created successfully", codes.describe(code)

    def update_code(req: ApiRequest) -> Tuple[int, str, Any]:
        code = codes.update_code(
            _required(req.code_id, "code_id"),
            _required(req.destination_url, "Destination URL"),
            _required(req.title, "Title"),
            description=req.description or "",
            tags=req.tags or "",
        )
        return 200, "QR code updated successfully", codes.describe(code)

    def delete_code(req: ApiRequest) -> Tuple[int, str, Any]:
        codes.delete_code(_required(req.code_id, "code_id"))
        return 200, "QR code deleted successfully", None

    def get_code(req: ApiRequest) -> Tuple[int, str, Any]:
        return 200, "QR code retrieved successfully", describe_code(_required(req.code_id, "code_id"))

    def list_codes(req: ApiRequest) -> Tuple[int, str, Any]:
        return 200, "QR codes retrieved successfully", [codes.describe(c) for c in codes.list_codes()]

    def rename_slug(req: ApiRequest) -> Tuple[int, str, Any]:
        code = codes.rename_slug(
            _required(req.code_id, "code_id"),
            _required(req.new_slug or req.slug, "Slug"),
            confirmed=req.confirmed,
        )
        return 200, "Slug updated successfully", codes.describe(code)

    def check_slug_availability(req: ApiRequest) -> Tuple[int, str, Any]:
        result = codes.check_slug_availability(req.slug or "", exclude_id=req.exclude_id)
        return 200, result["message"], result

    def reset_clicks(req: ApiRequest) -> Tuple[int, str, Any]:
        code = codes.reset_clicks(_required(req.code_id, "code_id"))
        return 200, "Click count reset successfully", codes.describe(code)

    def create_version(req: ApiRequest) -> Tuple[int, str, Any]:
        version = versions.create_version(
            _required(req.code_id, "code_id"),
            name=req.name,
            style_config=req.style_config,
            clone_from_version_id=req.clone_from_version_id,
        )
        return 201, "Version created successfully", versions.describe(version)

    def get_versions(req: ApiRequest) -> Tuple[int, str, Any]:
        page = versions.get_versions(_required(req.code_id, "code_id"), page=req.page, limit=req.limit)
        return 200, "Versions retrieved successfully", page

    def get_version(req: ApiRequest) -> Tuple[int, str, Any]:
        version = versions.get_version(_required(req.version_id, "version_id"))
        return 200, "Version retrieved successfully", versions.describe(version)

    def update_version(req: ApiRequest) -> Tuple[int, str, Any]:
        version = versions.update_version(
            _required(req.version_id, "version_id"), name=req.name, style_config=req.style_config
        )
        return 200, "Version updated successfully", versions.describe(version)

    def set_favorite(req: ApiRequest) -> Tuple[int, str, Any]:
        version = versions.set_favorite(_required(req.version_id, "version_id"))
        return 200, "Version set as favorite successfully", versions.describe(version)

    def delete_version(req: ApiRequest) -> Tuple[int, str, Any]:
        versions.delete_version(_required(req.version_id, "version_id"), new_favorite_id=req.new_favorite_id)
        return 200, "Version deleted successfully", None

    def clone_version(req: ApiRequest) -> Tuple[int, str, Any]:
        version = versions.clone_version(_required(req.version_id, "version_id"), new_name=req.new_name or req.name)
        return 201, "Version cloned successfully", versions.describe(version)

    actions: Dict[str, Callable[[ApiRequest], Tuple[int, str, Any]]] = {
        "create_code": create_code,
        "update_code": update_code,
        "delete_code": delete_code,
        "get_code": get_code,
        "list_codes": list_codes,
        "rename_slug": rename_slug,
        "check_slug_availability": check_slug_availability,
        "reset_clicks": reset_clicks,
        "create_version": create_version,
        "get_versions": get_versions,
        "get_version": get_version,
        "update_version": update_version,
        "set_favorite": set_favorite,
        "delete_version": delete_version,
        "clone_version": clone_version,
    }

    # ----------------------------------------------------------------
    # Routes
    # ----------------------------------------------------------------
    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api")
    def api(req: ApiRequest, user: str = Depends(get_current_user)) -> JSONResponse:
        """
        Dispatch a management action.

        Returns:
            JSONResponse: the envelope; 201 for creations, 200 otherwise.
        """
        handler = actions.get(req.action)
        if handler is None:
            return _envelope(400, False, "Invalid action")
        status_code, message, data = handler(req)
        return _envelope(status_code, True, message, data)

    @app.post("/api/upload")
    def upload(
        code_id: int = Form(...),
        version_id: int = Form(...),
        kind: str = Form("image"),
        file: UploadFile = File(...),
        user: str = Depends(get_current_user),
    ) -> JSONResponse:
        """Store the rendered image (kind=image) or logo (kind=logo) of a version."""
        data = file.file.read()
        if kind == "image":
            version = versions.attach_image(code_id, version_id, data)
            return _envelope(200, True, "Image saved successfully", versions.describe(version))
        if kind == "logo":
            version = versions.attach_logo(code_id, version_id, data)
            return _envelope(200, True, "Logo saved successfully", versions.describe(version))
        raise ValidationError("Invalid upload kind")

    Path(settings.generated_path).mkdir(parents=True, exist_ok=True)
    app.mount("/generated", StaticFiles(directory=settings.generated_path), name="generated")

    def not_found_page() -> HTMLResponse:
        page = NOT_FOUND_PAGE.format(home=html.escape(settings.base_url + "/", quote=True))
        return HTMLResponse(page, status_code=404)

    # Registered last so it never shadows the routes above.
    @app.get("/{slug}", include_in_schema=False)
    def redirect_slug(slug: str) -> Response:
        """
        Public scan endpoint: 301 to the destination, or a static 404 page.
        Internal ids never appear in either response.
        """
        try:
            destination = resolver.resolve(slug)
        except NotFound:
            return not_found_page()
        return RedirectResponse(url=destination, status_code=301)

    # A slug is a single path segment; anything deeper is a miss.
    @app.get("/{path:path}", include_in_schema=False)
    def unknown_path(path: str) -> Response:
        return not_found_page()

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Field locations and messages only; input values are not echoed."""
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]


# `uvicorn main:app --reload` and `from main import app` continue to work.
app = create_app()
