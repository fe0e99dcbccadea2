"""
Design Vault API server.

aiohttp application exposing the mutation endpoints consumed by the
gallery gateway. Each endpoint pairs the object store with the uploaded
files table through the service-role client.
"""

import asyncio
import json
import secrets
import time
from datetime import UTC, datetime
from typing import Any

from aiohttp import web
from dotenv import load_dotenv

from ..config import get_config, get_max_file_size
from ..health import get_health_status
from ..logging_config import configure_structured_logging, get_logger, log_user_action
from ..services.image_processor import ImageProcessor
from ..services.supabase import SupabaseAdminClient
from ..services.tagging import TagGenerator
from ..services.validation import (
    is_mov_filename,
    sanitize_tags,
    validate_tag_request,
    validate_title,
    validate_update_request,
    validate_upload,
)
from ..ui.handlers.error import DatabaseError, DesignVaultError, NotFoundError, ValidationError, handle_error

logger = get_logger(__name__)

SUPABASE_KEY = web.AppKey("supabase", SupabaseAdminClient)
TAG_GENERATOR_KEY = web.AppKey("tag_generator", TagGenerator)
IMAGE_PROCESSOR_KEY = web.AppKey("image_processor", ImageProcessor)
MAX_FILE_SIZE_KEY = web.AppKey("max_file_size", int)
STARTED_AT_KEY = web.AppKey("started_at", float)


def _error_response(error: DesignVaultError) -> web.Response:
    return web.json_response(error.to_response(), status=error.http_status)


@web.middleware
async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except DesignVaultError as e:
        logger.warning(
            "api_request_failed", path=request.path, method=request.method, code=e.code, status=e.http_status
        )
        return _error_response(e)
    except Exception as e:
        error_info = handle_error(e, {"path": request.path, "method": request.method})
        logger.error("api_request_crashed", path=request.path, method=request.method, code=error_info.code)
        return web.json_response(
            {"success": False, "error": "Internal server error", "code": error_info.code}, status=500
        )


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Invalid JSON body", field="body", original_exception=e) from e


def _parse_tags(raw: Any) -> list[str]:
    """Tags arrive as a JSON array string. Anything unparsable means no tags."""
    if not raw:
        return []
    try:
        tags = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("upload_tags_unparsable", raw=str(raw)[:100])
        return []
    return sanitize_tags(tags) if isinstance(tags, list) else []


def _object_key(filename: str) -> str:
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"uploads/{int(time.time() * 1000)}-{secrets.token_hex(6)}.{extension}"


async def upload_file(request: web.Request) -> web.Response:
    supabase = request.app[SUPABASE_KEY]
    image_processor = request.app[IMAGE_PROCESSOR_KEY]

    form = await request.post()
    file_field = form.get("file")
    if not isinstance(file_field, web.FileField):
        raise ValidationError("No file provided", field="file")

    filename = file_field.filename or "upload"
    content_type = file_field.content_type or "application/octet-stream"
    if is_mov_filename(filename) and not content_type.startswith("video/"):
        content_type = "video/quicktime"
    data = file_field.file.read()

    validate_upload(filename, len(data), content_type, request.app[MAX_FILE_SIZE_KEY])
    title = validate_title(form.get("title") or filename)
    tags = _parse_tags(form.get("tags"))

    if content_type.startswith("image/"):
        processed = await asyncio.to_thread(image_processor.optimize, data, content_type, filename)
        data = processed.data

    await supabase.ensure_bucket()
    key = await supabase.upload_object(_object_key(filename), data, content_type)
    public_url = supabase.public_url(key)

    try:
        row = await supabase.insert_row(
            {
                "title": title,
                "file_path": public_url,
                "file_type": content_type,
                "file_size": len(data),
                "tags": tags,
            }
        )
    except DatabaseError:
        # Without a row the object is unreachable; remove it
        await supabase.remove_object(key)
        raise

    logger.info("file_uploaded", file_id=row.get("id"), key=key, size=len(data), content_type=content_type)
    return web.json_response({"success": True, "data": {"file": row}})


async def update_file(request: web.Request) -> web.Response:
    file_id = request.match_info["id"]
    update = validate_update_request(await _read_json(request))
    update["updated_at"] = datetime.now(UTC).isoformat()

    row = await request.app[SUPABASE_KEY].update_row(file_id, update)
    if row is None:
        raise NotFoundError("File not found", details={"id": file_id})

    log_user_action("file_updated", file_id=file_id, fields=sorted(update))
    return web.json_response({"success": True, "data": {"file": row}})


async def delete_file(request: web.Request) -> web.Response:
    supabase = request.app[SUPABASE_KEY]
    file_id = request.match_info["id"]

    row = await supabase.get_row(file_id)
    if row is None:
        raise NotFoundError("File not found", details={"id": file_id})

    key = supabase.key_from_public_url(row.get("file_path") or "")
    if key is None:
        logger.warning("storage_key_unresolved", file_id=file_id, file_path=row.get("file_path"))
    else:
        await supabase.remove_object(key)

    await supabase.delete_row(file_id)
    log_user_action("file_deleted", file_id=file_id)
    return web.json_response({"success": True})


async def generate_tags(request: web.Request) -> web.Response:
    filename, image_url = validate_tag_request(await _read_json(request))
    suggestion = await request.app[TAG_GENERATOR_KEY].generate(filename, image_url)

    body: dict[str, Any] = {"tags": suggestion.tags}
    if suggestion.fallback:
        body["fallback"] = True
    return web.json_response(body)


async def health(request: web.Request) -> web.Response:
    status = await get_health_status(request.app[SUPABASE_KEY], request.app[STARTED_AT_KEY])
    return web.json_response(status, status=200 if status["status"] == "healthy" else 503)


def create_app(
    supabase: SupabaseAdminClient,
    tag_generator: TagGenerator,
    image_processor: ImageProcessor | None = None,
    max_file_size: int | None = None,
) -> web.Application:
    """
    Build the API application.

    Args:
        supabase: Service-role client for the table and the bucket
        tag_generator: Server-side tag generation
        image_processor: Image optimisation before storage
        max_file_size: Upload size limit, defaults to MAX_FILE_SIZE

    Returns:
        web.Application with all routes registered
    """
    limit = max_file_size if max_file_size is not None else get_max_file_size()
    # Leave room for the multipart envelope around the file
    app = web.Application(middlewares=[error_middleware], client_max_size=limit + 1024 * 1024)
    app[SUPABASE_KEY] = supabase
    app[TAG_GENERATOR_KEY] = tag_generator
    app[IMAGE_PROCESSOR_KEY] = image_processor or ImageProcessor()
    app[MAX_FILE_SIZE_KEY] = limit
    app[STARTED_AT_KEY] = time.time()

    app.router.add_post("/api/upload-file", upload_file)
    app.router.add_patch("/api/update-file/{id}", update_file)
    app.router.add_delete("/api/delete-file/{id}", delete_file)
    app.router.add_post("/api/generate-tags", generate_tags)
    app.router.add_get("/api/health", health)
    return app


def main() -> None:
    """Run the API server with configuration from the environment."""
    load_dotenv()
    configure_structured_logging()
    config = get_config()

    supabase = SupabaseAdminClient.from_config(config)
    app = create_app(supabase, TagGenerator.from_config(config))

    async def close_clients(app: web.Application) -> None:
        await app[SUPABASE_KEY].aclose()

    app.on_cleanup.append(close_clients)

    host = config.get("DESIGN_VAULT_HOST", "0.0.0.0")  # nosec B104
    port = config.get("DESIGN_VAULT_PORT", 8080, int)
    logger.info("api_server_starting", host=host, port=port, environment=config.get("ENVIRONMENT", "development"))
    web.run_app(app, host=host, port=port, print=None)


if __name__ == "__main__":
    main()
