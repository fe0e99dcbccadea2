import asyncio
import mimetypes
import os

import structlog
from dotenv import load_dotenv
from invoke import Context, task

from design_vault.config import GallerySettings
from design_vault.gallery import GalleryCoordinator, LoggingNotifier
from design_vault.logging_config import configure_structured_logging
from design_vault.services.gateway import RemoteDataGateway
from design_vault.services.media import MediaPreparer, UploadSource
from design_vault.services.validation import SUPPORTED_MIME_TYPES, is_mov_filename

logger = structlog.get_logger()


def _load_env(env_file: str) -> None:
    if os.path.exists(env_file):
        logger.info(f"Loading environment variables from {env_file}")
        load_dotenv(dotenv_path=env_file)
    else:
        logger.warning(f"Environment file not found at {env_file}. Using existing environment.")
    configure_structured_logging()


def _guess_content_type(path: str) -> str | None:
    if is_mov_filename(path):
        return "video/quicktime"
    content_type, _ = mimetypes.guess_type(path)
    return content_type


def find_media_files(directory: str, recursive: bool = False) -> list[str]:
    """List files in ``directory`` whose type the gallery accepts."""
    candidates = []
    if recursive:
        for root, _, files in os.walk(directory):
            candidates.extend(os.path.join(root, name) for name in files)
    else:
        candidates = [os.path.join(directory, name) for name in os.listdir(directory)]

    return sorted(
        path
        for path in candidates
        if os.path.isfile(path) and (_guess_content_type(path) or "") in SUPPORTED_MIME_TYPES
    )


async def _upload_files(paths: list[str], apply_tags: bool) -> tuple[int, int]:
    gateway = RemoteDataGateway.from_config()
    coordinator = GalleryCoordinator(
        gateway, GallerySettings.from_config(), LoggingNotifier(), media=MediaPreparer.from_config()
    )
    successful = 0
    try:
        for path in paths:
            with open(path, "rb") as f:
                source = UploadSource(os.path.basename(path), f.read(), _guess_content_type(path) or "")

            item = await coordinator.upload_file(source)
            if item is None:
                continue
            successful += 1

            suggested = coordinator.pending_tags.pop(item.id, [])
            if apply_tags and suggested:
                await coordinator.add_tags(item.id, suggested)
                logger.info("Tags applied", filename=source.filename, tags=suggested)

        await coordinator.wait_idle()
    finally:
        await coordinator.aclose()
        await gateway.aclose()

    return successful, len(paths) - successful


@task
def batch_upload(
    c: Context,
    directory: str,
    env_file: str = ".env",
    recursive: bool = False,
    dry_run: bool = False,
    apply_tags: bool = True,
):
    """
    Upload media from a local directory in batch.

    Args:
        c (Context): Invoke context.
        directory (str): Path to the directory containing images and videos.
        env_file (str): Path to the environment file. Default is '.env'.
        recursive (bool): Search for files in subdirectories. Default is False.
        dry_run (bool): If True, lists files to be processed without uploading. Default is False.
        apply_tags (bool): Apply the suggested tags to each uploaded file. Default is True.
    """
    _load_env(env_file)

    if not os.path.isdir(directory):
        logger.error(f"Directory not found: {directory}")
        return

    media_files = find_media_files(directory, recursive)
    if not media_files:
        logger.warning("No media files found to process.")
        return

    logger.info(f"Found {len(media_files)} file(s) to process.", directory=directory, dry_run=dry_run)

    if dry_run:
        print("\n--- Dry Run Mode: Files to be processed ---")
        for file_path in media_files:
            print(f"- {file_path}")
        print("--- End of Dry Run ---")
        return

    successful, failed = asyncio.run(_upload_files(media_files, apply_tags))
    logger.info("Batch upload finished.", successful=successful, failed=failed, total=len(media_files))
    print(f"\nBatch upload complete. Successful: {successful}, Failed: {failed}")


async def _export_all(output_dir: str) -> str | None:
    gateway = RemoteDataGateway.from_config()
    coordinator = GalleryCoordinator(gateway, GallerySettings.from_config(), LoggingNotifier())
    try:
        result = await coordinator.export_all(
            on_progress=lambda p: logger.debug("Export progress", status=p.status.value, percentage=p.percentage)
        )
    finally:
        await coordinator.aclose()
        await coordinator.exporter.aclose()
        await gateway.aclose()

    if result is None:
        return None
    path = os.path.join(output_dir, result.file_name)
    with open(path, "wb") as f:
        f.write(result.data)
    return path


@task
def export_gallery(c: Context, output_dir: str = ".", env_file: str = ".env"):
    """
    Export the whole gallery to a zip archive.

    Args:
        c (Context): Invoke context.
        output_dir (str): Directory the archive is written to. Default is the current directory.
        env_file (str): Path to the environment file. Default is '.env'.
    """
    _load_env(env_file)

    if not os.path.isdir(output_dir):
        logger.error(f"Directory not found: {output_dir}")
        return

    path = asyncio.run(_export_all(output_dir))
    if path is None:
        print("\nExport failed.")
        return
    print(f"\nExport complete: {path}")
