"""
Services module for Design Vault.

This module contains the service classes that talk to the outside world:
- RemoteDataGateway: Reads from the hosted table, mutations through the API
- SupabaseAdminClient: Service-role table and storage access for the API server
- TagGenerator / TagSuggestionService: AI tagging with a keyword fallback
- MediaPreparer: MOV to MP4 conversion before upload
- ImageProcessor: Image optimisation before storage
- ExportService: Zip export of gallery items
"""

from .export import ExportProgress, ExportResult, ExportService, ExportStatus
from .gateway import RemoteDataGateway
from .image_processor import ImageProcessor, ProcessedImage
from .media import MediaPreparer, UploadSource
from .supabase import SupabaseAdminClient
from .tagging import TagGenerator, TagSuggestionService, generate_fallback_tags

__all__ = [
    "ExportProgress",
    "ExportResult",
    "ExportService",
    "ExportStatus",
    "ImageProcessor",
    "MediaPreparer",
    "ProcessedImage",
    "RemoteDataGateway",
    "SupabaseAdminClient",
    "TagGenerator",
    "TagSuggestionService",
    "UploadSource",
    "generate_fallback_tags",
]
