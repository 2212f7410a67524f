"""Downloader package: platform detection, metadata, media pipeline and jobs.

This package provides URL detection, metadata extraction and the
fetch/transcode pipeline for the supported platforms (TikTok, Instagram,
YouTube, Twitter/X, Facebook, Snapchat), plus the in-memory job store and
the runner that drains download jobs with retries.
"""
import logging

# Set up package logger
logger = logging.getLogger(__name__)

# Import exception hierarchy
from .exceptions import (
    DownloadError,
    ExtractionTimeoutError,
    MetadataExtractionError,
    NotFoundError,
    PrivateOrUnavailableError,
    PrivateVideoError,
    ProcessFailedError,
    ProcessStartError,
    StorageFullError,
    UnsupportedURLError,
    ValidationError,
    VideoUnavailableError,
)

# Import shared types
from .types import (
    VALID_FORMATS,
    VALID_QUALITIES,
    PlatformDescriptor,
    ProcessingOptions,
    ProcessingResult,
    VideoMetadata,
)

# Import URL detector components
from .url_detector import (
    UNKNOWN_PLATFORM,
    clean_url,
    detect,
    extract_video_id,
    get_all_platforms,
    get_platform_info,
    validate,
)

# Import pipeline and job components
from .metadata_extractor import MetadataExtractor
from .media_processor import MediaProcessor
from .job_store import Job, JobStatus, JobStore
from .job_queue import JobRunner, WorkItem
from .retry_handler import RetryPolicy

__all__ = [
    # Exceptions
    "DownloadError",
    "ExtractionTimeoutError",
    "MetadataExtractionError",
    "NotFoundError",
    "PrivateOrUnavailableError",
    "PrivateVideoError",
    "ProcessFailedError",
    "ProcessStartError",
    "StorageFullError",
    "UnsupportedURLError",
    "ValidationError",
    "VideoUnavailableError",
    # Types
    "VALID_FORMATS",
    "VALID_QUALITIES",
    "PlatformDescriptor",
    "ProcessingOptions",
    "ProcessingResult",
    "VideoMetadata",
    # URL detection
    "UNKNOWN_PLATFORM",
    "clean_url",
    "detect",
    "extract_video_id",
    "get_all_platforms",
    "get_platform_info",
    "validate",
    # Pipeline and jobs
    "MetadataExtractor",
    "MediaProcessor",
    "Job",
    "JobStatus",
    "JobStore",
    "JobRunner",
    "WorkItem",
    "RetryPolicy",
]
