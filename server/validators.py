"""Request validation for the video endpoints.

Provides validation functions that fail fast on malformed request bodies
before any job is created or external process is spawned. Field checks
return ``(is_valid, error_message)`` tuples; the request-level helpers
collect every failing field and raise a single ``ValidationError`` whose
``details`` list the offending fields.
"""
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from server.downloaders.exceptions import ValidationError
from server.downloaders.types import VALID_FORMATS, VALID_QUALITIES, ProcessingOptions
from server.downloaders.url_detector import validate as is_supported_url

logger = logging.getLogger(__name__)


def _detail(field: str, message: str, value: Any) -> Dict[str, Any]:
    return {"field": field, "message": message, "value": value, "location": "body"}


def validate_url(url: Any) -> Tuple[bool, Optional[str]]:
    """Validate a source URL.

    Args:
        url: Value of the ``url`` field

    Returns:
        Tuple of (is_valid, error_message)
        - is_valid: True if the URL is well formed and from a supported platform
        - error_message: None if valid, otherwise what is wrong with it
    """
    if not isinstance(url, str) or not url.strip():
        return False, "Please provide a valid URL"

    lowered = url.strip().lower()
    if "://" in lowered and not lowered.startswith(("http://", "https://")):
        return False, "Please provide a valid URL"

    if not is_supported_url(url.strip()):
        logger.debug(f"URL validation failed: {url}")
        return False, "URL is not from a supported platform"

    return True, None


def validate_quality(quality: Any) -> Tuple[bool, Optional[str]]:
    if quality in VALID_QUALITIES:
        return True, None
    return False, f"Quality must be one of: {', '.join(VALID_QUALITIES)}"


def validate_format(output_format: Any) -> Tuple[bool, Optional[str]]:
    if output_format in VALID_FORMATS:
        return True, None
    return False, f"Format must be one of: {', '.join(VALID_FORMATS)}"


def validate_remove_watermark(value: Any) -> Tuple[bool, Optional[str]]:
    if isinstance(value, bool):
        return True, None
    return False, "removeWatermark must be a boolean"


def _require_object(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError(
            "Request body must be a JSON object",
            details=[_detail("body", "Request body must be a JSON object", None)],
        )
    return body


def validate_extract_request(body: Any) -> str:
    """Validate an extract request and return the URL.

    Raises:
        ValidationError: If the URL is missing, malformed or unsupported
    """
    body = _require_object(body)
    url = body.get("url")
    is_valid, error = validate_url(url)
    if not is_valid:
        raise ValidationError(error, details=[_detail("url", error, url)])
    return url.strip()


def validate_download_request(body: Any) -> Tuple[str, ProcessingOptions]:
    """Validate a download request.

    Missing optional fields take their defaults: quality ``best``,
    removeWatermark ``true`` and format ``mp4``.

    Returns:
        Tuple of (url, options)

    Raises:
        ValidationError: With one detail per failing field
    """
    body = _require_object(body)
    defaults = ProcessingOptions()
    url = body.get("url")
    quality = body.get("quality", defaults.quality)
    remove_watermark = body.get("removeWatermark", defaults.remove_watermark)
    output_format = body.get("format", defaults.format)

    details: List[Dict[str, Any]] = []
    checks = [
        ("url", url, validate_url),
        ("quality", quality, validate_quality),
        ("removeWatermark", remove_watermark, validate_remove_watermark),
        ("format", output_format, validate_format),
    ]
    for field, value, check in checks:
        is_valid, error = check(value)
        if not is_valid:
            details.append(_detail(field, error, value))

    if details:
        logger.warning(f"Download request rejected: {[d['field'] for d in details]}")
        raise ValidationError(details[0]["message"], details=details)

    return url.strip(), ProcessingOptions(
        quality=quality,
        remove_watermark=remove_watermark,
        format=output_format,
    )


def check_disk_space(path: str, required_mb: int = 100) -> Tuple[bool, Optional[str]]:
    """Check if sufficient disk space is available under ``path``.

    Returns:
        Tuple of (has_space, error_message)
    """
    try:
        stat = os.statvfs(path)
    except OSError as e:
        # If we can't check disk space, log warning but don't fail
        logger.warning(f"Could not check disk space on {path}: {e}")
        return True, None

    available_mb = stat.f_frsize * stat.f_bavail / (1024 * 1024)
    logger.debug(f"Available disk space: {available_mb:.2f}MB (required: {required_mb}MB)")
    if available_mb < required_mb:
        logger.warning(f"Insufficient disk space: {available_mb:.2f}MB < {required_mb}MB")
        return False, "Insufficient disk space"
    return True, None


__all__ = [
    "validate_url",
    "validate_quality",
    "validate_format",
    "validate_remove_watermark",
    "validate_extract_request",
    "validate_download_request",
    "check_disk_space",
]
