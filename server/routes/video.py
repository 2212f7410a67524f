"""Video endpoints: metadata extraction, download jobs and platform listing."""
import json
import logging
import uuid

from aiohttp import web

from server.app_keys import CONFIG_KEY, EXTRACTOR_KEY, RUNNER_KEY, STORE_KEY
from server.downloaders.exceptions import NotFoundError, StorageFullError, ValidationError
from server.downloaders.job_store import Job
from server.downloaders.types import VALID_FORMATS, VALID_QUALITIES
from server.downloaders.url_detector import detect, get_all_platforms
from server.validators import check_disk_space, validate_download_request, validate_extract_request

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

DEFAULT_QUALITIES = ["360p", "720p", "1080p"]
ESTIMATED_TIME = "30-120 seconds"


async def read_json(request: web.Request):
    """Parse the request body as JSON, raising ValidationError if it is not."""
    try:
        return await request.json()
    except json.JSONDecodeError as e:
        raise ValidationError(f"Malformed JSON body: {e.msg}") from e


@routes.post("/api/video/extract")
async def extract_video(request: web.Request) -> web.Response:
    url = validate_extract_request(await read_json(request))
    platform = detect(url)
    logger.info(f"Extracting metadata for {platform} URL: {url}")

    metadata = await request.app[EXTRACTOR_KEY].extract(url)
    return web.json_response({
        "success": True,
        "data": {
            "platform": platform,
            "metadata": metadata.to_dict(),
            "supportedQualities": metadata.available_qualities or DEFAULT_QUALITIES,
            "estimatedSizes": metadata.file_size,
        },
    })


@routes.post("/api/video/download")
async def download_video(request: web.Request) -> web.Response:
    url, options = validate_download_request(await read_json(request))

    has_space, error = check_disk_space(request.app[CONFIG_KEY].TEMP_DIR)
    if not has_space:
        raise StorageFullError(error, url=url)

    job_id = str(uuid.uuid4())
    platform = detect(url)
    request.app[STORE_KEY].put(Job(
        id=job_id,
        url=url,
        platform=platform,
        options=options,
        client_ip=request.remote,
    ))
    logger.info(f"[{job_id}] Created download job for {platform} URL: {url}")

    request.app[RUNNER_KEY].add(job_id, url, options)

    return web.json_response({
        "success": True,
        "data": {
            "jobId": job_id,
            "status": "queued",
            "message": "Video processing started",
            "statusUrl": f"/api/video/status/{job_id}",
            "estimatedTime": ESTIMATED_TIME,
        },
    })


@routes.get("/api/video/status/{job_id}")
async def job_status(request: web.Request) -> web.Response:
    job_id = request.match_info["job_id"]
    job = request.app[STORE_KEY].get(job_id)
    if job is None:
        raise NotFoundError("The specified job ID does not exist or has expired", job_id=job_id)
    return web.json_response({"success": True, "data": job.to_dict()})


@routes.delete("/api/video/job/{job_id}")
async def cancel_job(request: web.Request) -> web.Response:
    job_id = request.match_info["job_id"]
    outcome = request.app[RUNNER_KEY].cancel(job_id)
    logger.info(f"[{job_id}] Job {outcome}")
    return web.json_response({
        "success": True,
        "message": f"Job {outcome} successfully",
        "data": {"jobId": job_id, "status": outcome},
    })


@routes.get("/api/video/platforms")
async def list_platforms(request: web.Request) -> web.Response:
    platforms = {}
    for platform in get_all_platforms():
        domains = platform["domains"]
        platforms[platform["key"]] = {
            "name": platform["name"],
            "domain": domains[0] if len(domains) == 1 else domains,
            **platform["capabilities"],
        }
    return web.json_response({
        "success": True,
        "data": {
            "platforms": platforms,
            "supportedFormats": list(VALID_FORMATS),
            "supportedQualities": list(VALID_QUALITIES),
        },
    })
