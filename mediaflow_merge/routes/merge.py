import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from mediaflow_merge.const import GENERIC_FAILURE_MESSAGE
from mediaflow_merge.merge.models import MergeRequest
from mediaflow_merge.merge.pipeline import MergePipeline

merge_router = APIRouter()
logger = logging.getLogger(__name__)


def get_merge_pipeline() -> MergePipeline:
    """Pipelines are cheap; every one of them shares the process-wide engine."""
    return MergePipeline()


async def parse_merge_request(request: Request) -> MergeRequest:
    """Accept the merge fields either as a submitted form or as a JSON body."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError as e:
            raise RequestValidationError(
                [{"type": "json_invalid", "loc": ("body",), "msg": f"Invalid JSON body: {e}", "input": None}]
            )
    else:
        payload = dict(await request.form())

    try:
        return MergeRequest.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))


@merge_router.post("/merge", summary="Merge a video with an audio and a subtitle track")
async def merge_media(
    merge_request: Annotated[MergeRequest, Depends(parse_merge_request)],
    pipeline: Annotated[MergePipeline, Depends(get_merge_pipeline)],
):
    """
    Download the three sources, merge them into one MP4 and return it as an attachment.

    Any failure is reported with the same generic message; the specific error
    kind only goes to the log.
    """
    job = await pipeline.run(merge_request)

    if job.error is not None or job.artifact is None:
        logger.warning("Merge job %s failed: %s", job.job_id, job.failure_reason)
        raise HTTPException(status_code=502, detail=GENERIC_FAILURE_MESSAGE)

    artifact = job.artifact
    return Response(
        content=artifact.data,
        media_type=artifact.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )
