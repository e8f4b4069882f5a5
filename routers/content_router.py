"""
Quota-limited content creation: stories, images and exports.

Generation itself happens elsewhere; these endpoints record what was
created so usage can be counted against the caller's plan.
"""

import logging
from fastapi import APIRouter, Depends, Response
from sqlalchemy import select

from database_models import Export, Image, Project, Story
from middleware.auth import authenticate_token
from middleware.pipeline import RequestContext, guard
from middleware.subscription import check_usage_limits, require_subscription
from middleware.validation import validate_request
from models.schemas import BulkExportCreate, ExportCreate, ImageCreate, StoryCreate
from utils.errors import NotFound
from utils.responses import apply_usage_headers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["content"])


async def _owned_project_ids(ctx: RequestContext, project_ids) -> set:
    result = await ctx.db.execute(
        select(Project.id).where(Project.id.in_(project_ids), Project.user_id == ctx.user["id"])
    )
    return set(result.scalars())


async def _require_project(ctx: RequestContext, project_id: str) -> None:
    if project_id not in await _owned_project_ids(ctx, [project_id]):
        raise NotFound("Project not found")


@router.post("/stories", status_code=201)
async def create_story(
    response: Response,
    ctx: RequestContext = Depends(guard(
        authenticate_token,
        check_usage_limits("stories_per_month"),
        validate_request(StoryCreate),
    )),
):
    await _require_project(ctx, ctx.body["projectId"])
    story = Story(
        user_id=ctx.user["id"],
        project_id=ctx.body["projectId"],
        title=ctx.body["title"],
        content=ctx.body["content"],
    )
    ctx.db.add(story)
    await ctx.db.flush()

    apply_usage_headers(response, ctx.usage)
    return {"story": {"id": story.id, "projectId": story.project_id, "title": story.title}}


@router.post("/images", status_code=201)
async def create_image(
    response: Response,
    ctx: RequestContext = Depends(guard(
        authenticate_token,
        check_usage_limits("images_per_month"),
        validate_request(ImageCreate),
    )),
):
    if ctx.body.get("projectId"):
        await _require_project(ctx, ctx.body["projectId"])
    image = Image(
        user_id=ctx.user["id"],
        project_id=ctx.body.get("projectId"),
        filename=ctx.body["filename"],
        prompt=ctx.body.get("prompt"),
        image_type=ctx.body.get("imageType"),
    )
    ctx.db.add(image)
    await ctx.db.flush()

    apply_usage_headers(response, ctx.usage)
    return {"image": {"id": image.id, "filename": image.filename, "imageType": image.image_type}}


@router.post("/exports", status_code=201)
async def create_export(
    response: Response,
    ctx: RequestContext = Depends(guard(
        authenticate_token,
        check_usage_limits("exports_per_month"),
        validate_request(ExportCreate),
    )),
):
    await _require_project(ctx, ctx.body["projectId"])
    export = Export(
        user_id=ctx.user["id"],
        project_id=ctx.body["projectId"],
        export_type=ctx.body["exportType"],
    )
    ctx.db.add(export)
    await ctx.db.flush()

    apply_usage_headers(response, ctx.usage)
    return {"export": {"id": export.id, "projectId": export.project_id, "status": export.status}}


@router.post("/exports/bulk", status_code=201)
async def create_bulk_export(
    ctx: RequestContext = Depends(guard(
        authenticate_token,
        require_subscription("pro"),
        validate_request(BulkExportCreate),
    )),
):
    """Queue one export per project; a pro subscription or higher is required"""
    project_ids = ctx.body["projectIds"]
    owned = await _owned_project_ids(ctx, project_ids)
    missing = [pid for pid in project_ids if pid not in owned]
    if missing:
        raise NotFound("Project not found", projectIds=missing)

    exports = [
        Export(user_id=ctx.user["id"], project_id=pid, export_type=ctx.body["exportType"])
        for pid in project_ids
    ]
    ctx.db.add_all(exports)
    await ctx.db.flush()
    logger.info(f"Queued {len(exports)} bulk exports for user {ctx.user['id']}")

    return {"exports": [{"id": e.id, "projectId": e.project_id, "status": e.status} for e in exports]}
