from fastapi import APIRouter, Depends, Response
from sqlalchemy import select, func, or_

from database_models import Project
from middleware.auth import authenticate_token
from middleware.pipeline import RequestContext, guard
from middleware.subscription import check_usage_limits
from middleware.validation import validate_request, validate_query, validate_params
from models.schemas import ProjectCreate, ProjectListQuery, ProjectParams
from utils.errors import NotFound
from utils.responses import apply_usage_headers

router = APIRouter(prefix="/api/projects", tags=["projects"])


def project_dict(project: Project) -> dict:
    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "category": project.category,
        "status": project.status,
        "createdAt": project.created_at,
        "updatedAt": project.updated_at,
    }


@router.get("")
async def list_projects(ctx: RequestContext = Depends(guard(authenticate_token, validate_query(ProjectListQuery)))):
    """
    Paginated project list for the authenticated user.
    Supports free-text search on title, category and status filters.
    """
    query = ctx.query
    conditions = [Project.user_id == ctx.user["id"]]
    if query.get("q"):
        pattern = f"%{query['q']}%"
        conditions.append(or_(Project.title.ilike(pattern), Project.description.ilike(pattern)))
    if query.get("category"):
        conditions.append(Project.category == query["category"])
    if query.get("status"):
        conditions.append(Project.status == query["status"])

    sort_column = getattr(Project, query["sortBy"])
    order = sort_column.asc() if query["sortOrder"] == "ASC" else sort_column.desc()

    total = (await ctx.db.execute(select(func.count()).select_from(Project).where(*conditions))).scalar_one()
    result = await ctx.db.execute(
        select(Project)
        .where(*conditions)
        .order_by(order)
        .offset((query["page"] - 1) * query["limit"])
        .limit(query["limit"])
    )

    return {
        "projects": [project_dict(p) for p in result.scalars()],
        "pagination": {
            "page": query["page"],
            "limit": query["limit"],
            "total": total,
        },
    }


@router.post("", status_code=201)
async def create_project(
    response: Response,
    ctx: RequestContext = Depends(guard(
        authenticate_token,
        check_usage_limits("projects"),
        validate_request(ProjectCreate),
    )),
):
    project = Project(
        user_id=ctx.user["id"],
        title=ctx.body["title"],
        description=ctx.body.get("description"),
        category=ctx.body.get("category"),
    )
    ctx.db.add(project)
    await ctx.db.flush()
    await ctx.db.refresh(project)

    apply_usage_headers(response, ctx.usage)
    return {"project": project_dict(project)}


@router.get("/{project_id}")
async def get_project(ctx: RequestContext = Depends(guard(authenticate_token, validate_params(ProjectParams)))):
    result = await ctx.db.execute(
        select(Project).where(Project.id == ctx.params["projectId"], Project.user_id == ctx.user["id"])
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFound("Project not found")
    return {"project": project_dict(project)}
