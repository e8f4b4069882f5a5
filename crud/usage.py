"""
Usage counting for quota-limited resources
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from database_models import Project, Story, Image, Export


@dataclass(frozen=True)
class UsageSource:
    model: type
    monthly: bool


# Feature key -> counted table; monthly features only count the current calendar month
USAGE_SOURCES = {
    "projects": UsageSource(Project, monthly=False),
    "stories_per_month": UsageSource(Story, monthly=True),
    "images_per_month": UsageSource(Image, monthly=True),
    "exports_per_month": UsageSource(Export, monthly=True),
}


class UsageRepository:
    """Counts rows a user has created, optionally since a point in time."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count(self, model, user_id: str, since: Optional[datetime] = None) -> int:
        statement = select(func.count()).select_from(model).where(model.user_id == str(user_id))
        if since is not None:
            statement = statement.where(model.created_at >= since)
        result = await self.db.execute(statement)
        return int(result.scalar_one())
