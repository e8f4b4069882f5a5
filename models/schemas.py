"""
Request schemas used by the validation step.

Public field names are camelCase; attributes are snake_case.
"""
import re
import uuid
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, HttpUrl, model_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


class RequestSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


def _check_email(value: str) -> str:
    if not EMAIL_PATTERN.match(value):
        raise ValueError("must be a valid email")
    return value.lower()


Email = Annotated[str, AfterValidator(_check_email)]


# Auth

class RegisterRequest(RequestSchema):
    email: Email
    password: str = Field(min_length=8)
    username: Optional[str] = Field(default=None, min_length=3, max_length=30, pattern=r"^[A-Za-z0-9]+$")
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(RequestSchema):
    email: Email
    password: str


class RefreshRequest(RequestSchema):
    refresh_token: str = Field(min_length=1)


# Payments

class CreateCheckoutRequest(RequestSchema):
    price_id: str = Field(min_length=1)
    success_url: HttpUrl
    cancel_url: HttpUrl
    metadata: Optional[dict] = None


# Listing

class Pagination(RequestSchema):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    sort_by: str = "created_at"
    sort_order: Literal["ASC", "DESC"] = "DESC"


class ProjectListQuery(Pagination):
    sort_by: Literal["created_at", "updated_at", "title"] = "created_at"
    q: Optional[str] = Field(default=None, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)
    status: Optional[Literal["draft", "published", "archived"]] = None


class ProjectParams(RequestSchema):
    project_id: uuid.UUID


# Resources

class ProjectCreate(RequestSchema):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)


class StoryCreate(RequestSchema):
    project_id: uuid.UUID
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)


class ImageCreate(RequestSchema):
    filename: str = Field(min_length=1, max_length=255)
    project_id: Optional[uuid.UUID] = None
    prompt: Optional[str] = None
    image_type: Optional[Literal["story", "cover", "drawing", "template"]] = None


class ExportCreate(RequestSchema):
    project_id: uuid.UUID
    export_type: Literal["pdf", "epub", "png"] = "pdf"


class BulkExportCreate(RequestSchema):
    project_ids: list[uuid.UUID] = Field(min_length=1, max_length=50)
    export_type: Literal["pdf", "epub", "png"] = "pdf"

    @model_validator(mode="after")
    def _unique_projects(self):
        if len(set(self.project_ids)) != len(self.project_ids):
            raise ValueError("projectIds must not contain duplicates")
        return self
