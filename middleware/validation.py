"""
Request validation step backed by pydantic models
"""

import logging
from typing import Type

from pydantic import BaseModel, ValidationError

from middleware.pipeline import RequestContext
from utils.errors import ValidationFailed

logger = logging.getLogger(__name__)

SECTIONS = ("body", "query", "params")


def _error_details(exc: ValidationError) -> list:
    details = []
    for error in exc.errors():
        details.append({
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "value": None if error["type"] == "missing" else error.get("input"),
        })
    return details


def validate_request(schema: Type[BaseModel], source: str = "body"):
    """
    Build a step validating one request section against ``schema``.

    All violations are reported together. Fields the schema does not declare
    are dropped. On success the section is replaced by the validated data,
    defaults included.
    """
    if source not in SECTIONS:
        raise ValueError(f"source must be one of {SECTIONS}, got {source!r}")

    async def validate_request_step(ctx: RequestContext) -> None:
        try:
            value = schema.model_validate(getattr(ctx, source))
        except ValidationError as e:
            details = _error_details(e)
            logger.info(f"{schema.__name__} validation failed on {source}: {[d['field'] for d in details]}")
            raise ValidationFailed(details)
        setattr(ctx, source, value.model_dump(mode="json", by_alias=True))

    return validate_request_step


def validate_query(schema: Type[BaseModel]):
    return validate_request(schema, "query")


def validate_params(schema: Type[BaseModel]):
    return validate_request(schema, "params")
