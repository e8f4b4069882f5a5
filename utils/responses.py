from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def error_response(error, message, status_code=400, **fields):
    """Render the uniform error body: {error, message, ...context fields}."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({
            "error": error,
            "message": message,
            **fields,
        }),
    )


def apply_usage_headers(response, usage):
    """Expose the usage snapshot attached by the usage gate as response headers."""
    if usage is None:
        return response
    response.headers["X-Usage-Limit"] = str(usage.limit)
    response.headers["X-Usage-Current"] = str(usage.current)
    response.headers["X-Usage-Remaining"] = str(usage.remaining)
    return response
