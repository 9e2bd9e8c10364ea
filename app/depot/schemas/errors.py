from pydantic import BaseModel


class ApiErrorResponse(BaseModel):
    code: str
    message: str
    details: dict | None = None
    trace_id: str | None = None


class ApiValidationErrorItem(BaseModel):
    field: str | None = None
    message: str
    type: str
    loc: list[str | int] | None = None
    input: object | None = None
    ctx: dict | None = None


class ApiValidationErrorDetails(BaseModel):
    errors: list[ApiValidationErrorItem]


class ApiValidationErrorResponse(ApiErrorResponse):
    details: ApiValidationErrorDetails | dict | None = None


def error_responses(*status_codes: int) -> dict[int, dict]:
    """OpenAPI ``responses`` entries for the error envelope."""
    descriptions = {
        401: "Missing or invalid bearer token",
        404: "Transfer or item not found",
        409: "Invalid transition, quantity conservation violation or stale version",
        422: "Validation error",
    }
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        model = ApiValidationErrorResponse if status_code == 422 else ApiErrorResponse
        responses[status_code] = {"model": model, "description": descriptions.get(status_code, "Error")}
    return responses
