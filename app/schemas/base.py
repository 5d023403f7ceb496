from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SuccessResponse(APIModel):
    success: bool = True
    message: str | None = None


class ErrorResponse(APIModel):
    success: bool = False
    error: str
    code: str
