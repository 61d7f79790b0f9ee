from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    success: bool = False
    code: str
    message: str
    details: list[dict] = Field(default_factory=list)
    retryable: bool | None = None
    traceback: str | None = None
