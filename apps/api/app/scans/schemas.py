"""Pydantic schemas for scan endpoints.

Request bodies use the camelCase field names clients send (repoUrl,
filePath); snake_case is accepted too. Responses are the records' own
to_dict() forms, which are already camelCase.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from runner.scanner.context import DEFAULT_CONTEXT_LINES, MAX_CONTEXT_LINES, MIN_CONTEXT_LINES

MAX_URL_LENGTH = 2048


class ScanRequest(BaseModel):
    """Payload for POST /scan and POST /scan/force."""

    model_config = ConfigDict(populate_by_name=True)

    repo_url: str = Field(alias="repoUrl", min_length=1, max_length=MAX_URL_LENGTH)

    @field_validator("repo_url")
    @classmethod
    def strip_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("repoUrl must not be blank")
        return v


class CodeContextRequest(ScanRequest):
    """Payload for POST /scan/context."""

    file_path: str = Field(alias="filePath", min_length=1, max_length=4096)
    line: int = Field(ge=1)
    context: int = Field(
        default=DEFAULT_CONTEXT_LINES,
        ge=MIN_CONTEXT_LINES,
        le=MAX_CONTEXT_LINES,
    )
