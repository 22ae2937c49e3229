"""Summary generation and document publishing schemas."""

from typing import Any

from pydantic import BaseModel


class GenerateSummaryRequest(BaseModel):
    owner: str | None = None
    repo: str | None = None
    prNumber: str | int | None = None
    diffData: list[dict[str, Any]] | None = None


class GenerateSummaryResponse(BaseModel):
    content: str
    usedFallback: bool


class CreateDocRequest(BaseModel):
    repo: str | None = None
    prNumber: str | int | None = None
    prTitle: str | None = None
    prLink: str | None = None
    content: str | None = None
    folderId: str | None = None
    documentName: str | None = None


class CreateDocResponse(BaseModel):
    path: str


class GenerateDocsRequest(GenerateSummaryRequest):
    folderId: str | None = None
    documentName: str | None = None


class GenerateDocsResponse(BaseModel):
    message: str = "Success"
    path: str
    content: str
    usedFallback: bool
