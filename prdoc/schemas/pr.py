"""Pull request diff schemas."""

from pydantic import BaseModel


class PRFile(BaseModel):
    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None


class PRResponse(BaseModel):
    title: str
    html_url: str
    files: list[PRFile]
