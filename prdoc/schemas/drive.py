"""Drive folder picker schemas."""

from pydantic import BaseModel


class DriveFolder(BaseModel):
    id: str
    name: str


class FolderListResponse(BaseModel):
    parentId: str
    parentName: str
    parentPath: str
    folders: list[DriveFolder]


class CreateFolderRequest(BaseModel):
    name: str | None = None
    parentId: str = "root"
