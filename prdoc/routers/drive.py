"""Drive folder picker routes."""

from fastapi import APIRouter, Depends

from prdoc.dependencies import get_credential_resolver, get_drive
from prdoc.errors import BadRequestError
from prdoc.schemas.drive import CreateFolderRequest, DriveFolder, FolderListResponse
from prdoc.services.credentials import CredentialResolver
from prdoc.services.drive_service import DriveService

router = APIRouter(prefix="/api/drive", tags=["drive"])


@router.get("/folders", response_model=FolderListResponse)
async def list_folders(
    parentId: str = "root",
    resolver: CredentialResolver = Depends(get_credential_resolver),
    drive: DriveService = Depends(get_drive),
):
    token = await resolver.require_google_token()
    return FolderListResponse(**await drive.list_folders(token, parentId or "root"))


@router.post("/folders", response_model=DriveFolder)
async def create_folder(
    body: CreateFolderRequest,
    resolver: CredentialResolver = Depends(get_credential_resolver),
    drive: DriveService = Depends(get_drive),
):
    if not body.name or not body.name.strip():
        raise BadRequestError("Folder name is required")

    token = await resolver.require_google_token()
    return DriveFolder(**await drive.create_folder(token, body.name, body.parentId or "root"))
