"""Publish an (edited) summary as a Google Doc."""

import logging

from fastapi import APIRouter, Depends

from prdoc.dependencies import get_credential_resolver, get_drive
from prdoc.errors import BadRequestError
from prdoc.schemas.generate import CreateDocRequest, CreateDocResponse
from prdoc.services.credentials import CredentialResolver
from prdoc.services.drive_service import DriveService, compose_document, default_document_name

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["drive"])


@router.post("/create-doc", response_model=CreateDocResponse)
async def create_doc(
    body: CreateDocRequest,
    resolver: CredentialResolver = Depends(get_credential_resolver),
    drive: DriveService = Depends(get_drive),
):
    if not body.repo or not body.prNumber or not body.content:
        raise BadRequestError("Missing required fields: repo, prNumber, content")

    pr_number = str(body.prNumber)
    # None selects the legacy service account when one is configured
    access_token = await resolver.publishing_token()
    path = await drive.upload(
        default_document_name(body.repo, pr_number),
        compose_document(body.content, body.repo, pr_number, body.prTitle, body.prLink),
        access_token=access_token,
        folder_id=body.folderId,
        document_name=body.documentName,
    )
    logger.info("Created Google Doc for %s PR #%s", body.repo, pr_number)
    return CreateDocResponse(path=path)
