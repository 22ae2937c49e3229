"""AI routes: PR summary generation and the one-shot generate-and-publish flow."""

import logging

from fastapi import APIRouter, Depends

from prdoc.config import Settings, get_settings
from prdoc.dependencies import get_ai, get_credential_resolver, get_drive
from prdoc.errors import AIProviderError, AllProvidersExhaustedError, BadRequestError
from prdoc.schemas.generate import (
    GenerateDocsRequest,
    GenerateDocsResponse,
    GenerateSummaryRequest,
    GenerateSummaryResponse,
)
from prdoc.services.ai_service import AIService, GenerationResult
from prdoc.services.credentials import CredentialResolver
from prdoc.services.drive_service import DriveService, compose_document, default_document_name

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["ai"])


def _check_summary_request(body: GenerateSummaryRequest) -> None:
    if not body.owner or not body.repo or not body.prNumber or body.diffData is None:
        raise BadRequestError("Missing required information. Please fetch a valid PR first.")


async def _summarize(body: GenerateSummaryRequest, ai: AIService) -> GenerationResult:
    _check_summary_request(body)
    try:
        return await ai.generate_summary(body.owner, body.repo, str(body.prNumber), body.diffData)
    except AllProvidersExhaustedError:
        raise
    except AIProviderError as e:
        logger.error("AI summary generation failed: %s", e.message)
        raise AIProviderError("Failed to generate documentation. Please try again.", details=e.details) from e


@router.post("/generate-summary", response_model=GenerateSummaryResponse)
async def generate_summary(
    body: GenerateSummaryRequest,
    ai: AIService = Depends(get_ai),
):
    """Generate an editable Markdown summary of a PR diff."""
    result = await _summarize(body, ai)
    return GenerateSummaryResponse(content=result.content, usedFallback=result.used_fallback)


@router.post("/generate-docs", response_model=GenerateDocsResponse)
async def generate_docs(
    body: GenerateDocsRequest,
    ai: AIService = Depends(get_ai),
    resolver: CredentialResolver = Depends(get_credential_resolver),
    drive: DriveService = Depends(get_drive),
    settings: Settings = Depends(get_settings),
):
    """Summarize and publish in one call, without an editing step."""
    _check_summary_request(body)
    # Credentials are checked before any AI call is spent
    if not settings.google_service_account_file:
        await resolver.require_credentials(google=True)
    access_token = await resolver.publishing_token()

    result = await _summarize(body, ai)
    pr_number = str(body.prNumber)
    path = await drive.upload(
        default_document_name(body.repo, pr_number),
        compose_document(result.content, body.repo, pr_number, None, None),
        access_token=access_token,
        folder_id=body.folderId,
        document_name=body.documentName,
    )
    logger.info("Generated and published doc for %s/%s#%s", body.owner, body.repo, pr_number)
    return GenerateDocsResponse(path=path, content=result.content, usedFallback=result.used_fallback)
