from typing import Annotated, Awaitable, Callable, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from priceledger.core.database import get_async_session as get_session
from priceledger.core.exceptions import (
    DocumentDeletedError,
    DocumentNotFoundError,
    ParseAlreadyRunningError,
    ParseRunNotFoundError,
)
from priceledger.models.enums import DiffClassification, ParseRunStatus
from priceledger.pipeline.document_parse import run_document_parse_workflow, start_parse_run
from priceledger.schemas.common import ApiResponse
from priceledger.schemas.documents import ParseStartedResponse
from priceledger.services.document_query_service import DocumentQueryService
from priceledger.utils.logging import get_logger
from priceledger.utils.responses import create_api_response, create_error_detail

LOGGER = get_logger(__name__)

router = APIRouter()

ParseStarter = Callable[[UUID], Awaitable[UUID]]
WorkflowRunner = Callable[[UUID], Awaitable[object]]


async def get_query_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> DocumentQueryService:
    return DocumentQueryService(db_session)


def get_parse_starter() -> ParseStarter:
    return start_parse_run


def get_workflow_runner() -> WorkflowRunner:
    return run_document_parse_workflow


async def _run_workflow_in_background(runner: WorkflowRunner, parse_run_id: UUID) -> None:
    # The workflow records its own failure on the run before re-raising
    try:
        await runner(parse_run_id)
    except Exception as e:
        LOGGER.error(
            f"Background parse workflow failed: {e}",
            extra={"parse_run_id": str(parse_run_id)},
        )


def _not_found(request: Request, title: str, detail: str) -> HTTPException:
    error_detail = create_error_detail(
        title=title,
        status=status.HTTP_404_NOT_FOUND,
        detail=detail,
        request=request
    )
    return HTTPException(status_code=404, detail=error_detail.model_dump(mode='json'))


def _conflict(request: Request, title: str, detail: str) -> HTTPException:
    error_detail = create_error_detail(
        title=title,
        status=status.HTTP_409_CONFLICT,
        detail=detail,
        request=request
    )
    return HTTPException(status_code=409, detail=error_detail.model_dump(mode='json'))


@router.post(
    "/{document_id}/parse",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start parsing a document",
    operation_id="start_document_parse",
)
async def start_document_parse(
    request: Request,
    document_id: UUID,
    background_tasks: BackgroundTasks,
    starter: Annotated[ParseStarter, Depends(get_parse_starter)],
    runner: Annotated[WorkflowRunner, Depends(get_workflow_runner)],
) -> ApiResponse:
    """Open a parse run and schedule the parse workflow."""
    try:
        parse_run_id = await starter(document_id)
    except DocumentNotFoundError:
        raise _not_found(request, "Document Not Found", f"Document with ID {document_id} not found")
    except DocumentDeletedError:
        raise _conflict(request, "Document Deleted", f"Document with ID {document_id} is deleted")
    except ParseAlreadyRunningError:
        raise _conflict(
            request, "Parse Already Running", f"Document with ID {document_id} is already being parsed"
        )

    background_tasks.add_task(_run_workflow_in_background, runner, parse_run_id)

    return create_api_response(
        data=ParseStartedResponse(
            document_id=document_id,
            parse_run_id=parse_run_id,
            status=ParseRunStatus.RUNNING.value,
        ),
        message="Parse started",
        request=request
    )


@router.get(
    "/parse-runs/{parse_run_id}",
    response_model=ApiResponse,
    summary="Get parse run status",
    operation_id="get_parse_run",
)
async def get_parse_run(
    request: Request,
    parse_run_id: UUID,
    query_service: Annotated[DocumentQueryService, Depends(get_query_service)],
) -> ApiResponse:
    try:
        run = await query_service.get_parse_run(parse_run_id)
    except ParseRunNotFoundError:
        raise _not_found(request, "Parse Run Not Found", f"Parse run with ID {parse_run_id} not found")

    return create_api_response(
        data=run,
        message="Parse run retrieved successfully",
        request=request
    )


@router.get(
    "/{document_id}/parse-runs/{parse_run_id}/line-items",
    response_model=ApiResponse,
    summary="List line items of a parse run",
    operation_id="list_parse_run_line_items",
)
async def list_line_items(
    request: Request,
    document_id: UUID,
    parse_run_id: UUID,
    query_service: Annotated[DocumentQueryService, Depends(get_query_service)],
) -> ApiResponse:
    try:
        items = await query_service.list_line_items(document_id, parse_run_id)
    except ParseRunNotFoundError:
        raise _not_found(request, "Parse Run Not Found", f"Parse run with ID {parse_run_id} not found")

    return create_api_response(
        data={"total": len(items), "items": [i.model_dump(mode="json") for i in items]},
        message="Line items retrieved successfully",
        request=request
    )


@router.get(
    "/{document_id}/parse-runs/{parse_run_id}/diff",
    response_model=ApiResponse,
    summary="List diff items of a parse run",
    operation_id="list_parse_run_diff_items",
)
async def list_diff_items(
    request: Request,
    document_id: UUID,
    parse_run_id: UUID,
    query_service: Annotated[DocumentQueryService, Depends(get_query_service)],
    classification: Optional[DiffClassification] = Query(None),
) -> ApiResponse:
    """Diff items ordered by classification, then line number."""
    try:
        items = await query_service.list_diff_items(document_id, parse_run_id, classification)
    except ParseRunNotFoundError:
        raise _not_found(request, "Parse Run Not Found", f"Parse run with ID {parse_run_id} not found")

    return create_api_response(
        data={"total": len(items), "items": [i.model_dump(mode="json") for i in items]},
        message="Diff items retrieved successfully",
        request=request
    )


@router.get(
    "/{document_id}/parse-runs/{parse_run_id}/diff/summary",
    response_model=ApiResponse,
    summary="Count diff items per classification",
    operation_id="get_parse_run_diff_summary",
)
async def get_diff_summary(
    request: Request,
    document_id: UUID,
    parse_run_id: UUID,
    query_service: Annotated[DocumentQueryService, Depends(get_query_service)],
) -> ApiResponse:
    try:
        summary = await query_service.diff_summary(document_id, parse_run_id)
    except ParseRunNotFoundError:
        raise _not_found(request, "Parse Run Not Found", f"Parse run with ID {parse_run_id} not found")

    return create_api_response(
        data=summary,
        message="Diff summary retrieved successfully",
        request=request
    )
