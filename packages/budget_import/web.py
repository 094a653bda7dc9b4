"""HTTP interface for the import flow (FastAPI).

Routes
------
- ``POST /api/import``: multipart upload -> preview JSON.
- ``POST /api/import/confirm``: accepted preview rows -> commit result.
- ``GET /api/import/source-labels``: labels by most recent use.
- ``GET /api/import/history``: recent import batches.

The household is identified by the ``X-Household-Id`` header; authenticating
that header is left to whatever sits in front of this app. Input problems are
answered with 400 and the message verbatim; anything else is logged and
answered with a generic 500. Every error body is ``{"error": message}``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

from budget_db.client import session_scope
from dotenv import load_dotenv
from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.responses import JSONResponse

from .config import Settings
from .errors import ImportCommitError, ImportValidationError
from .llm import LlmClient, create_llm_client
from .logging_setup import configure_logging, get_logger
from .models import ConfirmRequest
from .persistence import import_history, list_source_labels
from .pipeline import build_preview, confirm_import

_logger = get_logger("budget_import.web")

MSG_INTERNAL = "failed to process the file"

router = APIRouter(prefix="/api/import", tags=["import"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _http_error(_request: Request, exc: HTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


def get_household_id(
    x_household_id: Annotated[str | None, Header(alias="X-Household-Id")] = None,
) -> str:
    if not x_household_id or not x_household_id.strip():
        raise HTTPException(status_code=401, detail="household not identified")
    return x_household_id.strip()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_llm_client(request: Request) -> LlmClient | None:
    return request.app.state.llm_client


HouseholdId = Annotated[str, Depends(get_household_id)]
AppSettings = Annotated[Settings, Depends(get_settings)]


@router.post("")
def upload_statement(
    household_id: HouseholdId,
    settings: AppSettings,
    client: Annotated[LlmClient | None, Depends(get_llm_client)],
    file: Annotated[UploadFile | None, File()] = None,
    source_label: Annotated[str | None, Form(alias="sourceLabel")] = None,
    file_type: Annotated[str | None, Form(alias="fileType")] = None,
) -> Any:
    # One byte over the limit is enough to reject.
    data = file.file.read(settings.max_upload_bytes + 1) if file is not None else None
    filename = file.filename if file is not None else None
    try:
        with session_scope(database_url=settings.database_url) as session:
            preview = build_preview(
                session,
                household_id=household_id,
                filename=filename,
                data=data,
                source_label=source_label,
                client=client,
                settings=settings,
            )
    except ImportValidationError as e:
        return _error(400, str(e))
    except Exception:
        _logger.exception("web:preview_failed household=%s file=%s", household_id, filename)
        return _error(500, MSG_INTERNAL)
    return preview.model_dump(mode="json", by_alias=True)


@router.post("/confirm")
def confirm(body: ConfirmRequest, household_id: HouseholdId, settings: AppSettings) -> Any:
    try:
        with session_scope(database_url=settings.database_url) as session:
            result = confirm_import(
                session,
                household_id=household_id,
                rows=body.rows,
                source_label=body.source_label,
                file_name=body.file_name,
                file_type=body.file_type,
            )
    except ImportCommitError as e:
        return _error(400, str(e))
    except Exception:
        _logger.exception("web:confirm_failed household=%s", household_id)
        return _error(500, "failed to import the transactions")
    return result.model_dump(mode="json", by_alias=True)


@router.get("/source-labels")
def source_labels(household_id: HouseholdId, settings: AppSettings) -> list[str]:
    with session_scope(database_url=settings.database_url) as session:
        return list_source_labels(session, household_id)


@router.get("/history")
def history(household_id: HouseholdId, settings: AppSettings) -> list[dict[str, Any]]:
    with session_scope(database_url=settings.database_url) as session:
        entries = import_history(session, household_id)
    return [e.model_dump(mode="json", by_alias=True) for e in entries]


def create_app(
    settings: Settings | None = None,
    *,
    client_factory: Callable[[Settings], LlmClient | None] = create_llm_client,
) -> FastAPI:
    """Build the app; settings default to the environment (after ``.env``)."""

    if settings is None:
        load_dotenv()
        configure_logging()
        settings = Settings.from_env()

    app = FastAPI(title="Budget Import API")
    app.state.settings = settings
    app.state.llm_client = client_factory(settings)
    if app.state.llm_client is None:
        _logger.warning("web:llm_disabled reason=no_api_key")
    app.add_exception_handler(HTTPException, _http_error)
    app.include_router(router)
    return app


__all__ = ["create_app", "get_household_id", "router"]
