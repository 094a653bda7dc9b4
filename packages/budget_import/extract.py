"""Single-call extraction of transactions from PDF and image statements.

The statement is attached to one model request that both extracts and
categorizes every transaction. Extraction is best effort: any failure
(no client, transport error, unparseable reply) yields ``[]`` and the
orchestrator reports "no transactions found".
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import prompting
from .categorize import CategoryIndex
from .config import Settings
from .llm import LlmClient
from .logging_setup import get_logger
from .models import CategoryInfo, Confidence, ExtractedRow, TransactionType
from .parsing import parse_date

_logger = get_logger("budget_import.extract")

_MEDIA_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


def media_type_for(extension: str) -> str:
    return _MEDIA_TYPES.get(extension.lower(), "application/octet-stream")


def build_attachment(content_b64: str, *, media_type: str, filename: str) -> dict[str, Any]:
    """Responses API content part for the statement file."""

    data_url = f"data:{media_type};base64,{content_b64}"
    if media_type == "application/pdf":
        return {"type": "input_file", "filename": filename, "file_data": data_url}
    return {"type": "input_image", "image_url": data_url}


class _ExtractedItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: str
    description: str
    amount: float
    type: TransactionType
    category_id: str | None = Field(default=None, alias="categoryId")
    sub_category_id: str | None = Field(default=None, alias="subCategoryId")
    confidence: Confidence = Confidence.UNKNOWN
    is_transfer: bool = Field(default=False, alias="isTransfer")

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in {c.value for c in Confidence}:
            return v.strip().lower()
        return Confidence.UNKNOWN

    @field_validator("is_transfer", mode="before")
    @classmethod
    def _coerce_flag(cls, v: Any) -> Any:
        return v if isinstance(v, bool) else False


def _to_row(raw: Any, index: CategoryIndex) -> ExtractedRow | None:
    try:
        item = _ExtractedItem.model_validate(raw)
    except ValidationError:
        return None
    when = parse_date(item.date)
    description = " ".join(item.description.split())
    amount = round(abs(item.amount), 2)
    if when is None or not description or amount == 0:
        return None
    cat, sub = index.resolve(item.category_id, item.sub_category_id)
    return ExtractedRow(
        date=when,
        description=description,
        amount=amount,
        type=item.type,
        category_id=cat,
        sub_category_id=sub,
        confidence=item.confidence if cat else Confidence.UNKNOWN,
        is_transfer=item.is_transfer,
    )


def extract_document(
    content_b64: str,
    categories: Sequence[CategoryInfo],
    *,
    client: LlmClient | None,
    settings: Settings,
    media_type: str = "application/pdf",
    filename: str = "statement.pdf",
) -> list[ExtractedRow]:
    """Extract and categorize every transaction in a PDF/image statement."""

    if client is None:
        _logger.warning("extract:skipped reason=no_client filename=%s", filename)
        return []

    t0 = time.perf_counter()
    try:
        payload = client.complete_json_with_file(
            instructions=prompting.EXTRACT_INSTRUCTIONS,
            prompt=prompting.build_extract_prompt(categories),
            attachment=build_attachment(content_b64, media_type=media_type, filename=filename),
            model=settings.extract_model,
        )
    except Exception as e:  # noqa: BLE001 - extraction degrades to an empty result
        _logger.error(
            "extract:failed filename=%s latency_ms=%.2f error=%s",
            filename,
            (time.perf_counter() - t0) * 1000.0,
            e.__class__.__name__,
        )
        return []

    raw_rows = payload.get("rows") if isinstance(payload, Mapping) else None
    if not isinstance(raw_rows, list):
        _logger.error("extract:bad_reply filename=%s", filename)
        return []

    index = CategoryIndex(categories)
    rows = [r for r in (_to_row(raw, index) for raw in raw_rows) if r is not None]
    _logger.info(
        "extract:done filename=%s rows=%d dropped=%d latency_ms=%.2f",
        filename,
        len(rows),
        len(raw_rows) - len(rows),
        (time.perf_counter() - t0) * 1000.0,
    )
    return rows


__all__ = ["build_attachment", "extract_document", "media_type_for"]
