from __future__ import annotations

from datetime import date

from budget_import.config import Settings
from budget_import.extract import build_attachment, extract_document, media_type_for
from budget_import.models import CategoryChild, CategoryInfo, Confidence, TransactionType

from tests.helpers.openai_stub import DocumentStub, make_client

CATEGORIES = [
    CategoryInfo(
        "cat_food",
        "Food",
        TransactionType.EXPENSE,
        (CategoryChild("sub_supermarket", "Supermarket"),),
    ),
    CategoryInfo("cat_salary", "Salary", TransactionType.INCOME),
]

SETTINGS = Settings(extract_model="vision-test")


def test_media_types() -> None:
    assert media_type_for(".PDF") == "application/pdf"
    assert media_type_for(".jpg") == media_type_for(".jpeg") == "image/jpeg"
    assert media_type_for(".png") == "image/png"


def test_pdf_is_sent_as_input_file() -> None:
    part = build_attachment("QUJD", media_type="application/pdf", filename="march.pdf")
    assert part == {
        "type": "input_file",
        "filename": "march.pdf",
        "file_data": "data:application/pdf;base64,QUJD",
    }


def test_image_is_sent_as_input_image() -> None:
    part = build_attachment("QUJD", media_type="image/png", filename="shot.png")
    assert part == {"type": "input_image", "image_url": "data:image/png;base64,QUJD"}


def test_extract_document_parses_and_validates_rows() -> None:
    reply = (
        "```json\n"
        '{"rows": ['
        '{"date": "2024-03-05", "description": "  שופרסל  דיל ", "amount": -120.5,'
        ' "type": "expense", "categoryId": "sub_supermarket", "confidence": "high"},'
        '{"date": "06/03/2024", "description": "Salary", "amount": 9000,'
        ' "type": "INCOME", "categoryId": "cat_salary", "confidence": "maybe",'
        ' "isTransfer": "yes"},'
        '{"date": "not a date", "description": "bad date", "amount": 5, "type": "EXPENSE"},'
        '{"date": "2024-03-07", "description": "", "amount": 5, "type": "EXPENSE"},'
        '{"date": "2024-03-07", "description": "zero", "amount": 0, "type": "EXPENSE"},'
        '{"date": "2024-03-07", "description": "odd type", "amount": 5, "type": "FEE"},'
        '{"date": "2024-03-08", "description": "mystery", "amount": 5, "type": "EXPENSE",'
        ' "categoryId": "nope", "confidence": "high"}'
        "]}\n```"
    )
    stub = DocumentStub(reply)

    rows = extract_document(
        "QUJD",
        CATEGORIES,
        client=make_client(stub),
        settings=SETTINGS,
        media_type="application/pdf",
        filename="march.pdf",
    )

    assert [r.description for r in rows] == ["שופרסל דיל", "Salary", "mystery"]
    first, second, third = rows
    assert first.date == date(2024, 3, 5)
    assert first.amount == 120.5
    assert first.type is TransactionType.EXPENSE
    assert (first.category_id, first.sub_category_id) == ("cat_food", "sub_supermarket")
    assert first.confidence is Confidence.HIGH

    assert second.date == date(2024, 3, 6)
    assert second.confidence is Confidence.UNKNOWN
    assert second.is_transfer is False

    assert third.category_id is None
    assert third.confidence is Confidence.UNKNOWN

    (call,) = stub.calls
    assert call["model"] == "vision-test"
    assert call["max_output_tokens"] == 8192
    content = call["input"][0]["content"]
    assert content[0]["type"] == "input_text"
    assert content[1]["type"] == "input_file"


def test_extract_document_without_client() -> None:
    assert extract_document("QUJD", CATEGORIES, client=None, settings=SETTINGS) == []


def test_extract_document_transport_error() -> None:
    stub = DocumentStub(RuntimeError("upstream 500"))
    assert extract_document("QUJD", CATEGORIES, client=make_client(stub), settings=SETTINGS) == []


def test_extract_document_unexpected_shape() -> None:
    stub = DocumentStub([{"date": "2024-03-05"}])
    assert extract_document("QUJD", CATEGORIES, client=make_client(stub), settings=SETTINGS) == []
