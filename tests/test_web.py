from __future__ import annotations

import pytest
from budget_import.config import Settings
from budget_import.pipeline import MSG_NO_TRANSACTIONS
from budget_import.web import create_app
from fastapi.testclient import TestClient

from tests.helpers.db import HOUSEHOLD

LABEL = "Leumi checking"
HEADERS = {"X-Household-Id": HOUSEHOLD}

CSV = (
    "תאריך,תיאור,סכום\n"
    "03/03/2024,שופרסל דיל,-250.5\n"
    "04/03/2024,העברה מחשבון,1000\n"
).encode("utf-8")


@pytest.fixture
def client(settings: Settings) -> TestClient:
    return TestClient(create_app(settings, client_factory=lambda s: None))


def _upload(client: TestClient, *, filename: str = "march.csv", data: bytes = CSV, **form):
    body = {"sourceLabel": LABEL, "fileType": "csv", **form}
    return client.post(
        "/api/import",
        files={"file": (filename, data, "application/octet-stream")},
        data=body,
        headers=HEADERS,
    )


def test_requests_without_household_are_rejected(client: TestClient) -> None:
    resp = client.post("/api/import", files={"file": ("march.csv", CSV, "text/csv")})
    assert resp.status_code == 401
    assert resp.json() == {"error": "household not identified"}

    history = client.get("/api/import/history", headers={"X-Household-Id": "  "})
    assert history.status_code == 401
    assert history.json() == {"error": "household not identified"}


def test_upload_returns_camel_case_preview(client: TestClient) -> None:
    resp = _upload(client)
    assert resp.status_code == 200
    body = resp.json()

    assert body["aiError"] is not None
    assert body["summary"] == {
        "totalFound": 2,
        "newCount": 1,
        "duplicateCount": 0,
        "suspectCount": 0,
        "transferCount": 1,
        "recurringMatchCount": 0,
        "dateRange": {"from": "2024-03-03", "to": "2024-03-04"},
    }
    first, second = body["rows"]
    assert first["index"] == 0
    assert first["sourceDescription"] == "שופרסל דיל"
    assert first["date"] == "2024-03-03"
    assert (first["amount"], first["type"]) == (250.5, "EXPENSE")
    assert (first["status"], first["isSelected"], first["confidence"]) == ("new", True, "unknown")
    assert first["categoryId"] is None
    assert (second["status"], second["isSelected"]) == ("transfer", False)


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"filename": "notes.txt"}, "unsupported file type"),
        ({"data": b""}, "file is empty"),
        ({"sourceLabel": " "}, "a source label is required"),
        ({"data": b"a,b\n1,2\n"}, MSG_NO_TRANSACTIONS),
    ],
)
def test_upload_validation_errors(client: TestClient, kwargs, message) -> None:
    resp = _upload(client, **kwargs)
    assert resp.status_code == 400
    assert resp.json() == {"error": message}


def test_upload_too_large(settings: Settings) -> None:
    small = Settings(database_url=settings.database_url, max_upload_bytes=1024 * 1024)
    client = TestClient(create_app(small, client_factory=lambda s: None))
    resp = _upload(client, data=b"x" * (1024 * 1024 + 10))
    assert resp.status_code == 400
    assert resp.json() == {"error": "file is too large (maximum 1 MB)"}


def test_upload_unexpected_failure_is_a_generic_500(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    def boom(*args, **kwargs):
        raise RuntimeError("database is on fire")

    monkeypatch.setattr("budget_import.web.build_preview", boom)
    resp = _upload(client)
    assert resp.status_code == 500
    assert resp.json() == {"error": "failed to process the file"}


def test_confirm_then_list_labels_and_history(client: TestClient) -> None:
    rows = _upload(client).json()["rows"]
    rows[0]["categoryId"] = "cat_food"
    rows[0]["subCategoryId"] = "sub_supermarket"

    resp = client.post(
        "/api/import/confirm",
        json={"rows": rows, "sourceLabel": LABEL, "fileName": "march.csv", "fileType": "csv"},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    result = resp.json()
    assert result["success"] is True
    assert result["importedCount"] == 1
    assert result["message"] == "1 transactions imported successfully"
    assert result["batchId"]

    assert client.get("/api/import/source-labels", headers=HEADERS).json() == [LABEL]
    (entry,) = client.get("/api/import/history", headers=HEADERS).json()
    assert entry["id"] == result["batchId"]
    assert (entry["fileName"], entry["totalFound"], entry["imported"], entry["skipped"]) == (
        "march.csv",
        2,
        1,
        1,
    )

    again = _upload(client).json()
    assert again["rows"][0]["status"] == "duplicate"
    assert again["rows"][0]["duplicateOfId"] is not None


def test_confirm_without_selection_is_400(client: TestClient) -> None:
    rows = _upload(client).json()["rows"]
    for row in rows:
        row["isSelected"] = False

    resp = client.post(
        "/api/import/confirm",
        json={"rows": rows, "sourceLabel": LABEL, "fileName": "march.csv"},
        headers=HEADERS,
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "no transactions were selected for import"}
    assert client.get("/api/import/history", headers=HEADERS).json() == []


def test_confirm_with_blank_label_is_400(client: TestClient) -> None:
    rows = _upload(client).json()["rows"]
    rows[0]["categoryId"] = "cat_food"

    resp = client.post(
        "/api/import/confirm",
        json={"rows": rows, "sourceLabel": "  ", "fileName": "march.csv"},
        headers=HEADERS,
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "a source label is required"}
