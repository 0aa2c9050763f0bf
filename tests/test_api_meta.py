from __future__ import annotations

import base64

import httpx
import pytest

from apps.api.main import app


@pytest.mark.anyio
async def test_meta_lists_document_types(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DOCGEN_ENABLE_META", raising=False)
    monkeypatch.delenv("DOCGEN_BASIC_AUTH", raising=False)
    monkeypatch.delenv("DOCGEN_DOCUMENT_TYPES", raising=False)
    monkeypatch.setenv("DOCGEN_COMMIT_SHA", "abc123")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/v1/meta")

    assert response.status_code == 200
    assert response.headers["X-Docgen-Request-Id"]

    payload = response.json()
    assert payload["version"]
    assert payload["build"]["commit"] == "abc123"
    assert "GST Resolution" in payload["supported_document_types"]
    assert "CFPL" in payload["accepted_tags"]

    invoice = payload["document_types"]["CFPL Invoice"]
    assert invoice["aliases"] == ["CFPL"]
    assert invoice["group"] == "invoiceItems"
    assert invoice["row_capacity"] == 25
    assert invoice["computes_totals"] is True

    resolution = payload["document_types"]["GST Resolution"]
    assert resolution["templates"] == {
        "2": "GST2.docx",
        "3": "GST3.docx",
        "4": "GST4.docx",
        "5": "GST5.docx",
    }
    assert resolution["member_placeholders"] == [
        "PERSON_{index}",
        "PERSON_{index}_D",
        "PERSON_{index}_DIN",
    ]


@pytest.mark.anyio
async def test_meta_disabled_returns_404_with_request_id(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("DOCGEN_ENABLE_META", "0")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/v1/meta")

    assert response.status_code == 404
    request_id = response.headers["X-Docgen-Request-Id"]
    payload = response.json()
    assert payload["error_code"] == "NOT_FOUND"
    assert payload["detail"]["request_id"] == request_id


@pytest.mark.anyio
async def test_meta_requires_basic_auth_when_enabled(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("DOCGEN_ENABLE_META", raising=False)
    monkeypatch.setenv("DOCGEN_BASIC_AUTH", "u:p")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        anonymous = await client.get("/v1/meta")
        token = base64.b64encode(b"u:p").decode("ascii")
        authorized = await client.get("/v1/meta", headers={"Authorization": f"Basic {token}"})

    assert anonymous.status_code == 401
    assert anonymous.headers["WWW-Authenticate"] == 'Basic realm="docgen"'
    payload = anonymous.json()
    assert payload["error_code"] == "UNAUTHORIZED"
    assert payload["detail"]["request_id"] == anonymous.headers["X-Docgen-Request-Id"]
    assert authorized.status_code == 200
