"""Tests for response payload extraction."""

from __future__ import annotations

import httpx

from cachedapi.client.response import extract_payload


def _response(content: bytes, content_type: str | None) -> httpx.Response:
    headers = {"content-type": content_type} if content_type else {}
    return httpx.Response(200, headers=headers, content=content)


class TestExtractPayload:
    def test_json_body(self) -> None:
        resp = _response(b'{"id": 1}', "application/json")
        assert extract_payload(resp) == {"id": 1}

    def test_json_with_charset(self) -> None:
        resp = _response(b"[1, 2]", "application/json; charset=utf-8")
        assert extract_payload(resp) == [1, 2]

    def test_non_json_content_type(self) -> None:
        assert extract_payload(_response(b"<html/>", "text/html")) == {}

    def test_missing_content_type(self) -> None:
        assert extract_payload(_response(b'{"id": 1}', None)) == {}

    def test_empty_body(self) -> None:
        assert extract_payload(_response(b"", "application/json")) == {}

    def test_malformed_json(self) -> None:
        assert extract_payload(_response(b"{oops", "application/json")) == {}
