"""Tests for request key construction."""

from __future__ import annotations

from cachedapi.keys import (
    canonicalize_params,
    context_fingerprint,
    make_request_key,
    normalize_endpoint,
)
from cachedapi.models import RequestContext


class TestNormalizeEndpoint:
    def test_adds_leading_slash(self) -> None:
        assert normalize_endpoint("classes") == "/classes"

    def test_strips_trailing_slash(self) -> None:
        assert normalize_endpoint("/classes/") == "/classes"

    def test_root_is_kept(self) -> None:
        assert normalize_endpoint("/") == "/"
        assert normalize_endpoint("") == "/"


class TestCanonicalizeParams:
    def test_none_and_empty(self) -> None:
        assert canonicalize_params(None) == {}
        assert canonicalize_params({}) == {}

    def test_drops_none_values(self) -> None:
        assert canonicalize_params({"a": 1, "b": None}) == {"a": "1"}

    def test_sorted_by_key(self) -> None:
        result = canonicalize_params({"z": "1", "a": "2", "m": "3"})
        assert list(result) == ["a", "m", "z"]

    def test_scalar_rendering(self) -> None:
        result = canonicalize_params(
            {"flag": True, "off": False, "page": 2.0, "ratio": 0.5, "ids": [1, 2]}
        )
        assert result == {
            "flag": "true",
            "off": "false",
            "page": "2",
            "ratio": "0.5",
            "ids": "1,2",
        }

    def test_nested_mapping_is_order_independent(self) -> None:
        a = canonicalize_params({"filter": {"b": 1, "a": 2}})
        b = canonicalize_params({"filter": {"a": 2, "b": 1}})
        assert a == b


class TestMakeRequestKey:
    def test_param_order_does_not_matter(self) -> None:
        first = make_request_key("/classes", {"instituteId": "I1", "page": 1})
        second = make_request_key("/classes", {"page": 1, "instituteId": "I1"})
        assert first == second

    def test_equivalent_values_share_a_key(self) -> None:
        assert make_request_key("/classes", {"page": 1}) == make_request_key(
            "/classes/", {"page": "1"}
        )

    def test_format(self) -> None:
        key = make_request_key("/classes", {"page": 1, "instituteId": "I1"})
        assert key == '/classes?{"instituteId":"I1","page":"1"}'

    def test_no_params(self) -> None:
        assert make_request_key("/classes") == "/classes?{}"
        assert make_request_key("/classes", {"x": None}) == "/classes?{}"

    def test_different_params_differ(self) -> None:
        assert make_request_key("/classes", {"page": 1}) != make_request_key(
            "/classes", {"page": 2}
        )

    def test_different_endpoints_differ(self) -> None:
        assert make_request_key("/classes") != make_request_key("/subjects")


class TestContextFingerprint:
    def test_empty_context(self) -> None:
        assert context_fingerprint(None) == ""
        assert context_fingerprint(RequestContext()) == ""

    def test_alias_and_field_names_agree(self) -> None:
        by_alias = RequestContext.model_validate({"userId": "U1", "instituteId": "I1"})
        by_name = RequestContext(user_id="U1", institute_id="I1")
        assert context_fingerprint(by_alias) == context_fingerprint(by_name)

    def test_distinct_users_distinct_fingerprints(self) -> None:
        assert context_fingerprint(RequestContext(user_id="U1")) != context_fingerprint(
            RequestContext(user_id="U2")
        )
