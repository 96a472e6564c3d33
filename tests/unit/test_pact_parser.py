import base64
from typing import Any

import pytest

from contract_verifier.contracts.pact_parser import get_spec_version, normalize_matching_rules, parse_pact
from contract_verifier.exceptions import MalformedContract
from contract_verifier.models import ProviderState

pytestmark = [pytest.mark.unittest]


def _pact(*interactions: dict[str, Any], version: str = "3.0.0") -> dict[str, Any]:
    return {
        "consumer": {"name": "demo-consumer"},
        "provider": {"name": "demo-provider"},
        "interactions": list(interactions),
        "metadata": {"pactSpecification": {"version": version}},
    }


def test_parse_pact_file(pact_document: dict[str, Any]) -> None:
    """Verify that the checked-in V3 pact is parsed in the recorded order"""
    interactions = parse_pact(pact_document, "demo.json")
    assert [i.description for i in interactions] == [
        "a request for user 1",
        "a request for a user that does not exist",
        "a request for viewers",
        "a request to create a user",
    ]
    first = interactions[0]
    assert first.pact.consumer == "demo-consumer"
    assert first.pact.provider == "demo-provider"
    assert first.pact.spec_version == "3.0.0"
    assert first.provider_states == (ProviderState("user exists", {"id": 1}),)
    assert first.request.method == "GET"
    assert first.request.path == "/v1/users/1"
    assert first.response.status == 200
    assert first.response.rules_for("body")["$.id"] == {"combine": "AND", "matchers": [{"match": "integer"}]}
    assert interactions[2].request.query == {"role": ["viewer"]}
    assert interactions[3].request.body["role"] == "admin"


def test_parse_v2_pact() -> None:
    """Verify V2 specific fields (providerState, query string, flat matching rules) are converted"""
    interaction = {
        "description": "a request for users",
        "providerState": "users exist",
        "request": {"method": "get", "path": "/v1/users", "query": "role=viewer&role=admin"},
        "response": {
            "status": 200,
            "body": {"items": [{"id": 1}]},
            "matchingRules": {
                "$.body.items": {"min": 1},
                "$.body.items[*].id": {"match": "type"},
                "$.headers.X-Request-ID": {"regex": "[a-f0-9-]+"},
            },
        },
    }
    [parsed] = parse_pact(_pact(interaction, version="2.0.0"), "v2.json")
    assert parsed.provider_states == (ProviderState("users exist"),)
    assert parsed.request.method == "GET"
    assert parsed.request.query == {"role": ["viewer", "admin"]}
    assert parsed.response.matching_rules == {
        "body": {
            "$.items": {"combine": "AND", "matchers": [{"min": 1, "match": "type"}]},
            "$.items[*].id": {"combine": "AND", "matchers": [{"match": "type"}]},
        },
        "header": {"X-Request-ID": {"combine": "AND", "matchers": [{"regex": "[a-f0-9-]+", "match": "regex"}]}},
    }


def test_parse_v4_pact() -> None:
    """Verify V4 bodies are unwrapped and non-HTTP interactions are skipped"""
    http_interaction = {
        "type": "Synchronous/HTTP",
        "key": "abc123",
        "description": "a request to create a user",
        "request": {
            "method": "POST",
            "path": "/v1/users",
            "body": {
                "content": base64.b64encode(b"first_name=foo").decode(),
                "contentType": "application/x-www-form-urlencoded",
                "encoded": "base64",
            },
        },
        "response": {
            "status": 201,
            "headers": {"Content-Type": ["application/json"]},
            "body": {"content": {"id": 1}, "contentType": "application/json", "encoded": False},
        },
    }
    message_interaction = {"type": "Asynchronous/Messages", "description": "a user created event", "contents": {}}
    [parsed] = parse_pact(_pact(http_interaction, message_interaction, version="4.0"), "v4.json")
    assert parsed.interaction_id == "abc123"
    assert parsed.request.body == "first_name=foo"
    assert parsed.request.content_type == "application/x-www-form-urlencoded"
    assert parsed.response.headers == {"Content-Type": "application/json"}
    assert parsed.response.body == {"id": 1}


def test_pending_and_publish_url_are_propagated(pact_document: dict[str, Any]) -> None:
    interactions = parse_pact(pact_document, "http://broker/pact", pending=True, publish_url="http://broker/results")
    assert all(i.is_pending for i in interactions)
    assert {i.pact.publish_url for i in interactions} == {"http://broker/results"}


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"provider": {"name": "demo-provider"}, "interactions": []},
        {"consumer": {"name": "c"}, "provider": {"name": "p"}},
        {"consumer": {"name": "c"}, "provider": {"name": "p"}, "interactions": [{"request": {}, "response": {}}]},
        {
            "consumer": {"name": "c"},
            "provider": {"name": "p"},
            "interactions": [{"description": "no path", "request": {"method": "GET"}, "response": {}}],
        },
        {
            "consumer": {"name": "c"},
            "provider": {"name": "p"},
            "interactions": [
                {"description": "bad status", "request": {"method": "GET", "path": "/"}, "response": {"status": "OK"}}
            ],
        },
    ],
)
def test_parse_malformed_pact(document: Any) -> None:
    """Verify that a structurally invalid pact raises MalformedContract"""
    with pytest.raises(MalformedContract):
        parse_pact(document, "bad.json")


@pytest.mark.parametrize(
    ("metadata", "expected_version"),
    [
        ({"pactSpecification": {"version": "3.0.0"}}, "3.0.0"),
        ({"pact-specification": {"version": "2.0.0"}}, "2.0.0"),
        ({"pactSpecificationVersion": "1.0.0"}, "1.0.0"),
        ({}, "2.0.0"),
    ],
)
def test_get_spec_version(metadata: dict[str, Any], expected_version: str) -> None:
    assert get_spec_version({"metadata": metadata}) == expected_version


def test_normalize_v3_status_rule() -> None:
    rules = {"status": {"matchers": [{"match": "statusCode", "status": "success"}]}}
    assert normalize_matching_rules(rules, "3.0.0", "test") == {
        "status": {"$": {"combine": "AND", "matchers": [{"match": "statusCode", "status": "success"}]}}
    }


def test_normalize_invalid_combine() -> None:
    rules = {"body": {"$.id": {"combine": "XOR", "matchers": [{"match": "type"}]}}}
    with pytest.raises(MalformedContract, match="invalid combine"):
        normalize_matching_rules(rules, "3.0.0", "test")
