"""Parse pact documents (pact specification V2, V3 and V4) into Interaction objects"""

from __future__ import annotations

import base64
import binascii
import urllib.parse
from typing import Any

from contract_verifier.exceptions import MalformedContract
from contract_verifier.libraries.common.logging import get_logger
from contract_verifier.models import ExpectedResponse, HttpRequest, Interaction, MatchingRules, PactRef, ProviderState

logger = get_logger(__name__)

HTTP_INTERACTION_TYPE = "Synchronous/HTTP"


def parse_pact(
    document: Any,
    source: str,
    pending: bool = False,
    publish_url: str | None = None,
) -> list[Interaction]:
    """Parse a pact document

    :param document: A decoded pact JSON document
    :param source: Where the document was loaded from (file path or URL)
    :param pending: Whether the pact is pending. Failures of a pending pact don't fail the run
    :param publish_url: The broker URL to publish verification results of this pact to
    """
    if not isinstance(document, dict):
        raise MalformedContract(f"{source}: a pact must be a JSON object, got {type(document).__name__}")
    consumer = _get_name(document, "consumer", source)
    provider = _get_name(document, "provider", source)
    spec_version = get_spec_version(document)
    pact = PactRef(
        consumer=consumer,
        provider=provider,
        source=source,
        spec_version=spec_version,
        pending=pending,
        publish_url=publish_url,
    )

    interactions = document.get("interactions")
    if not isinstance(interactions, list):
        raise MalformedContract(f"{source}: 'interactions' must be a list")

    parsed = []
    for i, interaction in enumerate(interactions):
        if not isinstance(interaction, dict):
            raise MalformedContract(f"{source}: interaction #{i} must be a JSON object")
        interaction_type = interaction.get("type", HTTP_INTERACTION_TYPE)
        if interaction_type != HTTP_INTERACTION_TYPE:
            logger.warning(f"{source}: Skipping interaction #{i} of unsupported type '{interaction_type}'")
            continue
        parsed.append(_parse_interaction(interaction, pact, i))
    return parsed


def get_spec_version(document: dict[str, Any]) -> str:
    """Return the pact specification version declared in the pact metadata. Defaults to 2.0.0"""
    metadata = document.get("metadata") or {}
    for key in ("pactSpecification", "pact-specification"):
        if isinstance(spec := metadata.get(key), dict) and spec.get("version"):
            return str(spec["version"])
    if version := metadata.get("pactSpecificationVersion"):
        return str(version)
    return "2.0.0"


def _get_name(document: dict[str, Any], key: str, source: str) -> str:
    participant = document.get(key)
    if not isinstance(participant, dict) or not isinstance(participant.get("name"), str):
        raise MalformedContract(f"{source}: '{key}.name' is required")
    return participant["name"]


def _parse_interaction(interaction: dict[str, Any], pact: PactRef, index: int) -> Interaction:
    where = f"{pact.source}: interaction #{index}"
    description = interaction.get("description")
    if not isinstance(description, str):
        raise MalformedContract(f"{where}: 'description' is required")
    where = f"{pact.source}: interaction '{description}'"

    request = interaction.get("request")
    response = interaction.get("response")
    if not isinstance(request, dict) or not isinstance(response, dict):
        raise MalformedContract(f"{where}: both 'request' and 'response' are required")

    return Interaction(
        description=description,
        request=_parse_request(request, where),
        response=_parse_response(response, where, pact.spec_version),
        pact=pact,
        provider_states=_parse_provider_states(interaction, where),
        interaction_id=interaction.get("key") or interaction.get("_id"),
        pending=bool(interaction.get("pending", False)),
    )


def _parse_provider_states(interaction: dict[str, Any], where: str) -> tuple[ProviderState, ...]:
    if "providerStates" in interaction:
        states = interaction["providerStates"] or []
        if not isinstance(states, list):
            raise MalformedContract(f"{where}: 'providerStates' must be a list")
        parsed = []
        for state in states:
            if not isinstance(state, dict) or not isinstance(state.get("name"), str):
                raise MalformedContract(f"{where}: each provider state must have a name")
            params = state.get("params") or {}
            if not isinstance(params, dict):
                raise MalformedContract(f"{where}: params of provider state '{state['name']}' must be an object")
            parsed.append(ProviderState(name=state["name"], params=params))
        return tuple(parsed)
    elif state_name := interaction.get("providerState"):
        # V2
        return (ProviderState(name=str(state_name)),)
    return ()


def _parse_request(request: dict[str, Any], where: str) -> HttpRequest:
    method = request.get("method")
    path = request.get("path")
    if not isinstance(method, str) or not isinstance(path, str):
        raise MalformedContract(f"{where}: request 'method' and 'path' are required")

    headers = _parse_headers(request.get("headers"), where)
    body, content_type = _parse_body(request, where)
    if content_type and not any(k.lower() == "content-type" for k in headers):
        headers["Content-Type"] = content_type
    return HttpRequest(
        method=method.upper(),
        path=path,
        query=_parse_query(request.get("query"), where),
        headers=headers,
        body=body,
    )


def _parse_response(response: dict[str, Any], where: str, spec_version: str) -> ExpectedResponse:
    status = response.get("status")
    if status is not None and (isinstance(status, bool) or not isinstance(status, int)):
        raise MalformedContract(f"{where}: response 'status' must be an integer")
    body, _ = _parse_body(response, where)
    return ExpectedResponse(
        status=status,
        headers=_parse_headers(response.get("headers"), where),
        body=body,
        matching_rules=normalize_matching_rules(response.get("matchingRules"), spec_version, where),
    )


def _parse_query(query: Any, where: str) -> dict[str, list[str]]:
    if not query:
        return {}
    if isinstance(query, str):
        # V2 stores the raw query string
        return urllib.parse.parse_qs(query, keep_blank_values=True)
    if isinstance(query, dict):
        return {k: [str(x) for x in v] if isinstance(v, list) else [str(v)] for k, v in query.items()}
    raise MalformedContract(f"{where}: 'query' must be a string or an object")


def _parse_headers(headers: Any, where: str) -> dict[str, str]:
    if not headers:
        return {}
    if not isinstance(headers, dict):
        raise MalformedContract(f"{where}: 'headers' must be an object")
    return {k: ", ".join(str(x) for x in v) if isinstance(v, list) else str(v) for k, v in headers.items()}


def _parse_body(message: dict[str, Any], where: str) -> tuple[Any, str | None]:
    """Return the body and its content type (V4 only) of a request/response"""
    body = message.get("body")
    if isinstance(body, dict) and "content" in body and "contentType" in body:
        # V4 body
        content = body["content"]
        if body.get("encoded") in ("base64", True) and isinstance(content, str):
            try:
                content = base64.b64decode(content).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise MalformedContract(f"{where}: failed to decode base64 body: {e}")
        return content, body["contentType"]
    return body, None


def normalize_matching_rules(rules: Any, spec_version: str, where: str) -> MatchingRules:
    """Normalize matching rules to the V3 form

    V2 rules are keyed by a single path (eg. "$.body.id", "$.headers.Content-Type"), and each rule is a single matcher.
    They are converted to {"body": {"$.id": {"combine": "AND", "matchers": [...]}}, "header": {...}}
    """
    if not rules:
        return {}
    if not isinstance(rules, dict):
        raise MalformedContract(f"{where}: 'matchingRules' must be an object")

    normalized: MatchingRules = {}
    if spec_version.startswith("2") or all(k.startswith("$") for k in rules):
        for path, matcher in rules.items():
            category, sub_path = _split_v2_path(path, where)
            normalized.setdefault(category, {})[sub_path] = _normalize_rule({"matchers": [matcher]}, path, where)
    else:
        for category, category_rules in rules.items():
            category = "header" if category == "headers" else category
            if category == "status" and isinstance(category_rules, dict) and "matchers" in category_rules:
                category_rules = {"$": category_rules}
            if not isinstance(category_rules, dict):
                raise MalformedContract(f"{where}: matching rules for '{category}' must be an object")
            normalized[category] = {
                path: _normalize_rule(rule, f"{category} {path}", where) for path, rule in category_rules.items()
            }
    return normalized


def _split_v2_path(path: str, where: str) -> tuple[str, str]:
    if path == "$.body" or path.startswith(("$.body.", "$.body[")):
        return "body", "$" + path[len("$.body") :]
    elif path.startswith("$.headers."):
        return "header", path[len("$.headers.") :]
    elif path.startswith("$.header."):
        return "header", path[len("$.header.") :]
    elif path == "$.status":
        return "status", "$"
    raise MalformedContract(f"{where}: unsupported matching rule path '{path}'")


def _normalize_rule(rule: Any, label: str, where: str) -> dict[str, Any]:
    if not isinstance(rule, dict) or not isinstance(rule.get("matchers"), list):
        raise MalformedContract(f"{where}: matching rule '{label}' must have a list of matchers")
    combine = str(rule.get("combine", "AND")).upper()
    if combine not in ("AND", "OR"):
        raise MalformedContract(f"{where}: matching rule '{label}' has invalid combine value '{combine}'")
    matchers = []
    for matcher in rule["matchers"]:
        if not isinstance(matcher, dict):
            raise MalformedContract(f"{where}: matcher of '{label}' must be an object")
        matcher = dict(matcher)
        if "match" not in matcher:
            # V2 shorthand
            matcher["match"] = "regex" if "regex" in matcher else "type"
        matchers.append(matcher)
    return {"combine": combine, "matchers": matchers}
