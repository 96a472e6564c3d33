"""Response matching

MatchingRules is the capability the verifier engine depends on to decide whether an actual response satisfies a
recorded one. PactMatchingRules implements the commonly used subset of pact matching rules
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from requests.structures import CaseInsensitiveDict

from contract_verifier.exceptions import MalformedContract, MismatchFound
from contract_verifier.models import ExpectedResponse, Mismatch

PathToken = str | int
WILDCARD = "*"

STATUS_CODE_CLASSES = {
    "info": range(100, 200),
    "success": range(200, 300),
    "redirect": range(300, 400),
    "clientError": range(400, 500),
    "serverError": range(500, 600),
    "nonError": range(100, 400),
    "error": range(400, 600),
}
# Matchers that only constrain the type, and therefore cascade to children of a container
TYPE_MATCHERS = {"type", "values", "notEmpty"}
PATTERN_SEMVER = r"\d+\.\d+\.\d+(-[0-9A-Za-z.-]+)?(\+[0-9A-Za-z.-]+)?"
PATTERN_PATH_TOKEN = re.compile(r"\.([^.\[\]']+)|\['([^']+)'\]|\[(\d+|\*)\]")


@dataclass(frozen=True)
class ActualResponse:
    status: int
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    body: Any = None


class MatchingRules(Protocol):
    def compare(self, expected: ExpectedResponse, actual: ActualResponse) -> list[Mismatch]:
        """Return all mismatches between the expected and the actual response

        :raises MalformedContract: An expected matcher cannot be evaluated
        """
        ...

    def verify(self, expected: ExpectedResponse, actual: ActualResponse) -> None:
        """Raise MismatchFound if the actual response doesn't satisfy the expected one"""
        ...


class PactMatchingRules:
    """Matching rules as defined by the pact specification

    - Status and header values are compared exactly unless a matching rule is defined for them
    - Response body objects may contain keys that are not in the contract
    - A type matcher applied to an object or array cascades to every value under it
    """

    def verify(self, expected: ExpectedResponse, actual: ActualResponse) -> None:
        if mismatches := self.compare(expected, actual):
            raise MismatchFound(mismatches)

    def compare(self, expected: ExpectedResponse, actual: ActualResponse) -> list[Mismatch]:
        mismatches = self._compare_status(expected, actual)
        mismatches.extend(self._compare_headers(expected, actual))
        if expected.body is not None:
            body_rules = {parse_rule_path(p): r for p, r in expected.rules_for("body").items()}
            mismatches.extend(self._compare_value(expected.body, actual.body, ["$"], body_rules, False))
        return mismatches

    def _compare_status(self, expected: ExpectedResponse, actual: ActualResponse) -> list[Mismatch]:
        if rule := expected.rules_for("status").get("$"):
            results = []
            for matcher in rule["matchers"]:
                if matcher["match"] != "statusCode":
                    raise MalformedContract(f"Unsupported status matcher: {matcher}")
                statuses = matcher.get("status")
                if isinstance(statuses, list):
                    matched = actual.status in statuses
                elif statuses in STATUS_CODE_CLASSES:
                    matched = actual.status in STATUS_CODE_CLASSES[statuses]
                else:
                    raise MalformedContract(f"Invalid statusCode matcher: {matcher}")
                results.append(matched)
            if not _combine(results, rule["combine"]):
                return [Mismatch("status", expected.status, actual.status, "status code does not match the rule")]
        elif expected.status is not None and expected.status != actual.status:
            return [Mismatch("status", expected.status, actual.status)]
        return []

    def _compare_headers(self, expected: ExpectedResponse, actual: ActualResponse) -> list[Mismatch]:
        header_rules = CaseInsensitiveDict(expected.rules_for("header"))
        actual_headers = CaseInsensitiveDict(actual.headers)
        mismatches = []
        for name, expected_value in expected.headers.items():
            field_path = f"headers.{name}"
            actual_value = actual_headers.get(name)
            if actual_value is None:
                mismatches.append(Mismatch(field_path, expected_value, None, "header is missing"))
            elif rule := header_rules.get(name):
                results = [
                    not self._apply_matcher(m, expected_value, actual_value, field_path) for m in rule["matchers"]
                ]
                if not _combine(results, rule["combine"]):
                    mismatches.append(
                        Mismatch(field_path, expected_value, actual_value, "header does not match the rule")
                    )
            elif not _header_values_match(name, expected_value, actual_value):
                mismatches.append(Mismatch(field_path, expected_value, actual_value))
        return mismatches

    def _compare_value(
        self,
        expected: Any,
        actual: Any,
        path: list[PathToken],
        rules: dict[tuple[PathToken, ...], dict[str, Any]],
        cascade: bool,
    ) -> list[Mismatch]:
        field_path = format_field_path(path)
        if rule := find_rule(rules, path):
            matchers = rule["matchers"]
            errors = [self._apply_matcher(m, expected, actual, field_path) for m in matchers]
            if not _combine([not e for e in errors], rule["combine"]):
                return _flatten(errors)[:1] if rule["combine"] == "OR" else _flatten(errors)
            match_types = {m["match"] for m in matchers}
            if match_types & {"equality", "regex", "include", "arrayContains"} or not isinstance(actual, (dict, list)):
                return []
            cascade = bool(match_types & TYPE_MATCHERS) or any("min" in m or "max" in m for m in matchers)
            if "values" in match_types:
                return self._compare_dict_values(expected, actual, path, rules)
            if isinstance(expected, list):
                return self._compare_list_items(expected, actual, path, rules, cascade, use_template=True)

        if isinstance(expected, dict):
            if not isinstance(actual, dict):
                return [Mismatch(field_path, expected, actual, f"expected an object but got {_json_type(actual)}")]
            mismatches = []
            for key, expected_value in expected.items():
                if key not in actual:
                    mismatches.append(Mismatch(format_field_path([*path, key]), expected_value, None, "key is missing"))
                else:
                    mismatches.extend(self._compare_value(expected_value, actual[key], [*path, key], rules, cascade))
            return mismatches
        elif isinstance(expected, list):
            if not isinstance(actual, list):
                return [Mismatch(field_path, expected, actual, f"expected an array but got {_json_type(actual)}")]
            mismatches = []
            if not cascade and len(expected) != len(actual):
                mismatches.append(
                    Mismatch(field_path, expected, actual, f"expected {len(expected)} item(s) but got {len(actual)}")
                )
            mismatches.extend(self._compare_list_items(expected, actual, path, rules, cascade, use_template=cascade))
            return mismatches
        elif cascade:
            if _json_type(expected) != _json_type(actual):
                msg = f"expected {_json_type(expected)} but got {_json_type(actual)}"
                return [Mismatch(field_path, expected, actual, msg)]
            return []
        elif _json_type(expected) != _json_type(actual) or expected != actual:
            return [Mismatch(field_path, expected, actual)]
        return []

    def _compare_list_items(
        self,
        expected: list[Any],
        actual: list[Any],
        path: list[PathToken],
        rules: dict[tuple[PathToken, ...], dict[str, Any]],
        cascade: bool,
        use_template: bool,
    ) -> list[Mismatch]:
        if not expected:
            return []
        mismatches = []
        for i, actual_item in enumerate(actual):
            if use_template:
                expected_item = expected[0]
            elif i < len(expected):
                expected_item = expected[i]
            else:
                break
            mismatches.extend(self._compare_value(expected_item, actual_item, [*path, i], rules, cascade))
        return mismatches

    def _compare_dict_values(
        self,
        expected: dict[str, Any],
        actual: dict[str, Any],
        path: list[PathToken],
        rules: dict[tuple[PathToken, ...], dict[str, Any]],
    ) -> list[Mismatch]:
        if not isinstance(expected, dict) or not expected:
            return []
        template = next(iter(expected.values()))
        mismatches = []
        for key, actual_value in actual.items():
            mismatches.extend(self._compare_value(template, actual_value, [*path, key], rules, True))
        return mismatches

    def _apply_matcher(self, matcher: dict[str, Any], expected: Any, actual: Any, field_path: str) -> list[Mismatch]:
        """Apply a single matcher and return mismatches, if any"""
        match_type = matcher["match"]

        def mismatch(msg: str) -> list[Mismatch]:
            return [Mismatch(field_path, expected, actual, msg)]

        if match_type in ("type", "notEmpty"):
            if _json_type(expected) != _json_type(actual):
                return mismatch(f"expected {_json_type(expected)} but got {_json_type(actual)}")
            if match_type == "notEmpty" and actual in ("", [], {}, None):
                return mismatch("expected a non-empty value")
            if isinstance(actual, list):
                if (min_len := matcher.get("min")) is not None and len(actual) < min_len:
                    return mismatch(f"expected at least {min_len} item(s) but got {len(actual)}")
                if (max_len := matcher.get("max")) is not None and len(actual) > max_len:
                    return mismatch(f"expected at most {max_len} item(s) but got {len(actual)}")
            return []
        elif match_type == "regex":
            pattern = matcher.get("regex")
            if not isinstance(pattern, str):
                raise MalformedContract(f"regex matcher without a pattern at {field_path}: {matcher}")
            try:
                matched = re.fullmatch(pattern, _to_str(actual)) is not None
            except re.error as e:
                raise MalformedContract(f"Invalid regex '{pattern}' at {field_path}: {e}") from e
            return [] if matched and actual is not None else mismatch(f"does not match regex '{pattern}'")
        elif match_type == "semver":
            return [] if re.fullmatch(PATTERN_SEMVER, _to_str(actual)) else mismatch("not a semantic version")
        elif match_type == "integer":
            return [] if isinstance(actual, int) and not isinstance(actual, bool) else mismatch("expected an integer")
        elif match_type == "decimal":
            return [] if isinstance(actual, float) else mismatch("expected a decimal number")
        elif match_type == "number":
            return [] if _json_type(actual) == "number" else mismatch("expected a number")
        elif match_type == "boolean":
            return [] if isinstance(actual, bool) else mismatch("expected a boolean")
        elif match_type == "null":
            return [] if actual is None else mismatch("expected null")
        elif match_type == "equality":
            return [] if _json_type(expected) == _json_type(actual) and expected == actual else mismatch("not equal")
        elif match_type == "include":
            value = matcher.get("value")
            if value is None:
                raise MalformedContract(f"include matcher without a value at {field_path}: {matcher}")
            return [] if str(value) in _to_str(actual) else mismatch(f"does not include '{value}'")
        elif match_type in ("date", "time", "timestamp", "datetime"):
            # The format is given as a Java date pattern. Only the type is verified
            return [] if isinstance(actual, str) and actual else mismatch(f"expected a {match_type} string")
        elif match_type == "values":
            return [] if isinstance(actual, dict) else mismatch(f"expected an object but got {_json_type(actual)}")
        elif match_type == "arrayContains":
            return self._apply_array_contains(matcher, expected, actual, field_path)
        elif match_type == "contentType":
            return []
        raise MalformedContract(f"Unsupported matcher '{match_type}' at {field_path}")

    def _apply_array_contains(
        self, matcher: dict[str, Any], expected: Any, actual: Any, field_path: str
    ) -> list[Mismatch]:
        variants = matcher.get("variants")
        if not isinstance(variants, list) or not isinstance(expected, list):
            raise MalformedContract(f"Invalid arrayContains matcher at {field_path}: {matcher}")
        if not isinstance(actual, list):
            return [Mismatch(field_path, expected, actual, f"expected an array but got {_json_type(actual)}")]
        mismatches = []
        for variant in variants:
            index = variant.get("index", 0)
            if not isinstance(index, int) or index >= len(expected):
                raise MalformedContract(f"Invalid arrayContains variant at {field_path}: {variant}")
            variant_rules = {parse_rule_path(p): r for p, r in (variant.get("rules") or {}).items()}
            if not any(not self._compare_value(expected[index], x, ["$"], variant_rules, False) for x in actual):
                mismatches.append(
                    Mismatch(f"{field_path}[{index}]", expected[index], actual, "no item in the array matches")
                )
        return mismatches


def parse_rule_path(rule_path: str) -> tuple[PathToken, ...]:
    """Parse a matching rule path such as "$.items[*].id" or "$['x-key'][0]" into tokens"""
    if not rule_path.startswith("$"):
        raise MalformedContract(f"Invalid matching rule path: {rule_path}")
    tokens: list[PathToken] = ["$"]
    pos = 1
    while pos < len(rule_path):
        m = PATTERN_PATH_TOKEN.match(rule_path, pos)
        if not m:
            raise MalformedContract(f"Invalid matching rule path: {rule_path}")
        key, quoted_key, index = m.groups()
        if index is not None:
            tokens.append(WILDCARD if index == WILDCARD else int(index))
        else:
            tokens.append(key if key is not None else quoted_key)
        pos = m.end()
    return tuple(tokens)


def find_rule(
    rules: dict[tuple[PathToken, ...], dict[str, Any]], path: list[PathToken]
) -> dict[str, Any] | None:
    """Find the most specific rule for the path. An exact token beats a wildcard"""
    best_rule = None
    best_weight = -1
    for rule_path, rule in rules.items():
        if len(rule_path) != len(path):
            continue
        weight = 0
        for rule_token, token in zip(rule_path, path):
            if rule_token == token:
                weight += 2
            elif rule_token == WILDCARD:
                weight += 1
            else:
                break
        else:
            if weight > best_weight:
                best_rule, best_weight = rule, weight
    return best_rule


def format_field_path(path: list[PathToken]) -> str:
    """Format a body path as a field name (eg. ["$", "items", 0, "id"] -> "body.items[0].id")"""
    formatted = "body"
    for token in path[1:]:
        formatted += f"[{token}]" if isinstance(token, int) else f".{token}"
    return formatted


def _header_values_match(name: str, expected: str, actual: str) -> bool:
    if name.lower() == "content-type":
        expected_type, *expected_params = [x.strip() for x in expected.split(";")]
        actual_type, *actual_params = [x.strip() for x in actual.split(";")]
        actual_params_normalized = {p.replace(" ", "").lower() for p in actual_params}
        return expected_type.lower() == actual_type.lower() and all(
            p.replace(" ", "").lower() in actual_params_normalized for p in expected_params
        )
    return [x.strip() for x in expected.split(",")] == [x.strip() for x in actual.split(",")]


def _combine(results: list[bool], combine: str) -> bool:
    return any(results) if combine == "OR" else all(results)


def _flatten(errors: list[list[Mismatch]]) -> list[Mismatch]:
    return [e for errs in errors for e in errs]


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    elif isinstance(value, bool):
        return "boolean"
    elif isinstance(value, (int, float)):
        return "number"
    elif isinstance(value, str):
        return "string"
    elif isinstance(value, list):
        return "array"
    elif isinstance(value, dict):
        return "object"
    return type(value).__name__


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)
