"""Pydantic models for declarative mock rule files (YAML or JSON)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import MockConfigurationError, MockResponseError
from .matcher import RequestMatcher
from .predicates import PathMatchType
from .registry import MockRegistry, MockRule
from .response import MockResponseBuilder

LOGGER = structlog.get_logger("mock_config")


class PathConfig(BaseModel):
    path: str
    match_type: PathMatchType = PathMatchType.EXACT


class MatcherConfig(BaseModel):
    """Criteria used to match an incoming request. Empty criteria match everything."""

    methods: list[str] = Field(default_factory=list)
    action_names: list[str] = Field(default_factory=list)
    paths: list[PathConfig] = Field(default_factory=list)
    headers: dict[str, str | None] = Field(default_factory=dict)
    query_params: dict[str, str | None] = Field(default_factory=dict)
    content_types: list[str] = Field(default_factory=list)
    body_contains: str | None = None
    match_counts: list[int] = Field(default_factory=list)
    not_match_counts: list[int] = Field(default_factory=list)

    def to_matcher(self) -> RequestMatcher:
        matcher = RequestMatcher.create()
        if self.methods:
            matcher = matcher.using_method(*self.methods)
        if self.action_names:
            matcher = matcher.from_action(*self.action_names)
        for item in self.paths:
            matcher = matcher.with_path(item.match_type, item.path)
        for name, value in self.headers.items():
            matcher = matcher.with_header(name, value)
        for name, value in self.query_params.items():
            matcher = matcher.with_query_param(name, value)
        if self.content_types:
            matcher = matcher.with_content_type(*self.content_types)
        if self.body_contains is not None:
            expected = self.body_contains
            matcher = matcher.with_content_as_string(lambda text: expected in text)
        if self.match_counts:
            matcher = matcher.with_match_count(*self.match_counts)
        if self.not_match_counts:
            matcher = matcher.with_not_match_count(*self.not_match_counts)
        return matcher


class ResponseConfig(BaseModel):
    """Static response recipe. At most one of ``json``/``text`` may be set."""

    status: int = 200
    headers: dict[str, str] = Field(default_factory=dict)
    json_body: Any = Field(default=None, alias="json")
    text: str | None = None
    delay_ms: int | None = None
    delay_range_ms: tuple[int, int] | None = None
    fail_with: str | None = None

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _single_content(self) -> "ResponseConfig":
        if self.json_body is not None and self.text is not None:
            raise ValueError("A response can have either 'json' or 'text' content, not both")
        if self.delay_ms is not None and self.delay_range_ms is not None:
            raise ValueError("A response can have either 'delay_ms' or 'delay_range_ms', not both")
        return self

    def to_builder(self) -> MockResponseBuilder:
        builder = MockResponseBuilder.create().with_status_code(self.status)
        for name, value in self.headers.items():
            builder = builder.with_header(name, value)
        if self.json_body is not None:
            builder = builder.with_content_as_json(self.json_body)
        elif self.text is not None:
            builder = builder.with_content_as_plain_text(self.text)
        if self.delay_ms is not None:
            builder = builder.with_delay(self.delay_ms / 1000)
        elif self.delay_range_ms is not None:
            low, high = self.delay_range_ms
            builder = builder.with_delay(low / 1000, high / 1000)
        if self.fail_with:
            builder = builder.throws_exception(MockResponseError(self.fail_with))
        return builder


class MockRuleConfig(BaseModel):
    name: str | None = None
    matcher: MatcherConfig = Field(default_factory=MatcherConfig)
    response: ResponseConfig = Field(default_factory=ResponseConfig)

    def to_rule(self) -> MockRule:
        return MockRule(self.matcher.to_matcher(), self.name).respond_with(self.response.to_builder())


class MockRulesFile(BaseModel):
    """Top-level rule file consumed by the ``serve`` command."""

    default_status: int = 200
    rules: list[MockRuleConfig] = Field(default_factory=list)

    def as_serializable(self) -> dict[str, Any]:
        """Return a JSON/YAML friendly payload."""

        return self.model_dump(mode="json", by_alias=True)


def load_rules_file(path: Path) -> MockRulesFile:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MockConfigurationError(f"Mock rules file {path} cannot be read: {exc}") from exc
    try:
        payload = json.loads(raw) if path.suffix.lower() == ".json" else yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise MockConfigurationError(f"Mock rules file {path} is not valid: {exc}") from exc
    try:
        rules_file = MockRulesFile.model_validate(payload or {})
    except ValidationError as exc:
        raise MockConfigurationError(f"Mock rules file {path} is not valid: {exc}") from exc
    LOGGER.info("mock_rules_loaded", path=str(path), rule_count=len(rules_file.rules))
    return rules_file


def apply_rules(registry: MockRegistry, rules_file: MockRulesFile) -> list[MockRule]:
    rules = [item.to_rule() for item in rules_file.rules]
    registry.extend(rules)
    return rules
