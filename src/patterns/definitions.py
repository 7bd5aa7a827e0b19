"""
Pattern Definitions
===================
Pydantic schema for declarative extraction rules.

A PatternConfig (a "rule") groups one or more sub-patterns.  Each
sub-pattern is one of three shapes, tagged by `type`:

  single-line    one regex applied to one line
  multi-line     one regex per line of a fixed-size window
  context-aware  an anchor regex plus previous/next line conditions

Extraction rules say where each field comes from, tagged by `source`:

  regex-group    capture group of the regex that matched a window line
  line-content   the whole (stripped) window line
  default        a fixed value

Several `name` rules join their values in order, for a product name
that wraps onto a second line.

Line offsets are relative to the window's first line (multi-line) or to the
anchor line (context-aware, so -1 / +1 address the context lines).
"""

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError, model_validator

from extraction_errors import ConfigError


FieldName = Literal[
    "name", "price", "quantity", "category", "unit",
    "product_code", "unit_price", "tax_type",
    "discount_percent", "discount_amount",
]

SUB_PATTERN_TYPES = ("single-line", "multi-line", "context-aware")


def _check_regex(value: str) -> str:
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"invalid regex {value!r}: {e}")
    return value


RegexStr = Annotated[str, AfterValidator(_check_regex)]


# ─── Extraction rules ─────────────────────────────────────────────────────────

class _Rule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class RegexGroupRule(_Rule):
    source: Literal["regex-group"] = "regex-group"
    field: FieldName
    group_index: int = Field(1, ge=0)
    line_offset: int = 0


class LineContentRule(_Rule):
    source: Literal["line-content"] = "line-content"
    field: FieldName
    line_offset: int = 0


class DefaultValueRule(_Rule):
    source: Literal["default"] = "default"
    field: FieldName
    value: Union[int, float, str]
    line_offset: int = 0


ExtractionRule = Annotated[
    Union[RegexGroupRule, LineContentRule, DefaultValueRule],
    Field(discriminator="source"),
]


class ContextRule(_Rule):
    type: Literal["previous-line", "next-line"]
    pattern: RegexStr
    required: bool = True

    @property
    def offset(self) -> int:
        return -1 if self.type == "previous-line" else 1


class ValidationRule(_Rule):
    field: FieldName
    kind: Literal["range", "length", "pattern"]
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None

    @model_validator(mode="after")
    def check_kind(self):
        if self.kind == "pattern":
            if not self.pattern:
                raise ValueError("pattern validation needs a 'pattern'")
            _check_regex(self.pattern)
        elif self.min is None and self.max is None:
            raise ValueError(f"{self.kind} validation needs 'min' or 'max'")
        return self


# ─── Sub-patterns ─────────────────────────────────────────────────────────────

class _SubPatternBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    confidence: float = Field(0.8, ge=0, le=1)
    extraction_rules: List[ExtractionRule] = Field(..., min_length=1)
    validation_rules: List[ValidationRule] = Field(default_factory=list)

    def offsets(self) -> List[int]:
        """Line offsets this sub-pattern needs to inspect."""
        return [0]

    def line_regex(self, offset: int) -> Optional[str]:
        return None

    def required_offsets(self) -> List[int]:
        return self.offsets()

    def _check_extraction_offsets(self):
        allowed = set(self.offsets())
        for rule in self.extraction_rules:
            if rule.source != "default" and rule.line_offset not in allowed:
                raise ValueError(
                    f"extraction rule for '{rule.field}' uses line_offset "
                    f"{rule.line_offset}, allowed: {sorted(allowed)}"
                )


class SingleLinePattern(_SubPatternBase):
    type: Literal["single-line"] = "single-line"
    regex: RegexStr

    def line_regex(self, offset: int) -> Optional[str]:
        return self.regex if offset == 0 else None

    @model_validator(mode="after")
    def check_offsets(self):
        self._check_extraction_offsets()
        return self


class MultiLinePattern(_SubPatternBase):
    type: Literal["multi-line"] = "multi-line"
    line_count: int = Field(..., ge=2)
    line_patterns: List[RegexStr] = Field(..., min_length=2)

    @model_validator(mode="after")
    def check_window(self):
        if len(self.line_patterns) != self.line_count:
            raise ValueError(
                f"line_patterns has {len(self.line_patterns)} entries, "
                f"line_count is {self.line_count}"
            )
        self._check_extraction_offsets()
        return self

    def offsets(self) -> List[int]:
        return list(range(self.line_count))

    def line_regex(self, offset: int) -> Optional[str]:
        if 0 <= offset < self.line_count:
            return self.line_patterns[offset]
        return None


class ContextAwarePattern(_SubPatternBase):
    type: Literal["context-aware"] = "context-aware"
    regex: RegexStr
    context_rules: List[ContextRule] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_context(self):
        seen = [r.type for r in self.context_rules]
        if len(seen) != len(set(seen)):
            raise ValueError("at most one previous-line and one next-line rule")
        self._check_extraction_offsets()
        return self

    def offsets(self) -> List[int]:
        return sorted({0} | {r.offset for r in self.context_rules})

    def required_offsets(self) -> List[int]:
        return sorted({0} | {r.offset for r in self.context_rules if r.required})

    def line_regex(self, offset: int) -> Optional[str]:
        if offset == 0:
            return self.regex
        for rule in self.context_rules:
            if rule.offset == offset:
                return rule.pattern
        return None


SubPattern = Annotated[
    Union[SingleLinePattern, MultiLinePattern, ContextAwarePattern],
    Field(discriminator="type"),
]


# ─── Rule ─────────────────────────────────────────────────────────────────────

class PatternConfig(BaseModel):
    """A named, prioritised group of sub-patterns."""
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "yen-inline",
                "name": "Name + yen price",
                "priority": 80,
                "enabled": True,
                "confidence": 0.85,
                "store_identifiers": [],
                "sub_patterns": [{
                    "id": "yen-inline-basic",
                    "name": "name ¥price",
                    "type": "single-line",
                    "regex": r"^(.+?)\s*[¥￥]\s*([\d,]{1,7})$",
                    "confidence": 0.85,
                    "extraction_rules": [
                        {"source": "regex-group", "field": "name", "group_index": 1},
                        {"source": "regex-group", "field": "price", "group_index": 2},
                    ],
                }],
            }
        },
    )

    id: str = Field(..., min_length=1, description="Unique rule id")
    name: str = Field(..., min_length=1, description="Human readable name")
    description: str = Field("", description="What the rule recognises")
    priority: int = Field(50, description="Higher runs first")
    enabled: bool = Field(True, description="Disabled rules are never applied")
    confidence: float = Field(..., ge=0, le=1, description="Rule confidence (0-1)")
    store_identifiers: List[str] = Field(
        default_factory=list,
        description="Stores this rule targets; empty means any store",
    )
    sub_patterns: List[SubPattern] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_unique_sub_ids(self):
        ids = [sp.id for sp in self.sub_patterns]
        if len(ids) != len(set(ids)):
            raise ValueError("sub-pattern ids must be unique within a rule")
        return self

    @property
    def is_store_specific(self) -> bool:
        return bool(self.store_identifiers)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ─── Validation entry point ───────────────────────────────────────────────────

def _error_field(error: Dict[str, Any]) -> str:
    loc = [str(part) for part in error.get("loc", ())]
    if error.get("type") in ("union_tag_invalid", "union_tag_not_found"):
        tag = "source" if "extraction_rules" in loc else "type"
        loc.append(tag)
    # drop the discriminator value pydantic inserts into union paths
    tags = set(SUB_PATTERN_TYPES) | {"regex-group", "line-content", "default"}
    return ".".join(part for part in loc if part not in tags) or "pattern"


def validate_pattern(definition: Union[PatternConfig, Dict[str, Any]], prefix: str = "") -> PatternConfig:
    """
    Validate a rule definition.

    Raises
    ------
    ConfigError
        naming the first offending field, e.g. 'confidence' or
        'sub_patterns.0.type'.
    """
    if isinstance(definition, PatternConfig):
        return definition
    if not isinstance(definition, dict):
        raise ConfigError("pattern definition must be an object", field=prefix.rstrip(".") or "pattern")
    try:
        return PatternConfig.model_validate(definition)
    except ValidationError as e:
        first = e.errors()[0]
        raise ConfigError(first.get("msg", "invalid value"), field=prefix + _error_field(first))
