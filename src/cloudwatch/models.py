"""
Query models -- the shapes a CloudWatch query takes on its way from saved JSON
to a request-ready ``GetMetricData`` entry.

  DataQuery        raw query as received (ref id + query type + JSON bytes)
  QueryPayload     current-schema JSON, decoded and shape-checked once
  CloudWatchQuery  fully resolved query handed to the execution layer
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class MetricQueryType(IntEnum):
    SEARCH = 0
    QUERY = 1


class MetricEditorMode(IntEnum):
    BUILDER = 0
    RAW = 1


class GMDApiMode(str, Enum):
    """Shape of the outbound GetMetricData request entry."""

    METRIC_STAT = "MetricStat"
    INFERRED_SEARCH_EXPRESSION = "InferredSearchExpression"
    MATH_EXPRESSION = "MathExpression"
    SQL_EXPRESSION = "SQLExpression"


# ── Raw query ────────────────────────────────────────────

@dataclass(frozen=True)
class DataQuery:
    """A query as it arrives from the storage/UI layer.

    ``payload`` holds the JSON document verbatim; ``str`` payloads are
    encoded to UTF-8 on construction.
    """

    ref_id: str
    query_type: str = "timeSeriesQuery"
    payload: bytes = b"{}"
    max_data_points: int = 0
    interval_ms: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.payload, str):
            object.__setattr__(self, "payload", self.payload.encode("utf-8"))


# ── Current-schema payload ───────────────────────────────

# Dimension values were stored as plain strings before multi-value support;
# newer queries store lists. Both decode to the list form below.
DimensionValue = Union[str, list[str]]


def to_value_list(name: str, value: DimensionValue) -> list[str]:
    """Lift a scalar-or-list dimension value to its canonical list form."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValueError(
        f"failed to parse dimension {name!r}: expected a string or a list of strings, "
        f"got {value!r}"
    )


_STRING_FIELDS = (
    "ref_id", "region", "namespace", "metric_name", "alias", "label",
    "id", "expression", "sql_expression",
)


class QueryPayload(BaseModel):
    """Current-schema query JSON. Field aliases are the wire names."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    ref_id: str = Field("", alias="refId")
    region: str = ""
    namespace: str = ""
    metric_name: str = Field("", alias="metricName")
    dimensions: dict[str, list[str]] = Field(default_factory=dict)
    statistic: str | None = None
    period: str | int | float | None = None
    alias: str = ""
    label: str = ""
    hide: bool = False
    id: str = ""
    expression: str = ""
    sql_expression: str = Field("", alias="sqlExpression")
    match_exact: bool = Field(True, alias="matchExact")
    metric_query_type: MetricQueryType | None = Field(None, alias="metricQueryType")
    metric_editor_mode: MetricEditorMode | None = Field(None, alias="metricEditorMode")

    @field_validator(*_STRING_FIELDS, mode="before")
    @classmethod
    def _null_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("hide", "match_exact", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return info.field_name == "match_exact"
        return value

    @field_validator("dimensions", mode="before")
    @classmethod
    def _lift_dimension_values(cls, value: Any) -> dict[str, list[str]]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError(f"dimensions must be an object, got {type(value).__name__}")
        lifted: dict[str, list[str]] = {}
        for name, raw in value.items():
            values = to_value_list(name, raw)
            if values:
                lifted[name] = values
        return lifted


# ── Resolved query ───────────────────────────────────────

class CloudWatchQuery(BaseModel):
    """Fully resolved query, ready for the GetMetricData request builder."""

    ref_id: str
    id: str = Field(..., min_length=1)
    region: str = ""
    namespace: str = ""
    metric_name: str = ""
    statistic: str = ""
    dimensions: dict[str, list[str]] = Field(default_factory=dict)
    period: int = Field(..., gt=0)
    expression: str = ""
    sql_expression: str = ""
    alias: str = ""
    label: str = ""
    return_data: bool = True
    match_exact: bool = True
    metric_query_type: MetricQueryType = MetricQueryType.SEARCH
    metric_editor_mode: MetricEditorMode = MetricEditorMode.BUILDER

    def is_multi_value_dimension(self) -> bool:
        return any(len(values) > 1 for values in self.dimensions.values())

    def is_inferred_search_expression(self) -> bool:
        """True when a builder query can only be served by a SEARCH expression."""
        if not self.dimensions:
            return not self.match_exact
        if self.is_multi_value_dimension():
            return True
        return any("*" in values for values in self.dimensions.values())

    def gmd_api_mode(self) -> GMDApiMode:
        """Decide how the GetMetricData entry for this query must be built."""
        if self.metric_query_type == MetricQueryType.QUERY:
            return GMDApiMode.SQL_EXPRESSION
        if self.metric_editor_mode == MetricEditorMode.RAW:
            return GMDApiMode.MATH_EXPRESSION
        if self.is_inferred_search_expression():
            return GMDApiMode.INFERRED_SEARCH_EXPRESSION
        return GMDApiMode.METRIC_STAT
