"""
Request parser -- turns one current-schema query payload into a resolved
``CloudWatchQuery``.

Resolution steps:
  1. decode + shape-check the payload (dimensions lifted to lists)
  2. check required fields for builder queries
  3. resolve the sampling period (explicit value or auto)
  4. resolve the GetMetricData query id
  5. classify query type / editor mode
"""
from __future__ import annotations

import json
import re
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from src.cloudwatch.errors import QueryParseError
from src.cloudwatch.models import (
    CloudWatchQuery,
    MetricEditorMode,
    MetricQueryType,
    QueryPayload,
)
from src.cloudwatch.period import AUTO_PERIOD, compute_auto_period, parse_period
from src.core.logging import get_logger

logger = get_logger(__name__)

# GetMetricData ids: lowercase first letter, then letters, digits or '_', 255 max
VALID_METRIC_DATA_ID = re.compile(r"^[a-z][a-zA-Z0-9_]{0,254}$")

QUERY_ID_PREFIX = "query"

_REQUIRED_BUILDER_FIELDS = {
    "region": "region",
    "namespace": "namespace",
    "metric_name": "metricName",
    "statistic": "statistic",
}


def _decode(query_json: Mapping[str, Any] | str | bytes, ref_id: str) -> dict[str, Any]:
    if isinstance(query_json, Mapping):
        return dict(query_json)
    try:
        data = json.loads(query_json)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as exc:
        raise QueryParseError(ref_id, "query JSON could not be parsed", cause=exc) from exc
    if not isinstance(data, dict):
        raise QueryParseError(ref_id, f"query JSON must be an object, got {type(data).__name__}")
    return data


def parse_dimensions(raw: Any, ref_id: str = "") -> dict[str, list[str]]:
    """Normalise a ``dimensions`` object to ``{name: [values...]}`` with sorted keys."""
    try:
        payload = QueryPayload.model_validate({"dimensions": raw})
    except ValidationError as exc:
        raise QueryParseError(ref_id, "failed to parse dimensions", cause=exc) from exc
    return {name: payload.dimensions[name] for name in sorted(payload.dimensions)}


def resolve_query_id(ref_id: str, explicit_id: str = "") -> str:
    """Pick the GetMetricData id for a query.

    An explicit id is kept when valid. Otherwise ``"query" + ref_id`` is used
    if that is a valid id, else a random one.
    """
    if explicit_id and VALID_METRIC_DATA_ID.match(explicit_id):
        return explicit_id
    if explicit_id:
        logger.warning("Query %s: ignoring invalid id %r", ref_id, explicit_id)

    candidate = QUERY_ID_PREFIX + ref_id
    if ref_id and VALID_METRIC_DATA_ID.match(candidate):
        return candidate
    return QUERY_ID_PREFIX + uuid.uuid4().hex


def _resolve_period(
    payload: QueryPayload,
    ref_id: str,
    start: datetime,
    end: datetime,
    now: datetime | None,
) -> int:
    period = parse_period(payload.period)
    if period is not None:
        return period

    raw = payload.period
    if raw is not None and not (isinstance(raw, str) and raw.strip().lower() in ("", AUTO_PERIOD)):
        logger.warning("Query %s: invalid period %r, falling back to auto", ref_id, raw)
    return compute_auto_period(start, end, now=now)


def parse_request_query(
    query_json: Mapping[str, Any] | str | bytes,
    ref_id: str,
    start: datetime,
    end: datetime,
    *,
    now: datetime | None = None,
) -> CloudWatchQuery:
    """Resolve one query payload into a ``CloudWatchQuery``.

    Parameters
    ----------
    query_json : mapping, str or bytes
        Current-schema query JSON (already migrated).
    ref_id : str
        Reference id of the query within its batch.
    start, end : datetime
        Query time range, used for automatic period inference.
    now : datetime, optional
        Reference "current time" for data-retention rules. Defaults to now.
    """
    data = _decode(query_json, ref_id)
    logger.debug("Parsing request query %s: %s", ref_id, data)

    try:
        payload = QueryPayload.model_validate(data)
    except ValidationError as exc:
        raise QueryParseError(ref_id, "query has invalid fields", cause=exc) from exc

    metric_query_type = payload.metric_query_type
    if metric_query_type is None:
        metric_query_type = MetricQueryType.SEARCH

    metric_editor_mode = payload.metric_editor_mode
    if metric_editor_mode is None:
        # Queries saved before editor modes existed only imply raw via an expression
        metric_editor_mode = MetricEditorMode.RAW if payload.expression else MetricEditorMode.BUILDER

    if metric_query_type == MetricQueryType.SEARCH and metric_editor_mode == MetricEditorMode.BUILDER:
        missing = [
            wire for field, wire in _REQUIRED_BUILDER_FIELDS.items()
            if not getattr(payload, field)
        ]
        if missing:
            raise QueryParseError(ref_id, f"missing required field(s): {', '.join(missing)}")

    query = CloudWatchQuery(
        ref_id=ref_id,
        id=resolve_query_id(ref_id, payload.id),
        region=payload.region,
        namespace=payload.namespace,
        metric_name=payload.metric_name,
        statistic=payload.statistic or "",
        dimensions={name: payload.dimensions[name] for name in sorted(payload.dimensions)},
        period=_resolve_period(payload, ref_id, start, end, now),
        expression=payload.expression,
        sql_expression=payload.sql_expression,
        alias=payload.alias,
        label=payload.label,
        return_data=not payload.hide,
        match_exact=payload.match_exact,
        metric_query_type=metric_query_type,
        metric_editor_mode=metric_editor_mode,
    )
    logger.debug(
        "Query %s resolved: id=%s period=%d mode=%s",
        ref_id, query.id, query.period, query.gmd_api_mode().value,
    )
    return query
