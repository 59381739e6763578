"""
GetMetricData request builder -- one ``MetricDataQueries`` entry per resolved
query, keyed the way boto3's ``get_metric_data`` expects.

The entry shape follows ``CloudWatchQuery.gmd_api_mode()``:

  MetricStat                plain metric + stat + period
  InferredSearchExpression  SEARCH() expression built from the dimensions
  MathExpression            user's raw expression
  SQLExpression             user's Metrics Insights query
"""
from __future__ import annotations

from typing import Any

from src.cloudwatch.models import CloudWatchQuery, GMDApiMode
from src.core.logging import get_logger

logger = get_logger(__name__)

_DYNAMIC_LABEL_MARKER = "${"


def _quote_all(values: list[str], sep: str) -> str:
    return sep.join(f'"{v}"' for v in values)


def _escape_double_quotes(values: list[str]) -> list[str]:
    return [v.replace('"', '\\"') for v in values]


def _escape_single_quotes(text: str) -> str:
    return text.replace("'", "\\'")


def _append_search(target: str, value: str) -> str:
    if not value:
        return target
    if not target:
        return value
    return f"{target} {value}"


def build_search_expression(query: CloudWatchQuery, stat: str) -> str:
    """Build a ``REMOVE_EMPTY(SEARCH(...))`` expression for *query*.

    Dimensions with a ``*`` value match any value. With ``match_exact`` the
    search is pinned to the exact dimension schema of the query. Double quotes
    in dimension values and single quotes anywhere in the search text are
    backslash-escaped so they cannot end the quoted literals.
    """
    known: dict[str, list[str]] = {}
    wildcard_names: list[str] = []
    for name, values in query.dimensions.items():
        if "*" in values:
            wildcard_names.append(name)
        else:
            known[name] = values

    search_term = f'MetricName="{query.metric_name}"'
    for name in sorted(known):
        values = _escape_double_quotes(known[name])
        value_expression = _quote_all(values, " OR ")
        if len(values) > 1:
            value_expression = f"({value_expression})"
        search_term = _append_search(search_term, f'"{name}"={value_expression}')

    if query.match_exact:
        schema = f'"{query.namespace}"'
        if query.dimensions:
            schema += "," + _quote_all(sorted(query.dimensions), ",")
        body = f"{{{schema}}} {search_term}"
    else:
        search_term = _append_search(search_term, _quote_all(sorted(wildcard_names), " "))
        body = f'Namespace="{query.namespace}" {search_term}'

    return (
        f"REMOVE_EMPTY(SEARCH('{_escape_single_quotes(body)}', "
        f"'{_escape_single_quotes(stat)}', {query.period}))"
    )


def _label(query: CloudWatchQuery) -> str:
    if query.label:
        return query.label
    if _DYNAMIC_LABEL_MARKER in query.alias:
        return query.alias
    return ""


def build_metric_data_query(query: CloudWatchQuery) -> dict[str, Any]:
    """Return the ``MetricDataQueries`` entry for *query*."""
    mode = query.gmd_api_mode()
    entry: dict[str, Any] = {"Id": query.id, "ReturnData": query.return_data}

    label = _label(query)
    if label:
        entry["Label"] = label

    if mode == GMDApiMode.METRIC_STAT:
        entry["MetricStat"] = {
            "Metric": {
                "Namespace": query.namespace,
                "MetricName": query.metric_name,
                "Dimensions": [
                    {"Name": name, "Value": values[0]}
                    for name, values in query.dimensions.items()
                ],
            },
            "Period": query.period,
            "Stat": query.statistic,
        }
    elif mode == GMDApiMode.INFERRED_SEARCH_EXPRESSION:
        entry["Expression"] = build_search_expression(query, query.statistic)
    elif mode == GMDApiMode.MATH_EXPRESSION:
        entry["Expression"] = query.expression
        entry["Period"] = query.period
    else:
        entry["Expression"] = query.sql_expression
        entry["Period"] = query.period

    logger.debug("Built %s entry for query %s", mode.value, query.ref_id)
    return entry


def build_metric_data_queries(queries: list[CloudWatchQuery]) -> list[dict[str, Any]]:
    return [build_metric_data_query(q) for q in queries]
