"""
Legacy query migration -- rewrites saved query JSON into the current schema.

Two legacy shapes are migrated, each behind its own predicate:

  1. ``statistics`` (list)  → ``statistic`` (first element), list removed
  2. ``{{ tag }}`` alias    → dynamic-label tokens (``${PROP('...')}`` / ``${LABEL}``)

Every other field passes through untouched. A query needing neither step is
returned as-is, so running the migration twice is the same as running it once.
"""
from __future__ import annotations

import dataclasses
import json
import re
from datetime import datetime
from typing import Any

from src.cloudwatch.errors import QueryMigrationError
from src.cloudwatch.models import DataQuery
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

# ── Alias patterns ───────────────────────────────────────

_LEGACY_ALIAS_RE = re.compile(r"\{\{\s*(.+?)\s*\}\}")

ALIAS_PATTERNS: dict[str, str] = {
    "metric":    "${PROP('MetricName')}",
    "namespace": "${PROP('Namespace')}",
    "period":    "${PROP('Period')}",
    "region":    "${PROP('Region')}",
    "stat":      "${PROP('Stat')}",
    "label":     "${LABEL}",
}


def _dynamic_label_for(tag: str) -> str:
    # Unknown tags were dimension names in the legacy alias syntax
    return ALIAS_PATTERNS.get(tag, f"${{PROP('Dim.{tag}')}}")


def rewrite_alias(alias: str) -> str:
    """Replace every ``{{ tag }}`` placeholder in *alias* with its dynamic label."""
    return _LEGACY_ALIAS_RE.sub(lambda m: _dynamic_label_for(m.group(1).strip()), alias)


# ── Predicates ───────────────────────────────────────────

def needs_statistics_migration(payload: dict[str, Any]) -> bool:
    return "statistics" in payload


def needs_alias_migration(payload: dict[str, Any]) -> bool:
    alias = payload.get("alias")
    return isinstance(alias, str) and bool(_LEGACY_ALIAS_RE.search(alias))


# ── Migration steps ──────────────────────────────────────

def migrate_statistics_to_statistic(payload: dict[str, Any], ref_id: str = "") -> None:
    """Collapse the legacy ``statistics`` list into the scalar ``statistic``.

    Only the first statistic survives; a query can carry one statistic.
    """
    stats = payload.pop("statistics")
    if stats is None:
        return
    if not isinstance(stats, list) or not all(isinstance(s, str) for s in stats):
        raise QueryMigrationError(ref_id, f"'statistics' must be a list of strings, got {stats!r}")
    if stats and not isinstance(payload.get("statistic"), str):
        payload["statistic"] = stats[0]
    if len(stats) > 1:
        logger.debug("Query %s: dropped extra statistics %s", ref_id, stats[1:])


def migrate_alias_to_dynamic_label(payload: dict[str, Any]) -> None:
    payload["alias"] = rewrite_alias(payload["alias"])


def _load_payload(query: DataQuery) -> dict[str, Any]:
    try:
        payload = json.loads(query.payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise QueryMigrationError(query.ref_id, "query JSON could not be parsed", cause=exc) from exc
    if not isinstance(payload, dict):
        raise QueryMigrationError(
            query.ref_id, f"query JSON must be an object, got {type(payload).__name__}"
        )
    return payload


def migrate_legacy_query(query: DataQuery, dynamic_labels: bool = True) -> DataQuery:
    """Return *query* in the current schema (the same object if nothing changed)."""
    payload = _load_payload(query)
    changed = False

    if needs_statistics_migration(payload):
        migrate_statistics_to_statistic(payload, query.ref_id)
        changed = True

    if dynamic_labels and needs_alias_migration(payload):
        before = payload["alias"]
        migrate_alias_to_dynamic_label(payload)
        logger.debug("Query %s: alias %r -> %r", query.ref_id, before, payload["alias"])
        changed = True

    if not changed:
        return query

    encoded = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return dataclasses.replace(query, payload=encoded)


def migrate_legacy_queries(
    queries: list[DataQuery],
    start: datetime,
    end: datetime,
    *,
    dynamic_labels: bool | None = None,
) -> list[DataQuery]:
    """Migrate a batch of queries, one result per input in the same order.

    ``start``/``end`` are the batch time range; no current migration step
    depends on them. ``dynamic_labels`` defaults to
    ``Settings.dynamic_labels_enabled``. Raises ``QueryMigrationError`` for the
    first query whose payload cannot be migrated.
    """
    if dynamic_labels is None:
        dynamic_labels = get_settings().dynamic_labels_enabled

    migrated = [migrate_legacy_query(q, dynamic_labels=dynamic_labels) for q in queries]
    rewritten = sum(1 for old, new in zip(queries, migrated) if old is not new)
    logger.debug("Migrated %d/%d queries (%s .. %s)", rewritten, len(queries), start, end)
    return migrated
