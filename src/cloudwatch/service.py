"""
Query preparation service -- orchestrates migrate -> parse -> build for a batch.

Each query is handled on its own: a query that fails to migrate or parse
records its error and the rest of the batch carries on. Results always come
back in input order, one per input query, so callers can match them by index
or ``ref_id`` and decide for themselves whether to abort or skip failures.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any

from src.cloudwatch.errors import QueryError
from src.cloudwatch.metric_data import build_metric_data_query
from src.cloudwatch.migration import migrate_legacy_query
from src.cloudwatch.models import CloudWatchQuery, DataQuery
from src.cloudwatch.request_parser import parse_request_query
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import timer

logger = get_logger(__name__)


class PreparedQuery:
    def __init__(
        self,
        ref_id: str,
        query: CloudWatchQuery | None = None,
        errors: list[str] | None = None,
        migrated: DataQuery | None = None,
    ):
        self.ref_id = ref_id
        self.query = query
        self.errors = errors or []
        self.migrated = migrated

    @property
    def success(self) -> bool:
        return self.query is not None and not self.errors

    def metric_data_query(self) -> dict[str, Any] | None:
        """GetMetricData entry for this query, or ``None`` if it failed."""
        if not self.success:
            return None
        return build_metric_data_query(self.query)


def prepare_query(
    raw: DataQuery,
    start: datetime,
    end: datetime,
    *,
    dynamic_labels: bool = True,
    now: datetime | None = None,
) -> PreparedQuery:
    """Migrate and parse a single query, capturing any failure."""
    try:
        migrated = migrate_legacy_query(raw, dynamic_labels=dynamic_labels)
        query = parse_request_query(migrated.payload, raw.ref_id, start, end, now=now)
    except QueryError as exc:
        logger.warning("Query %s failed: %s", raw.ref_id, exc)
        return PreparedQuery(ref_id=raw.ref_id, errors=[str(exc)])
    return PreparedQuery(ref_id=raw.ref_id, query=query, migrated=migrated)


def prepare_queries(
    queries: list[DataQuery],
    start: datetime,
    end: datetime,
    *,
    max_workers: int | None = None,
    dynamic_labels: bool | None = None,
    now: datetime | None = None,
) -> list[PreparedQuery]:
    """Prepare a batch of raw queries for the execution layer.

    Parameters
    ----------
    queries : list[DataQuery]
        Raw queries as received, in any schema version.
    start, end : datetime
        Batch time range.
    max_workers : int, optional
        Worker threads. Defaults to ``Settings.max_workers``; 1 runs inline.
    dynamic_labels : bool, optional
        Rewrite legacy alias templates. Defaults to
        ``Settings.dynamic_labels_enabled``.
    now : datetime, optional
        Reference time for period inference, shared by the whole batch.
    """
    settings = get_settings()
    if max_workers is None:
        max_workers = settings.max_workers
    if dynamic_labels is None:
        dynamic_labels = settings.dynamic_labels_enabled
    if now is None:
        now = datetime.now(tz=start.tzinfo)

    def _prepare(raw: DataQuery) -> PreparedQuery:
        return prepare_query(raw, start, end, dynamic_labels=dynamic_labels, now=now)

    with timer() as t:
        if max_workers > 1 and len(queries) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                results = list(pool.map(_prepare, queries))
        else:
            results = [_prepare(q) for q in queries]

    failed = sum(1 for r in results if not r.success)
    logger.info(
        "Prepared %d queries (%d failed) in %.3f ms",
        len(results), failed, t["elapsed_ms"],
    )
    return results
