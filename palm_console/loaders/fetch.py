"""
Backend loaders: range-filtered row fetches and the optional summary RPC.

Every load is a fan-out of independent selects on a thread pool followed by
a fan-in. If any select fails the whole load fails with DataLoadError and
no partial rows are returned.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..config import FETCH_MAX_WORKERS, SUMMARY_RPC, TABLES
from ..errors import DataLoadError, RecordNotFoundError
from .utils import DateRange, all_time

logger = logging.getLogger(__name__)

DASHBOARD_ENTITIES = ("agents", "advances", "expenses", "collections", "orders", "payments")
AGENT_REPORT_ENTITIES = ("agents", "advances", "expenses", "collections")


def fetch_rows(
    client,
    entity: str,
    date_range: DateRange | None = None,
    filters: dict | None = None,
) -> list[dict]:
    """Select one entity's rows, filtered by date range and equality filters.

    Parameters
    ----------
    client : Supabase client.
    entity : Key into config.TABLES (e.g. "advances").
    date_range : Applied to the entity's date column as [start, end).
    filters : Column -> value equality filters.

    Returns
    -------
    List of row dicts ordered by date descending (agents by name).
    """
    table_def = TABLES[entity]
    table = table_def["table"]
    date_col = table_def["date_column"]

    query = client.table(table).select(table_def["columns"])

    for col, val in (filters or {}).items():
        query = query.eq(col, val)

    if date_col and date_range is not None:
        if date_range.start is not None:
            query = query.gte(date_col, date_range.start.isoformat())
        if date_range.end is not None:
            query = query.lt(date_col, date_range.end.isoformat())

    order_col = table_def.get("order_column", date_col)
    if order_col:
        query = query.order(order_col, desc=table_def.get("descending", True))

    try:
        response = query.execute()
    except Exception as exc:
        logger.exception("Failed to load rows from %s", table)
        raise DataLoadError(f"Failed to load {entity}: {exc}", table=table) from exc

    rows = response.data or []
    logger.info("Loaded %d rows from %s", len(rows), table)
    return rows


def _fan_out(client, jobs: dict[str, tuple], max_workers: int) -> dict[str, list[dict]]:
    """Run fetch_rows for every job concurrently; all succeed or the load fails."""
    results: dict[str, list[dict]] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {
            pool.submit(fetch_rows, client, entity, date_range, filters): entity
            for entity, (date_range, filters) in jobs.items()
        }
        try:
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        except DataLoadError:
            for future in futures:
                future.cancel()
            raise

    return results


def load_dashboard_rows(
    client,
    date_range: DateRange | None = None,
    agent_id: str | None = None,
    max_workers: int = FETCH_MAX_WORKERS,
) -> dict[str, list[dict]]:
    """Fetch every dashboard entity for a date range.

    Orders and payments are not agent-scoped, so an agent filter only
    narrows agents, advances, expenses and collections.
    """
    date_range = date_range or all_time()
    jobs = {}
    for entity in DASHBOARD_ENTITIES:
        filters = None
        if agent_id is not None:
            if entity == "agents":
                filters = {"id": agent_id}
            elif entity in AGENT_REPORT_ENTITIES:
                filters = {"agent_id": agent_id}
        jobs[entity] = (date_range, filters)

    logger.info("Loading dashboard rows for %s", date_range.label)
    return _fan_out(client, jobs, max_workers)


def try_load_summary(client, date_range: DateRange | None = None) -> dict | None:
    """Call the optional server-side summary RPC.

    Returns the summary dict, or None on any failure so the caller can
    aggregate raw rows locally instead.
    """
    date_range = date_range or all_time()
    try:
        response = client.rpc(SUMMARY_RPC, date_range.params()).execute()
    except Exception as exc:
        logger.warning("Summary RPC %s unavailable, aggregating locally: %s", SUMMARY_RPC, exc)
        return None

    data = response.data
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict):
        logger.warning("Summary RPC %s returned no usable payload", SUMMARY_RPC)
        return None
    return data


def load_dashboard(
    client,
    date_range: DateRange | None = None,
    agent_id: str | None = None,
    use_summary: bool = True,
    max_workers: int = FETCH_MAX_WORKERS,
) -> tuple[dict[str, list[dict]], dict | None]:
    """Summary fast path (when unscoped) followed by the raw row fan-out.

    Returns
    -------
    (rows_by_entity, summary_or_None)
    """
    summary = None
    if use_summary and agent_id is None:
        summary = try_load_summary(client, date_range)
    rows = load_dashboard_rows(client, date_range, agent_id, max_workers)
    return rows, summary


def load_agent_report_rows(
    client,
    agent_id: str,
    date_range: DateRange | None = None,
    max_workers: int = FETCH_MAX_WORKERS,
) -> dict[str, list[dict]]:
    """Fetch one agent's row plus their advances, expenses and collections.

    Raises RecordNotFoundError if the agent does not exist.
    """
    date_range = date_range or all_time()
    jobs = {
        entity: (date_range, {"id": agent_id} if entity == "agents" else {"agent_id": agent_id})
        for entity in AGENT_REPORT_ENTITIES
    }
    rows = _fan_out(client, jobs, max_workers)

    if not rows["agents"]:
        raise RecordNotFoundError(TABLES["agents"]["table"], agent_id)
    return rows
