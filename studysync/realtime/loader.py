import logging
from typing import Any, Dict, List, Optional

from studysync.core.errors import BackendError, LoadFailure
from studysync.database.backend import Backend
from studysync.realtime.hydration import Hydrator
from studysync.realtime.scope import Scope

logger = logging.getLogger(__name__)


async def load_snapshot(
    backend: Backend,
    scope: Scope,
    hydrator: Optional[Hydrator] = None,
    gte: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Fetch the initial records for a scope, ordered and hydrated.

    Raises LoadFailure on any backend error so callers can tell a failed load
    apart from a scope that is genuinely empty.
    """
    try:
        rows = await backend.select(
            scope.table,
            eq=scope.eq,
            gte=gte,
            order=scope.order_by,
            desc=scope.descending,
            limit=scope.limit,
        )
        if hydrator is not None and rows:
            rows = await hydrator.hydrate(rows)
    except BackendError as e:
        logger.error(f"Failed to load {scope.table} ({scope.filter or 'all'}): [{e.code}] {e.message}")
        raise LoadFailure(f"Failed to load {scope.table}", cause=e) from e
    logger.debug(f"Loaded {len(rows)} {scope.table} record(s) for {scope.filter or 'all'}")
    return rows
