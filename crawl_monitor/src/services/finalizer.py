"""Best-effort snapshot fetch run once a crawl completes."""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..exceptions import PartialHydrateError
from ..utils.logger import logger
from .control_client import ControlClient

# AggregateState field -> ControlClient method
SNAPSHOT_COLLECTIONS = {
    "pages": "pages",
    "flows": "flows",
    "extracted_data": "extracted_data",
}


@dataclass
class HydrateResult:
    """Snapshots that arrived and the requests that failed."""

    session_id: str
    snapshots: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    errors: List[PartialHydrateError] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.errors


async def fetch_final_snapshots(client: ControlClient, session_id: str) -> HydrateResult:
    """Request the canonical pages, flows and extracted data concurrently.

    A failed request does not affect the others; it is returned as a
    :class:`PartialHydrateError` instead of being raised.

    Args:
        client: Control interface client
        session_id: Session to fetch

    Returns:
        The successful snapshots plus one error per failed request
    """
    names = list(SNAPSHOT_COLLECTIONS)
    results = await asyncio.gather(
        *(getattr(client, SNAPSHOT_COLLECTIONS[name])(session_id) for name in names),
        return_exceptions=True,
    )

    result = HydrateResult(session_id=session_id)
    for name, outcome in zip(names, results):
        if isinstance(outcome, Exception):
            error = PartialHydrateError(name, session_id, outcome)
            logger.warning(str(error))
            result.errors.append(error)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            result.snapshots[name] = list(outcome)

    logger.info(
        f"Finalization fetch for session {session_id}: "
        f"{len(result.snapshots)} loaded, {len(result.errors)} failed"
    )
    return result
