from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import pandas as pd

from rest_ingestor.config import ResponseLayout
from rest_ingestor.errors import IngestorError, TransportError
from rest_ingestor.output import build_batch, build_column_map
from rest_ingestor.parsing import UnwrappedResponse, unwrap
from rest_ingestor.request_helpers import redact_url

PROGRESS_EVERY = 10000


@dataclass
class PaginationState:
    current_url: str
    request_count: int = 0
    records_processed: int = 0
    exhausted: bool = False
    phase: str = "fetching"


def _log_progress(log, before: int, after: int, started: pd.Timestamp) -> None:
    if after // PROGRESS_EVERY > before // PROGRESS_EVERY:
        elapsed = (pd.Timestamp.now(tz="UTC") - started).total_seconds()
        log.info(f"[paginate] Processed {after} records in {elapsed:.1f}s")


def _next_url(
    ctx: Dict[str, Any],
    endpoint,
    layout: ResponseLayout,
    page: UnwrappedResponse,
    row_source,
) -> Optional[str]:
    """Where to go after this page, or None when the run is finished."""
    log = ctx["log"]
    if row_source is not None:
        if row_source.advance():
            return endpoint.current_effective_url()
        log.info(
            f"[paginate] Row source exhausted after {row_source.rows_read} rows "
            f"({row_source.rows_skipped} skipped), finished."
        )
        return None

    if not layout.next:
        return None

    token = page.next_token
    if token is None or token == "":
        log.warning(
            f"[paginate] Next property '{layout.next}' not present or has null value in response, finished."
        )
        return None

    url = urljoin(endpoint.current_effective_url(), str(token))
    endpoint.set_target_url(url)
    return url


def paginate(
    ctx: Dict[str, Any],
    endpoint,
    layout: ResponseLayout,
    destination,
    row_source=None,
) -> PaginationState:
    """
    Fetch pages until the next link (or the row source) runs out, writing one
    upsert batch per non-empty page.

    ctx keys: ``log``, ``table``, ``destination_columns`` and
    ``response_directives``; ``max_pages`` is optional.
    """
    log = ctx["log"]
    table = ctx["table"]
    response_directives = ctx.get("response_directives") or {}
    max_pages = ctx.get("max_pages")

    state = PaginationState(current_url=endpoint.current_effective_url())
    column_map: Optional[Dict[str, str]] = None
    upsert: Optional[tuple] = None
    count_logged = False
    started = pd.Timestamp.now(tz="UTC")

    while not state.exhausted:
        # ---------- Fetching ----------
        state.phase = "fetching"
        log.debug(f"[paginate] GET {redact_url(state.current_url)}")
        try:
            raw = endpoint.fetch()
        except TransportError as e:
            state.phase = "erroring"
            log.error(f"[paginate] {e}")
            raise e.with_progress(state.records_processed, state.request_count)
        state.request_count += 1
        state.current_url = endpoint.current_effective_url()

        # counters on any fatal error reflect the pages already written
        try:
            # ---------- Unwrapping ----------
            state.phase = "unwrapping"
            page = unwrap(raw, layout)

            if page.error is not None:
                state.phase = "skipping"
                log.warning(
                    f"[paginate] Error returned from REST call: {page.error}. url = {redact_url(state.current_url)}"
                )
            elif page.empty:
                state.phase = "skipping"
                log.info(
                    f"[paginate] No results returned from REST call. url = {redact_url(state.current_url)}"
                )
            else:
                # ---------- Collecting ----------
                state.phase = "collecting"
                records: List[Any] = page.results
                if column_map is None:
                    column_map = build_column_map(
                        records[0], layout.field_map, ctx["destination_columns"]
                    )
                    upsert = destination.upsert_clause(list(column_map.keys()))
                if page.count is not None and not count_logged:
                    log.info(f"[paginate] Ingesting {page.count} records")
                    count_logged = True

                sql, params = build_batch(
                    table,
                    records,
                    column_map,
                    response_directives,
                    log,
                    verb=upsert[0],
                    suffix=upsert[1],
                    url=redact_url(state.current_url),
                )
                destination.execute_batch(sql, params)
                before = state.records_processed
                state.records_processed += len(records)
                _log_progress(log, before, state.records_processed, started)

            # ---------- Advancing ----------
            state.phase = "advancing"
            if max_pages is not None and state.request_count >= int(max_pages):
                log.warning(f"[paginate] Reached max_pages={max_pages}, stopping.")
                nxt = None
            else:
                nxt = _next_url(ctx, endpoint, layout, page, row_source)
        except IngestorError as e:
            state.phase = "erroring"
            log.error(f"[paginate] {e}. url = {redact_url(state.current_url)}")
            raise e.with_progress(state.records_processed, state.request_count)

        if nxt is None:
            state.exhausted = True
            state.phase = "exhausted"
        else:
            state.current_url = nxt
            endpoint.sleep()

    log.info(f"[paginate] Made {state.request_count} REST requests")
    return state
