from typing import Any, Dict, Optional

import pandas as pd

from rest_ingestor.config import ResponseLayout
from rest_ingestor.directives import split_directives, verify_directives
from rest_ingestor.errors import ConfigurationError
from rest_ingestor.macros import substitute_variables
from rest_ingestor.pagination import paginate
from rest_ingestor.parameters import ParameterBuilder
from rest_ingestor.request_helpers import (
    log_exception,
    log_request,
    redact_url,
)
from rest_ingestor.row_source import RowSourceIterator


class RestIngestor:
    """
    One ingestion action: REST source -> destination table.

    ``source`` is a RestEndpoint, ``destination`` a SqlEndpoint or
    NullEndpoint, ``utility`` the optional endpoint that runs
    ``source_query``.
    """

    def __init__(
        self,
        definition: Dict[str, Any],
        log,
        source,
        destination,
        utility=None,
        *,
        name: Optional[str] = None,
        table_name: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ):
        self.definition = definition
        self.log = log
        self.source = source
        self.destination = destination
        self.utility = utility
        self.name = name or definition.get("name") or "rest_ingestor"
        self.table_name = table_name or definition.get("destination_table")
        self.variables = dict(variables or {})

        self.parameters: Dict[str, Any] = {}
        self.parameter_directives: Dict[str, Any] = {}
        self.field_map: Optional[Dict[str, str]] = None
        self.response_directives: Dict[str, Any] = {}
        self.layout: Optional[ResponseLayout] = None
        self.builder: Optional[ParameterBuilder] = None
        self._initialized = False

    # ------------ setup ------------
    def initialize(self) -> "RestIngestor":
        for key in ("rest_request", "rest_response"):
            if not isinstance(self.definition.get(key), dict):
                raise ConfigurationError(
                    f"{key} key not found in definition file"
                )
        if not self.table_name:
            raise ConfigurationError(
                f"Ingestor '{self.name}' does not define a destination_table"
            )
        rest_request = self.definition["rest_request"]
        rest_response = dict(self.definition["rest_response"])

        self.parameters, self.parameter_directives = split_directives(
            rest_request.get("parameters"), "value"
        )
        fmap = rest_response.pop("field_map", None)
        if fmap is not None:
            self.field_map, self.response_directives = split_directives(
                fmap, "name", key_by_value=True
            )
        self.layout = ResponseLayout.from_config(rest_response, self.field_map)
        self.builder = ParameterBuilder(
            self.source,
            self.parameter_directives,
            rest_request.get("format"),
            self.log,
        )
        self._initialized = True
        return self

    def verify(self) -> bool:
        if not self._initialized:
            self.initialize()
        for name, rules in self.parameter_directives.items():
            verify_directives(name, rules)
        for name, rules in self.response_directives.items():
            verify_directives(name, rules)
        return True

    def variable_map(self, start_date=None, end_date=None) -> Dict[str, Any]:
        return {
            "UTILITY_SCHEMA": getattr(self.utility, "schema", None),
            "START_DATE": None if start_date is None else str(start_date),
            "END_DATE": None if end_date is None else str(end_date),
            **self.variables,
        }

    # ------------ run ------------
    def run(
        self, dry_run: bool = False, start_date=None, end_date=None
    ) -> Dict[str, Any]:
        started = pd.Timestamp.now(tz="UTC")
        self.verify()
        table = self.destination.qualified(self.table_name)
        ctx: Dict[str, Any] = {"log": self.log, "table": table}
        self.log.info(
            f"[rest_ingestor] start ingestor={self.name} table={table} source={self.source} dry_run={dry_run}"
        )

        records = 0
        requests_made = 0
        keys_disabled = False
        try:
            # ---------- pre-execute ----------
            columns = self.destination.column_names(self.table_name)
            if self.field_map is not None:
                unknown = [c for c in self.field_map if c not in columns]
                if unknown:
                    raise ConfigurationError(
                        f"Field map columns not found in destination table {table}: "
                        + ",".join(unknown)
                    )
            ctx["destination_columns"] = columns
            ctx["response_directives"] = self.response_directives
            if self.definition.get("max_pages") is not None:
                ctx["max_pages"] = self.definition["max_pages"]

            variables = self.variable_map(start_date, end_date)
            row_source = self._row_source(variables)

            self.builder.set_parameters(
                {
                    k: substitute_variables(v, variables)[0]
                    for k, v in self.parameters.items()
                }
            )

            if (
                not dry_run
                and self.destination.storage_engine_kind(self.table_name)
                == "myisam"
            ):
                self.log.info(f"[rest_ingestor] Disabling keys on {table}")
                self.destination.execute(f"ALTER TABLE {table} DISABLE KEYS")
                keys_disabled = True

            # ---------- execute ----------
            if row_source is not None:
                first_url = (
                    self.source.current_effective_url()
                    if row_source.advance()
                    else None
                )
                if first_url is None:
                    self.log.warning(
                        f"[rest_ingestor] Source query returned no usable rows "
                        f"({row_source.rows_read} read), nothing to ingest."
                    )
            else:
                first_url = self.builder.build()
                if first_url is None:
                    self.log.error(
                        "[rest_ingestor] Initial request parameters failed their directives, nothing to ingest."
                    )

            if first_url is not None:
                log_request(
                    ctx,
                    first_url,
                    getattr(self.source, "request_opts", {}),
                    "[rest_ingestor] first request ",
                )
                if dry_run:
                    self.log.info(
                        "[rest_ingestor] dry_run=true -> skipping fetch and write"
                    )
                else:
                    state = paginate(
                        ctx, self.source, self.layout, self.destination, row_source
                    )
                    records = state.records_processed
                    requests_made = state.request_count
        except Exception as e:
            log_exception(
                ctx, self.source.current_effective_url(), e, "[rest_ingestor] "
            )
            raise
        finally:
            if keys_disabled:
                self.log.info(f"[rest_ingestor] Enabling keys on {table}")
                self.destination.execute(f"ALTER TABLE {table} ENABLE KEYS")
            if self.utility is not None:
                self.utility.close()

        ended = pd.Timestamp.now(tz="UTC")
        self.log.info(
            f"[rest_ingestor] done ingestor={self.name} table={table} records={records} "
            f"requests={requests_made} duration={(ended - started).total_seconds():.3f}s"
        )
        return {
            "ingestor": self.name,
            "table": table,
            "records": records,
            "requests": requests_made,
            "dry_run": bool(dry_run),
            "pagination_mode": self.pagination_mode,
            "source_url": redact_url(self.source.base_url),
            "started_at": started.isoformat(),
            "ended_at": ended.isoformat(),
            "duration_s": float((ended - started).total_seconds()),
        }

    @property
    def pagination_mode(self) -> str:
        if self.definition.get("source_query"):
            return "row_source"
        if self.layout is not None and self.layout.next:
            return "next"
        return "none"

    def _row_source(self, variables: Dict[str, Any]):
        query = self.definition.get("source_query")
        if not query:
            return None
        if self.utility is None:
            raise ConfigurationError(
                f"Ingestor '{self.name}' has a source_query but no utility endpoint"
            )
        sql, _ = substitute_variables(query, variables)
        self.log.debug(f"[rest_ingestor] source query: {sql}")
        return RowSourceIterator(self.utility.query(sql), self.builder, self.log)
