# ingestor_wrapper.py
from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

from rest_ingestor.endpoints import NullEndpoint, RestEndpoint, SqlEndpoint
from rest_ingestor.errors import ConfigurationError
from rest_ingestor.rest_ingestor import RestIngestor
from utils.config_reader import ConfigReader

LOG = logging.getLogger("ingestor_wrapper")
if not LOG.handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    )


def _parse_day(value: Optional[str], label: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise ValueError(
            f"Invalid {label}; expected YYYY-MM-DD. Got {value!r}"
        ) from e


def build_endpoints(
    env_cfg: Dict[str, Any], definition: Dict[str, Any], dry_run: bool = False
):
    """Return (source, destination, utility) for one resolved ingestor."""
    source = RestEndpoint.from_config(env_cfg)

    dsn = env_cfg.get("destination_dsn")
    if dsn:
        destination = SqlEndpoint(
            dsn,
            schema=env_cfg.get("destination_schema"),
            key_columns=definition.get("key_columns"),
        )
    elif dry_run:
        fmap = definition["rest_response"].get("field_map") or {}
        destination = NullEndpoint(columns=list(fmap.keys()))
    else:
        raise ConfigurationError(
            "env must define destination_dsn unless running with dry_run"
        )

    utility = None
    if env_cfg.get("utility_dsn"):
        utility = SqlEndpoint(
            env_cfg["utility_dsn"], schema=env_cfg.get("utility_schema")
        )
    elif definition.get("source_query"):
        # source queries run against the destination database by default
        utility = destination
    return source, destination, utility


def run_ingestor(
    ingestor: str,
    env_name: str,
    yaml_path: str,
    dry_run: bool = False,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Execute one RestIngestor and return the metadata dict.

    Args:
        ingestor:  Key under 'ingestors' in the YAML (e.g. 'events').
        env_name:  Environment key under 'envs' (e.g. 'dev', 'prod').
        yaml_path: Path to the YAML document.
        dry_run:   Build the first request only; no fetches, no writes.
        start:     Optional 'YYYY-MM-DD', exposed as ${START_DATE}.
        end:       Optional 'YYYY-MM-DD', exposed as ${END_DATE}.
    """
    if not ingestor:
        raise ValueError("Parameter 'ingestor' is required.")
    if not env_name:
        raise ValueError("Parameter 'env_name' is required.")

    d0 = _parse_day(start, "start")
    d1 = _parse_day(end, "end")

    LOG.info("Loading YAML from filesystem: %s", yaml_path)
    env_cfg, definition = (
        ConfigReader(LOG, Path(yaml_path))
        .load_configurations()
        .ingestor(ingestor, env_name)
    )
    source, destination, utility = build_endpoints(env_cfg, definition, dry_run)

    ing = RestIngestor(
        definition,
        LOG,
        source,
        destination,
        utility,
        name=ingestor,
        variables=env_cfg.get("variables"),
    )
    meta = ing.initialize().run(dry_run=dry_run, start_date=d0, end_date=d1)
    meta["env"] = env_name

    LOG.info("Ingestor metadata: %s", json.dumps(meta))
    return meta
