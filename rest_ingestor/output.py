from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from rest_ingestor.directives import RuleSet, apply_directives
from rest_ingestor.errors import (
    ConfigurationError,
    DirectiveError,
    MalformedResponseError,
)
from rest_ingestor.small_utils import bind_name, to_bind_value


def build_column_map(
    first_record: Mapping[str, Any],
    field_map: Optional[Mapping[str, str]],
    destination_columns: Sequence[str],
) -> Dict[str, str]:
    """
    Destination column -> response field. Without a field map every field of
    the first record must be a destination column and maps to itself.
    """
    if field_map is not None:
        return dict(field_map)
    if not isinstance(first_record, Mapping):
        raise MalformedResponseError(
            "Results must be objects to discover fields without a field_map"
        )
    known = set(destination_columns)
    missing = [k for k in first_record.keys() if k not in known]
    if missing:
        raise ConfigurationError(
            "Result keys not found in destination table: " + ",".join(missing)
        )
    return {k: k for k in first_record.keys()}


def record_bindings(
    record: Mapping[str, Any],
    column_map: Mapping[str, str],
    response_directives: Mapping[str, RuleSet],
    index: int,
    log,
    url: str = "",
) -> Dict[str, Any]:
    values = dict(record)

    # directives are keyed by response field, not by destination column
    for field, rules in response_directives.items():
        if values.get(field) is None:
            continue
        try:
            values[field] = apply_directives(values[field], rules)
        except DirectiveError as e:
            log.warning(f"[output] record {index} field '{field}': {e}")
            values[field] = None

    present = sum(1 for f in column_map.values() if f in values)
    if present != len(column_map):
        log.warning(
            f"[output] Record counts do not match (expected {len(column_map)} "
            f"but received {present}). url = {url}"
        )

    return {
        bind_name(j, index): to_bind_value(values.get(field))
        for j, field in enumerate(column_map.values())
    }


def build_batch(
    table: str,
    records: List[Mapping[str, Any]],
    column_map: Mapping[str, str],
    response_directives: Mapping[str, RuleSet],
    log,
    *,
    verb: str = "REPLACE INTO",
    suffix: str = "",
    url: str = "",
) -> Tuple[str, Dict[str, Any]]:
    """
    One multi-row statement for a page. Every VALUES tuple follows the
    column order of ``column_map``.
    """
    value_list: List[str] = []
    params: Dict[str, Any] = {}
    for i, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise MalformedResponseError(
                f"Result record {i} is not an object. url = {url}"
            )
        bindings = record_bindings(
            record, column_map, response_directives, i, log, url
        )
        value_list.append(
            "(" + ", ".join(f":{name}" for name in bindings) + ")"
        )
        params.update(bindings)

    columns = ", ".join(column_map.keys())
    sql = f"{verb} {table} ({columns}) VALUES\n" + ",\n".join(value_list)
    if value_list:
        log.debug(
            f"[output] {verb} {table} ({columns}) VALUES\n{value_list[0]}\n..."
        )
    return sql + suffix, params
