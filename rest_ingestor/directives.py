"""
Transform and verify directives for request parameters and response fields.

A directive is a mapping ``{"type": ..., "format": ...}``. Directives are
grouped into a rule set::

    {"transform": {...} | [{...}, ...], "verify": {...} | [{...}, ...]}

Transforms run first, in declared order, then verifications in declared order.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Pattern, Tuple

import pandas as pd

from rest_ingestor.errors import ConfigurationError, DirectiveError

TRANSFORM_TYPES = {"datetime", "sprintf", "regex"}
VERIFY_TYPES = {"regex"}

_DELIMITED_RE = re.compile(r"^/(?P<body>.*)/(?P<flags>[imsx]*)$", re.DOTALL)
_FLAG_BITS = {"i": re.I, "m": re.M, "s": re.S, "x": re.X}


@dataclass(frozen=True)
class RuleSet:
    transform: Tuple[Dict[str, Any], ...] = ()
    verify: Tuple[Dict[str, Any], ...] = ()

    def __bool__(self) -> bool:
        return bool(self.transform or self.verify)


def as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def rule_set_from_config(name: str, obj: Mapping[str, Any]) -> RuleSet:
    """Normalize singular-or-list ``transform``/``verify`` entries."""
    groups = {}
    for category in ("transform", "verify"):
        entries = as_list(obj.get(category))
        for entry in entries:
            if not isinstance(entry, Mapping):
                raise ConfigurationError(
                    f"{category.capitalize()} directives for '{name}' must be an object"
                )
        groups[category] = tuple(dict(e) for e in entries)
    return RuleSet(**groups)


@lru_cache(maxsize=256)
def compile_pattern(fmt: str) -> Pattern:
    """
    Accepts plain Python patterns and PCRE-style delimited ones such as
    ``/^[0-9]+$/i``.
    """
    m = _DELIMITED_RE.match(fmt)
    if not m:
        return re.compile(fmt)
    flags = 0
    for ch in m.group("flags"):
        flags |= _FLAG_BITS[ch]
    return re.compile(m.group("body"), flags)


def _check_directive(
    name: str, directive: Mapping[str, Any], category: str
) -> None:
    if directive.get("type") is None or directive.get("format") is None:
        raise ConfigurationError(
            f"{category.capitalize()} directive for '{name}' must specify a type and format."
        )
    supported = TRANSFORM_TYPES if category == "transform" else VERIFY_TYPES
    dtype = directive["type"]
    if dtype not in supported:
        raise ConfigurationError(
            f"Unsupported {category} type '{dtype}' for key '{name}'"
        )
    if dtype == "regex":
        try:
            compile_pattern(str(directive["format"]))
        except re.error as e:
            raise ConfigurationError(
                f"Invalid regex format '{directive['format']}' for key '{name}': {e}"
            ) from e
    if dtype == "sprintf":
        _check_sprintf_format(name, directive["format"])


def _check_sprintf_format(name: str, fmt: Any) -> None:
    # a usable format accepts either a number or a string
    for sample in (0, "0"):
        try:
            fmt % (sample,)
            return
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid sprintf format '{fmt}' for key '{name}': {e}"
            ) from e
        except TypeError as e:
            error = e
    raise ConfigurationError(
        f"Invalid sprintf format '{fmt}' for key '{name}': {error}"
    ) from error


def verify_directives(name: str, rule_set: RuleSet) -> bool:
    """Check every directive is well formed without executing any of them."""
    for directive in rule_set.transform:
        _check_directive(name, directive, "transform")
    for directive in rule_set.verify:
        _check_directive(name, directive, "verify")
    return True


# ---------- Transforms ----------


def _transform_datetime(value: Any, directive: Mapping[str, Any]) -> Any:
    input_format = directive.get("input_format")
    try:
        ts = (
            pd.to_datetime(value, format=input_format)
            if input_format
            else pd.to_datetime(value)
        )
    except (ValueError, TypeError, OverflowError) as e:
        raise DirectiveError(
            f"Failed datetime transform ({directive['format']}) for '{value}': {e}"
        ) from e
    if pd.isna(ts):
        raise DirectiveError(
            f"Failed datetime transform ({directive['format']}) for '{value}'"
        )
    return ts.strftime(directive["format"])


def _transform_sprintf(value: Any, directive: Mapping[str, Any]) -> Any:
    fmt = directive["format"]
    try:
        return fmt % (value,)
    except (TypeError, ValueError):
        pass
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise DirectiveError(
            f"Failed sprintf transform ({fmt}) for '{value}': {e}"
        ) from e
    if number.is_integer():
        number = int(number)
    try:
        return fmt % (number,)
    except (TypeError, ValueError) as e:
        raise DirectiveError(
            f"Failed sprintf transform ({fmt}) for '{value}': {e}"
        ) from e


def _transform_regex(value: Any, directive: Mapping[str, Any]) -> Any:
    m = compile_pattern(str(directive["format"])).search(str(value))
    return m.group(0) if m else value


_TRANSFORMS = {
    "datetime": _transform_datetime,
    "sprintf": _transform_sprintf,
    "regex": _transform_regex,
}


def apply_transform(value: Any, directive: Mapping[str, Any]) -> Any:
    fn = _TRANSFORMS.get(directive.get("type"))
    if fn is None:
        raise ConfigurationError(
            f"Unsupported transform type '{directive.get('type')}'"
        )
    return fn(value, directive)


def apply_verify(value: Any, directive: Mapping[str, Any]) -> bool:
    if directive.get("type") not in VERIFY_TYPES:
        raise ConfigurationError(
            f"Unsupported verify type '{directive.get('type')}'"
        )
    fmt = str(directive["format"])
    if compile_pattern(fmt).search(str(value)) is None:
        raise DirectiveError(
            f"Failed {directive['type']} ({fmt}) verification for '{value}'"
        )
    return True


def apply_directives(value: Any, rule_set: RuleSet) -> Any:
    for directive in rule_set.transform:
        value = apply_transform(value, directive)
    for directive in rule_set.verify:
        apply_verify(value, directive)
    return value


# ---------- Config splitting ----------


def split_directives(
    entries: Optional[Mapping[str, Any]],
    value_key: str,
    *,
    key_by_value: bool = False,
) -> Tuple[Dict[str, Any], Dict[str, RuleSet]]:
    """
    Split config entries that are either plain values or directive objects
    into (plain, directive_table).

    Parameters use ``value_key="value"`` and are keyed by parameter name. The
    response field map uses ``value_key="name"`` with ``key_by_value=True`` so
    the directive table is keyed by the response field, not the DB column.
    """
    plain: Dict[str, Any] = {}
    table: Dict[str, RuleSet] = {}
    for key, entry in (entries or {}).items():
        if not isinstance(entry, Mapping):
            plain[key] = entry
            continue
        if value_key not in entry:
            raise ConfigurationError(
                f"Entry '{key}' object does not specify a '{value_key}' key"
            )
        value = entry[value_key]
        plain[key] = value
        table[value if key_by_value else key] = rule_set_from_config(
            key, entry
        )
    return plain, table
