import re
from typing import Any, List, Mapping, Tuple
from urllib.parse import urlencode

REMAINING = "^REMAINING"
REMAINING_MACRO = "${" + REMAINING + "}"

_MACRO_RE = re.compile(r"\$\{([^}]+)\}")


def substitute_variables(
    template: Any, variables: Mapping[str, Any]
) -> Tuple[Any, List[str]]:
    """
    Replace ``${NAME}`` tokens with values from ``variables``.

    Returns the expanded string and the keys that were substituted, in order
    of first use. Unknown tokens are left as-is; non-strings pass through.
    """
    if not isinstance(template, str):
        return template, []
    used: List[str] = []

    def repl(m):
        key = m.group(1)
        if key not in variables:
            return m.group(0)
        if key not in used:
            used.append(key)
        value = variables[key]
        return "" if value is None else str(value)

    return _MACRO_RE.sub(repl, template), used


def encode_pairs(pairs: Mapping[str, Any]) -> str:
    return urlencode(
        [(k, "" if v is None else v) for k, v in pairs.items()]
    )


def substitute(
    template: str, variables: Mapping[str, Any]
) -> Tuple[str, List[str]]:
    """
    Macro-substitute ``template`` and expand ``${^REMAINING}`` into the
    url-encoded pairs of every variable the template did not consume.
    """
    expanded, used = substitute_variables(template, variables)
    if REMAINING_MACRO in expanded:
        remaining = {k: v for k, v in variables.items() if k not in used}
        expanded = expanded.replace(REMAINING_MACRO, encode_pairs(remaining))
    return expanded, used
