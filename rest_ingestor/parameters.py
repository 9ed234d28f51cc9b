from typing import Any, Dict, Mapping, Optional

from rest_ingestor.directives import RuleSet, apply_directives
from rest_ingestor.errors import ConfigurationError, DirectiveError
from rest_ingestor.macros import encode_pairs, substitute


def build_query_string(
    parameters: Mapping[str, Any],
    directive_table: Optional[Mapping[str, RuleSet]],
    format_template: Optional[str],
    log,
) -> Optional[str]:
    """
    Returns the string appended to the endpoint base url, or None when a
    parameter failed its directives and this request should be skipped.
    """
    if not parameters and not format_template:
        return ""

    processed: Dict[str, Any] = dict(parameters)
    for name, rules in (directive_table or {}).items():
        if name not in processed or processed[name] is None:
            continue
        try:
            processed[name] = apply_directives(processed[name], rules)
        except DirectiveError as e:
            log.error(
                f"[parameters] Parameter '{name}' ({processed[name]}) failed processing directives, skipping: {e}"
            )
            return None

    if format_template:
        query, _ = substitute(format_template, processed)
        return query
    return "?" + encode_pairs(processed)


class ParameterBuilder:
    """Holds the live request parameters and points the endpoint at them."""

    def __init__(
        self,
        endpoint,
        directive_table: Optional[Mapping[str, RuleSet]] = None,
        format_template: Optional[str] = None,
        log=None,
    ):
        self.endpoint = endpoint
        self.directive_table = dict(directive_table or {})
        self.format_template = format_template
        self.log = log
        self.parameters: Dict[str, Any] = {}

    def set_parameter(self, name: str, value: Any) -> "ParameterBuilder":
        if not name:
            raise ConfigurationError("REST parameter name not provided")
        self.parameters[name] = value
        return self

    def set_parameters(self, values: Mapping[str, Any]) -> "ParameterBuilder":
        for name, value in values.items():
            self.set_parameter(name, value)
        return self

    def build(self) -> Optional[str]:
        query = build_query_string(
            self.parameters, self.directive_table, self.format_template, self.log
        )
        if query is None:
            return None
        url = self.endpoint.base_url + query
        self.endpoint.set_target_url(url)
        return url
