import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from rest_ingestor.errors import ConfigurationError

_ENV_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Defaults for rest_response; any of them can be overridden or disabled with null.
DEFAULT_RESPONSE_LAYOUT: Dict[str, Any] = {
    # Optional top-level entry point into the result, e.g. "response".
    "response": None,
    "count": "count",
    "results": "results",
    "next": "next",
    "prev": "previous",
    "error": None,
}


@dataclass(frozen=True)
class ResponseLayout:
    response: Optional[str] = None
    results: Optional[str] = "results"
    count: Optional[str] = "count"
    next: Optional[str] = "next"
    prev: Optional[str] = "previous"
    error: Optional[str] = None
    field_map: Optional[Dict[str, str]] = None
    drop_keys: List[str] = field(default_factory=list)

    @classmethod
    def from_config(
        cls,
        rest_response: Mapping[str, Any],
        field_map: Optional[Dict[str, str]] = None,
    ) -> "ResponseLayout":
        merged = {**DEFAULT_RESPONSE_LAYOUT, **dict(rest_response or {})}
        return cls(
            response=merged.get("response"),
            results=merged.get("results"),
            count=merged.get("count"),
            next=merged.get("next"),
            prev=merged.get("prev"),
            error=merged.get("error"),
            field_map=field_map,
            drop_keys=list(merged.get("drop_keys") or []),
        )


def expand_env_value(v: Any) -> Any:
    if isinstance(v, str):
        return _ENV_RE.sub(lambda m: os.getenv(m.group(1), m.group(0)), v)
    if isinstance(v, dict):
        return {k: expand_env_value(vv) for k, vv in v.items()}
    if isinstance(v, list):
        return [expand_env_value(x) for x in v]
    return v


def validate_definition(definition: Mapping[str, Any]) -> None:
    """Top-level checks on a single ingestor definition."""
    for key in ("rest_request", "rest_response"):
        if key not in definition:
            raise ConfigurationError(f"{key} key not found in definition file")
        if not isinstance(definition[key], Mapping):
            raise ConfigurationError(
                f"REST {key.split('_')[1]} config must be an object"
            )
    params = definition["rest_request"].get("parameters")
    if params is not None and not isinstance(params, Mapping):
        raise ConfigurationError("rest_request.parameters must be an object")
    fmap = definition["rest_response"].get("field_map")
    if fmap is not None and not isinstance(fmap, Mapping):
        raise ConfigurationError("rest_response.field_map must be an object")


def prepare(
    config: Dict[str, Any], ingestor_name: str, env_name: str
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (env_cfg, definition)."""
    env_cfg = (config.get("envs") or {}).get(env_name) or {}
    if not env_cfg.get("base_url"):
        raise ConfigurationError(
            f"env '{env_name}' must define a non-empty base_url"
        )

    ingestors_root = config.get("ingestors") or {}
    definition = ingestors_root.get(ingestor_name) or {}
    if not definition:
        raise KeyError(
            f"Ingestor config '{ingestor_name}' not found under 'ingestors'."
        )

    # request defaults: global, then env, then ingestor
    req_opts = dict(ingestors_root.get("request_defaults") or {})
    for layer in (env_cfg.get("request_defaults"), definition.get("request")):
        for k, v in (layer or {}).items():
            if k == "headers" and isinstance(v, dict):
                req_opts[k] = {**(req_opts.get(k) or {}), **v}
            else:
                req_opts[k] = v

    env_eff = dict(env_cfg)
    env_eff["request_defaults"] = req_opts
    env_eff["retries"] = (
        definition.get("retries")
        or env_cfg.get("retries")
        or ingestors_root.get("retries")
    )
    env_eff["variables"] = {
        **(ingestors_root.get("variables") or {}),
        **(env_cfg.get("variables") or {}),
    }

    env_eff = expand_env_value(env_eff)
    # rest_request holds ${NAME} parameter macros; env values reach it via
    # env "variables" instead.
    definition = {
        k: (v if k == "rest_request" else expand_env_value(v))
        for k, v in definition.items()
    }
    validate_definition(definition)
    return env_eff, definition
