import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from rest_ingestor.config import ResponseLayout
from rest_ingestor.errors import ConfigurationError, MalformedResponseError
from rest_ingestor.small_utils import dig, response_keys


@dataclass
class UnwrappedResponse:
    results: Optional[List[Any]] = None
    count: Any = None
    error: Any = None
    next_token: Any = None
    prev_token: Any = None

    @property
    def empty(self) -> bool:
        return self.error is None and not self.results


def drop_keys_any_depth(obj, keys: set):
    if isinstance(obj, dict):
        return {
            k: drop_keys_any_depth(v, keys)
            for k, v in obj.items()
            if k not in keys
        }
    if isinstance(obj, list):
        return [drop_keys_any_depth(v, keys) for v in obj]
    return obj


def parse_document(raw: Union[str, bytes]) -> Dict[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        doc = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(
            f"Response is not an object: {raw[:500]}"
        ) from e
    if not isinstance(doc, dict):
        raise MalformedResponseError(f"Response is not an object: {raw[:500]}")
    return doc


def _tokens(doc: Any, layout: ResponseLayout) -> Dict[str, Any]:
    return {
        "next_token": dig(doc, layout.next),
        "prev_token": dig(doc, layout.prev),
    }


def _descend(doc: Dict[str, Any], key: str, what: str, layout):
    """Return (child, error_response). Exactly one of them is set."""
    child = dig(doc, key)
    if child is not None:
        return child, None
    error = dig(doc, layout.error)
    if error is not None:
        return None, UnwrappedResponse(error=error, **_tokens(doc, layout))
    raise ConfigurationError(
        f"Configured {what} key '{key}' not found in response. "
        f"Response keys are '{response_keys(doc)}'"
    )


def unwrap(
    raw: Union[str, bytes, Dict[str, Any]], layout: ResponseLayout
) -> UnwrappedResponse:
    doc = raw if isinstance(raw, dict) else parse_document(raw)
    if layout.drop_keys:
        doc = drop_keys_any_depth(doc, set(layout.drop_keys))

    # ---------- Envelope ----------
    if layout.response:
        doc, failed = _descend(doc, layout.response, "top-level response", layout)
        if failed is not None:
            return failed

    # ---------- Results ----------
    if layout.results:
        if not isinstance(doc, dict):
            raise MalformedResponseError(
                f"Response under '{layout.response}' is not an object"
            )
        results, failed = _descend(doc, layout.results, "results", layout)
        if failed is not None:
            return failed
    else:
        results = doc

    if not isinstance(results, list):
        raise MalformedResponseError(
            f"Request results is expected to be an array. Type returned was {type(results).__name__}"
        )

    return UnwrappedResponse(
        results=results, count=dig(doc, layout.count), **_tokens(doc, layout)
    )
