import json
from typing import Any, Dict, Optional

import pandas as pd

ALLOWED_REQUEST_KW = {
    "headers",
    "timeout",
    "verify",
    "auth",
    "proxies",
    "stream",
    "allow_redirects",
}


def whitelist_request_opts(opts: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (opts or {}).items() if k in ALLOWED_REQUEST_KW}


def dig(obj: Any, path: Optional[str]):
    if not path:
        return None
    cur = obj
    for key in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
        if cur is None:
            return None
    return cur


def response_keys(obj: Any) -> str:
    return ",".join(obj.keys()) if isinstance(obj, dict) else ""


def bind_name(position: int, index: int) -> str:
    # positional, so columns that differ only in punctuation never collide
    return f"c{position}_{index}"


def to_bind_value(v: Any) -> Any:
    """Coerce a response value into something a DB-API driver accepts."""
    if isinstance(v, (dict, list, tuple)):
        return json.dumps(v, default=str, ensure_ascii=False)
    if v is None or pd.isna(v):
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    return str(v)
