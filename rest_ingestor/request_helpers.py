import traceback
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

_SENSITIVE_HEADERS = {
    "authorization",
    "x-api-key",
    "api-key",
    "proxy-authorization",
}
_SENSITIVE_PARAMS = {
    "access_token",
    "token",
    "apikey",
    "api_key",
    "authorization",
    "signature",
    "client_id",
    "client_secret",
    "refresh_token",
    "secret",
    "password",
    "private_key",
    "x-authorization",
    "auth",
}
REDACTED = "***REDACTED***"


def build_url(base_url: str, path: str) -> str:
    if not path:
        return base_url
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


def build_session(retries_cfg: Optional[Dict[str, Any]]) -> Session:
    s = Session()
    if not retries_cfg:
        return s
    total = int(retries_cfg.get("total", 3))
    r = Retry(
        total=total,
        connect=int(retries_cfg.get("connect", total)),
        read=int(retries_cfg.get("read", total)),
        backoff_factor=float(retries_cfg.get("backoff_factor", 0.5)),
        status_forcelist=tuple(
            retries_cfg.get("status_forcelist", [429, 500, 502, 503, 504])
        ),
        allowed_methods=frozenset(
            m.upper() for m in retries_cfg.get("allowed_methods", ["GET"])
        ),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=r)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


def apply_session_defaults(sess: Session, opts: Dict[str, Any]) -> None:
    if opts.get("headers"):
        sess.headers.update(opts["headers"])
    if "auth" in opts:
        sess.auth = opts["auth"]
    if opts.get("proxies"):
        sess.proxies.update(opts["proxies"])
    if "verify" in opts:
        sess.verify = opts["verify"]


def redact_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return url
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [
        (k, REDACTED if k.lower() in _SENSITIVE_PARAMS else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="*")))


def log_request(
    ctx: Dict[str, Any], url: str, opts: Dict[str, Any], prefix: str = ""
):
    log = ctx["log"]
    safe_headers = dict(opts.get("headers") or {})
    for k in list(safe_headers):
        if k.lower() in _SENSITIVE_HEADERS:
            safe_headers[k] = REDACTED
    log.info(f"{prefix}GET {redact_url(url)} headers={safe_headers}")


def log_exception(
    ctx: Dict[str, Any], url: Optional[str], e: Exception, prefix: str = ""
):
    ctx["log"].error(
        f"{prefix}Error retrieving data from {redact_url(url)}: {e}\nStack Trace: {traceback.format_exc()}"
    )
