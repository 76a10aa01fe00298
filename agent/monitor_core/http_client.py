"""
HTTP session with connection pooling, transport-level retry and CA bundle.

Transport retries only cover gateway errors (502/503/504) on a single call.
Item-level retry and offline fallback live in sync.py.
"""

import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .constants import MONITOR_VERSION

_retry_strategy = Retry(
    total=2,
    backoff_factor=1,                           # Wait 1s, 2s between retries
    status_forcelist=[502, 503, 504],
    allowed_methods=["HEAD", "GET", "POST"],
    raise_on_status=False,
)


def create_session(device_id=None):
    """Create a requests.Session with pooling, retry, CA bundle and default headers."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=4,
        max_retries=_retry_strategy,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.verify = certifi.where()
    session.headers.update({
        "Content-Type": "application/json",
        "User-Agent": f"pause-monitor/{MONITOR_VERSION}",
    })
    if device_id:
        session.headers["X-Device-ID"] = device_id
    return session


def reset_session(session, device_id=None):
    """Close and recreate the HTTP session (fixes stale connections)."""
    try:
        session.close()
    except requests.RequestException:
        pass
    return create_session(device_id)
