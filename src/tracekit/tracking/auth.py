"""Credentials for the tracking server and the login/logout flow.

Credentials resolve from explicit arguments, then environment variables, then
the per-host credentials file (~/.tracekit/credentials.json by default).
"""

from __future__ import annotations

import base64
import logging
import os
from pathlib import Path
from typing import Any, Self

import httpx
import orjson
from pydantic import BaseModel, ConfigDict, SecretStr, model_validator

from tracekit.foundation.config import get_settings
from tracekit.foundation.errors import ErrorCode, JsonDict, TracingException, code_for_status

logger = logging.getLogger("tracekit.tracking")

WHOAMI_PATH = "/api/2.0/tracekit/auth/whoami"


class Credentials(BaseModel):
    """Auth material for one tracking server host. Token (Bearer) or username/password (Basic)."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")

    host: str
    token: SecretStr | None = None
    username: str | None = None
    password: SecretStr | None = None

    @model_validator(mode="after")
    def _check_exclusive(self) -> Self:
        if self.token is not None and self.password is not None:
            raise ValueError("Use either a token or username/password, not both")
        if (self.username is None) != (self.password is None):
            raise ValueError("username and password must be given together")
        return self

    @property
    def is_anonymous(self) -> bool:
        return self.token is None and self.password is None

    def auth_headers(self) -> dict[str, str]:
        if self.token is not None:
            return {"Authorization": f"Bearer {self.token.get_secret_value()}"}
        if self.username is not None and self.password is not None:
            raw = f"{self.username}:{self.password.get_secret_value()}".encode()
            return {"Authorization": f"Basic {base64.b64encode(raw).decode()}"}
        return {}

    def to_file_entry(self) -> JsonDict:
        entry: JsonDict = {}
        if self.token is not None:
            entry["token"] = self.token.get_secret_value()
        if self.username is not None and self.password is not None:
            entry["username"] = self.username
            entry["password"] = self.password.get_secret_value()
        return entry


def _normalize_host(host: str) -> str:
    return host.rstrip("/")


def credentials_path() -> Path:
    return get_settings().tracking.credentials_path


def _read_file(path: Path) -> dict[str, JsonDict]:
    if not path.exists():
        return {}
    try:
        data = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise TracingException.create("read_credentials", f"Corrupt credentials file {path}: {e}",
                                      ErrorCode.PARSE_ERROR) from e
    return data if isinstance(data, dict) else {}


def _write_file(path: Path, data: dict[str, JsonDict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))
    os.replace(tmp, path)


def read_credentials(host: str) -> Credentials | None:
    """Stored credentials for `host`, or None."""
    entry = _read_file(credentials_path()).get(_normalize_host(host))
    return Credentials(host=_normalize_host(host), **entry) if entry else None


def save_credentials(creds: Credentials) -> Path:
    """Persist credentials for their host (file mode 0600). Returns the file path."""
    path = credentials_path()
    data = _read_file(path)
    data[_normalize_host(creds.host)] = creds.to_file_entry()
    _write_file(path, data)
    return path


def resolve_credentials(
    host: str,
    token: str | None = None,
    username: str | None = None,
    password: str | None = None,
) -> Credentials:
    """Explicit arguments win, then TRACEKIT_TRACKING_* settings, then the credentials file."""
    host = _normalize_host(host)
    if token or username or password:
        return Credentials(host=host, token=token, username=username, password=password)
    s = get_settings().tracking
    if s.token is not None or s.password is not None:
        username = s.username if s.password is not None else None
        return Credentials(host=host, token=s.token, username=username, password=s.password)
    return read_credentials(host) or Credentials(host=host)


def login(
    host: str,
    token: str | None = None,
    username: str | None = None,
    password: str | None = None,
    *,
    save: bool = True,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any]:
    """Verify credentials against the tracking server, store them, and make `host` the tracking URI.

    Returns the server's user info.

    Raises:
        TracingException: API_KEY_MISSING with no credentials, API_KEY_INVALID on 401,
            other codes per HTTP status / transport failure
    """
    from tracekit.autolog import suppress_tracing

    from .client import set_tracking_uri

    creds = resolve_credentials(host, token=token, username=username, password=password)
    if creds.is_anonymous:
        raise TracingException.create("login", f"No credentials provided or stored for {creds.host}",
                                      ErrorCode.API_KEY_MISSING)
    settings = get_settings().tracking
    try:
        with suppress_tracing(), httpx.Client(timeout=settings.timeout, verify=settings.verify_ssl, transport=transport) as http:
            resp = http.get(f"{creds.host}{WHOAMI_PATH}", headers=creds.auth_headers())
    except httpx.TimeoutException as e:
        raise TracingException.create("login", f"Login timed out: {e}", ErrorCode.TIMEOUT) from e
    except httpx.TransportError as e:
        raise TracingException.create("login", f"Cannot reach {creds.host}: {e}", ErrorCode.NETWORK_ERROR) from e
    if resp.is_error:
        raise TracingException.create("login", f"Login to {creds.host} failed (HTTP {resp.status_code})",
                                      code_for_status(resp.status_code), details=resp.text or None)
    user: dict[str, Any] = resp.json() if resp.content else {}
    if save:
        path = save_credentials(creds)
        logger.info("saved credentials for %s to %s", creds.host, path)
    set_tracking_uri(creds.host)
    return user


def logout(host: str) -> bool:
    """Forget stored credentials for `host`. Returns whether an entry was removed."""
    path = credentials_path()
    data = _read_file(path)
    if data.pop(_normalize_host(host), None) is None:
        return False
    _write_file(path, data)
    return True
