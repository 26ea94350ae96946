"""Tracking server access: REST client, credentials, and login."""

from .auth import Credentials, login, logout, read_credentials, resolve_credentials, save_credentials
from .client import (
    PagedList,
    TrackingClient,
    get_tracking_client,
    get_tracking_uri,
    set_tracking_uri,
)

__all__ = [
    "Credentials",
    "PagedList",
    "TrackingClient",
    "get_tracking_client",
    "get_tracking_uri",
    "login",
    "logout",
    "read_credentials",
    "resolve_credentials",
    "save_credentials",
    "set_tracking_uri",
]
