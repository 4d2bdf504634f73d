# tradesmart/session.py
from __future__ import annotations
from typing import Any, Mapping, Protocol, Union, runtime_checkable

from tradesmart.models import SessionCredentials


@runtime_checkable
class CredentialsProvider(Protocol):
    """Anything that can hand out the current session (the REST client after login, a vault, ...)."""
    def session_details(self) -> SessionCredentials: ...


class StaticCredentials:
    """Fixed session, e.g. a token captured by an earlier login and stored in .env."""
    def __init__(self, creds: SessionCredentials) -> None:
        self._creds = creds

    def session_details(self) -> SessionCredentials:
        return self._creds


def credentials_from_cfg(cfg: Mapping[str, Any]) -> SessionCredentials:
    try:
        sess = cfg["session"]
        uid = str(sess["uid"] or "").strip()
        token = str(sess["susertoken"] or "").strip()
    except KeyError as e:
        raise ValueError(f"Invalid cfg missing key: {e}") from e

    if not uid or not token:
        raise ValueError("session.uid and session.susertoken must be set (login first)")

    return SessionCredentials(uid=uid, susertoken=token, actid=str(sess.get("actid") or "").strip())


def resolve_credentials(source: Union[SessionCredentials, CredentialsProvider]) -> SessionCredentials:
    if isinstance(source, SessionCredentials):
        return source
    if isinstance(source, CredentialsProvider):
        return source.session_details()
    raise TypeError(f"expected SessionCredentials or a credentials provider, got {type(source).__name__}")
