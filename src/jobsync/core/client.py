import logging
import secrets
import string
import threading
import time
from typing import Any, Protocol

import requests

from ..config import Config
from ..errors import AuthenticationError, TransportError
from ..sync.models import ChangeEvent, PullResult, now_iso

logger = logging.getLogger(__name__)

_INVITE_ALPHABET = string.ascii_uppercase + string.digits


def generate_invite_code() -> str:
    return "INV-" + "".join(secrets.choice(_INVITE_ALPHABET) for _ in range(6))


class SyncRemote(Protocol):
    """What the sync engine and the store need from a remote."""

    def push(self, workspace_id: str, device_id: str, changes: list[ChangeEvent]) -> bool: ...

    def pull(self, workspace_id: str, since: str | None) -> PullResult: ...

    def create_workspace(self, name: str, owner_email: str) -> dict[str, Any]: ...

    def accept_invite(self, email: str, invite_code: str, device_id: str) -> dict[str, Any]: ...

    def create_invites(self, workspace_id: str, emails: list[str]) -> list[dict[str, Any]]: ...

    def list_members(self, workspace_id: str) -> list[dict[str, Any]]: ...


class HttpSyncClient:
    """JSON-over-HTTP client for the remote sync API.

    Sessions are thread-local because calls arrive through ``run_sync``
    on arbitrary worker threads.
    """

    def __init__(self, config: Config):
        if not config.api_url:
            raise ValueError("HttpSyncClient requires an API URL")
        self.config = config
        self.base_url = config.api_url.rstrip("/")
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.api_key}",
                "Accept": "application/json",
            }
        )
        session.verify = not self.config.insecure
        return session

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> requests.Response:
        """Issue one request; auth failures and network errors become typed exceptions."""
        url = f"{self.base_url}{path}"
        try:
            response = self._get_session().request(
                method,
                url,
                params=params,
                json=json,
                timeout=(10, self.config.request_timeout),
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"HTTP {response.status_code}: unauthorized ({method} {path})"
            )
        return response

    def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._send(method, path, **kwargs)
        if not response.ok:
            raise TransportError(
                f"HTTP {response.status_code} from {method} {path}: {response.text[:200]}"
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Invalid JSON from {method} {path}") from exc

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def push(self, workspace_id: str, device_id: str, changes: list[ChangeEvent]) -> bool:
        """Send outbox events. Returns False when the remote refuses them."""
        payload = {
            "workspaceId": workspace_id,
            "deviceId": device_id,
            "changes": [c.model_dump(by_alias=True, mode="json") for c in changes],
        }
        response = self._send("POST", "/push", json=payload)
        if not response.ok:
            logger.warning(
                "Push of %d change(s) rejected: HTTP %d", len(changes), response.status_code
            )
            return False
        return True

    def pull(self, workspace_id: str, since: str | None) -> PullResult:
        params = {"workspaceId": workspace_id}
        if since:
            params["since"] = since
        data = self._request_json("GET", "/pull", params=params)
        if not isinstance(data, dict):
            raise TransportError("Pull response is not an object")
        return PullResult.model_validate(data)

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    def create_workspace(self, name: str, owner_email: str) -> dict[str, Any]:
        return self._request_json(
            "POST", "/workspaces", json={"name": name, "ownerEmail": owner_email}
        )

    def accept_invite(self, email: str, invite_code: str, device_id: str) -> dict[str, Any]:
        return self._request_json(
            "POST",
            "/invites/accept",
            json={"email": email, "inviteCode": invite_code, "deviceId": device_id},
        )

    def create_invites(self, workspace_id: str, emails: list[str]) -> list[dict[str, Any]]:
        return self._request_json(
            "POST", f"/workspaces/{workspace_id}/invites", json={"emails": emails}
        ) or []

    def list_members(self, workspace_id: str) -> list[dict[str, Any]]:
        return self._request_json("GET", f"/workspaces/{workspace_id}/members") or []


class LocalOnlyClient:
    """Stand-in remote for offline mode (no API URL configured).

    Pushes are accepted and forgotten, pulls return nothing new, and
    workspace calls hand out locally generated ids.
    """

    def push(self, workspace_id: str, device_id: str, changes: list[ChangeEvent]) -> bool:
        logger.debug("Offline mode: %d change(s) kept local", len(changes))
        return True

    def pull(self, workspace_id: str, since: str | None) -> PullResult:
        return PullResult(changes=[], server_time=now_iso())

    def create_workspace(self, name: str, owner_email: str) -> dict[str, Any]:
        return {
            "workspaceId": f"ws-{int(time.time() * 1000)}",
            "inviteCode": generate_invite_code(),
        }

    def accept_invite(self, email: str, invite_code: str, device_id: str) -> dict[str, Any]:
        return {"workspaceId": f"ws-{invite_code}", "role": "member"}

    def create_invites(self, workspace_id: str, emails: list[str]) -> list[dict[str, Any]]:
        return [{"email": email, "inviteCode": generate_invite_code()} for email in emails]

    def list_members(self, workspace_id: str) -> list[dict[str, Any]]:
        return []


def create_client(config: Config) -> SyncRemote:
    """HTTP client when a remote is configured, otherwise offline mode."""
    if config.remote_enabled:
        logger.info("Remote sync enabled: %s", config.api_url)
        return HttpSyncClient(config)
    logger.info("No remote configured, running offline")
    return LocalOnlyClient()
