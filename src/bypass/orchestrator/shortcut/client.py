"""Shortcut REST API (v3) client.

Wraps a `requests.Session` so HTTP stays out of the batch engine and tests can
inject a fake session. Every request goes through the retry policy in
`bypass.orchestrator.shortcut.retry`.

Create calls are NOT idempotent on the server side. If a request succeeds
remotely but the response is lost (timeout, reset connection), the retry may
create a duplicate. This is an accepted limitation; each such retry is logged
at WARNING so it is visible in the run's logs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from bypass import __version__
from bypass.orchestrator.config import DEFAULT_BASE_URL
from bypass.orchestrator.errors import (
    NetworkFailure,
    RateLimitedOrUnavailable,
    SubmissionRejected,
)
from bypass.orchestrator.models import CreatedResource, ResourceKind, ResourceRecord
from bypass.orchestrator.resolver import WorkspaceDirectory
from bypass.orchestrator.shortcut.retry import (
    DEFAULT_RETRY_POLICY,
    RETRYABLE_EXCEPTIONS,
    RetryPolicy,
    TransientResponse,
    is_retryable_status,
)

logger = logging.getLogger(__name__)

_CREATE_PATHS: dict[ResourceKind, str] = {
    ResourceKind.OBJECTIVE: "objectives",
    ResourceKind.EPIC: "epics",
    ResourceKind.STORY: "stories",
}


def _labels_param(names: tuple[str, ...]) -> list[dict[str, str]] | None:
    return [{"name": n} for n in names] if names else None


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop unset optional fields; the API treats absent and null differently."""

    return {key: value for key, value in payload.items() if value is not None}


def objective_payload(record: ResourceRecord) -> dict[str, Any]:
    resource = record.resource
    return _compact(
        {
            "name": resource.name,
            "description": record.description,
            "state": resource.state,
        }
    )


def epic_payload(record: ResourceRecord) -> dict[str, Any]:
    resource = record.resource
    objective_id = record.parent_id
    return _compact(
        {
            "name": resource.name,
            "description": record.description,
            "state": resource.state,
            "objective_ids": [objective_id] if objective_id is not None else None,
            "owner_ids": list(record.owner_ids) or None,
            "group_ids": list(record.group_ids) or None,
            "labels": _labels_param(resource.labels),
            "planned_start_date": resource.start_date,
            "deadline": resource.deadline,
        }
    )


def story_payload(record: ResourceRecord) -> dict[str, Any]:
    resource = record.resource
    return _compact(
        {
            "name": resource.name,
            "story_type": resource.story_type,
            "description": record.description,
            "owner_ids": list(record.owner_ids) or None,
            "group_id": record.group_ids[0] if record.group_ids else None,
            "epic_id": record.parent_id,
            "workflow_state_id": record.workflow_state_id,
            "labels": _labels_param(resource.labels),
            "estimate": record.estimate,
            "deadline": resource.due_date,
        }
    )


_PAYLOAD_BUILDERS: dict[ResourceKind, Callable[[ResourceRecord], dict[str, Any]]] = {
    ResourceKind.OBJECTIVE: objective_payload,
    ResourceKind.EPIC: epic_payload,
    ResourceKind.STORY: story_payload,
}


class ShortcutClient:
    """Small wrapper around the Shortcut REST endpoints this tool needs."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        if not token:
            raise ValueError("Shortcut API token is required")

        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._policy = retry_policy
        self._sleep = sleep
        self._headers = {
            "Shortcut-Token": token,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"bypass-cli/{__version__}",
        }

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # Retrying request path
    # ------------------------------------------------------------------

    def _send_once(self, method: str, url: str, payload: dict[str, Any] | None) -> requests.Response:
        resp = self._session.request(
            method, url, json=payload, headers=self._headers, timeout=self._timeout
        )
        if is_retryable_status(resp.status_code):
            raise TransientResponse(resp)
        return resp

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
        if isinstance(exc, TransientResponse):
            return self._policy.backoff_delay(
                retry_state.attempt_number - 1, status=exc.status, retry_after=exc.retry_after
            )
        return self._policy.backoff_delay(retry_state.attempt_number - 1)

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action is not None else None
        if isinstance(exc, TransientResponse):
            logger.info(
                "Retryable response from Shortcut API",
                extra={"status": exc.status, "attempt": retry_state.attempt_number, "delay": delay},
            )
            return
        # The failed request may have been applied remotely; a retry can duplicate it.
        logger.warning(
            "Network error talking to Shortcut API; retrying (may create a duplicate)",
            extra={"error": str(exc), "attempt": retry_state.attempt_number, "delay": delay},
        )

    def _request(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> requests.Response:
        retrying_kwargs: dict[str, Any] = {
            "stop": stop_after_attempt(self._policy.max_attempts),
            "wait": self._wait,
            "retry": retry_if_exception_type((TransientResponse, *RETRYABLE_EXCEPTIONS)),
            "before_sleep": self._log_retry,
            "reraise": True,
        }
        if self._sleep is not None:
            retrying_kwargs["sleep"] = self._sleep
        retrying = Retrying(**retrying_kwargs)

        url = self._url(path)
        try:
            return retrying(self._send_once, method, url, payload)
        except TransientResponse as exc:
            raise RateLimitedOrUnavailable(
                status=exc.status, attempts=self._policy.max_attempts
            ) from exc
        except RETRYABLE_EXCEPTIONS as exc:
            raise NetworkFailure(attempts=self._policy.max_attempts, cause=exc) from exc
        except requests.RequestException as exc:
            raise NetworkFailure(attempts=1, cause=exc) from exc

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        body = resp.text or ""
        try:
            data = resp.json()
        except ValueError:
            return body
        if isinstance(data, dict):
            message = data.get("message")
            if isinstance(message, str) and message.strip():
                return message
        return body

    def _json(self, resp: requests.Response) -> Any:
        if not 200 <= resp.status_code < 300:
            raise SubmissionRejected(status=resp.status_code, message=self._error_message(resp))
        try:
            return resp.json()
        except ValueError as exc:
            raise SubmissionRejected(
                status=resp.status_code, message=f"malformed response body: {exc}"
            ) from exc

    def _get_list(self, path: str) -> list[dict[str, Any]]:
        resp = self._request("GET", path)
        data = self._json(resp)
        if not isinstance(data, list):
            raise SubmissionRejected(
                status=resp.status_code, message=f"expected a JSON list from /{path}"
            )
        return [item for item in data if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # Read endpoints (workspace name resolution)
    # ------------------------------------------------------------------

    def list_members(self) -> list[dict[str, Any]]:
        return self._get_list("members")

    def list_groups(self) -> list[dict[str, Any]]:
        return self._get_list("groups")

    def list_workflows(self) -> list[dict[str, Any]]:
        return self._get_list("workflows")

    def fetch_workspace_directory(self) -> WorkspaceDirectory:
        return WorkspaceDirectory.from_api(
            members=self.list_members(),
            groups=self.list_groups(),
            workflows=self.list_workflows(),
        )

    # ------------------------------------------------------------------
    # Create endpoints
    # ------------------------------------------------------------------

    def submit(self, record: ResourceRecord) -> CreatedResource:
        """Create one resource and return its remote identifier and URL.

        Raises:
            SubmissionRejected: non-retryable status or malformed body.
            RateLimitedOrUnavailable: retryable statuses through every attempt.
            NetworkFailure: transport errors through every attempt.
        """

        kind = record.kind
        payload = _PAYLOAD_BUILDERS[kind](record)
        resp = self._request("POST", _CREATE_PATHS[kind], payload)
        data = self._json(resp)

        identifier = data.get("id") if isinstance(data, dict) else None
        if not isinstance(identifier, int) or isinstance(identifier, bool):
            raise SubmissionRejected(
                status=resp.status_code, message=f"create {kind.value} response is missing 'id'"
            )
        name = data.get("name")
        url = data.get("app_url")

        created = CreatedResource(
            kind=kind,
            identifier=identifier,
            name=name if isinstance(name, str) and name else record.name,
            url=url if isinstance(url, str) and url.strip() else None,
        )
        logger.info(
            "Resource created",
            extra={"kind": kind.value, "id": created.identifier, "resource_name": created.name},
        )
        return created

    def close(self) -> None:
        self._session.close()
