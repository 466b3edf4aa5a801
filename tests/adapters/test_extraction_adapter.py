from __future__ import annotations

import asyncio
import json
import threading
from collections.abc import Callable  # noqa: TC003
from datetime import UTC, datetime
from uuid import uuid4

import httpx
import pytest

from crmflow.adapters.extraction import ExtractionServiceError, HttpExtractionService
from crmflow.adapters.extraction.schema import ExtractionResponse
from crmflow.adapters.extraction.translator import parse_extraction_result
from crmflow.adapters.http_resilience import (
    RateLimit,
    ResilienceConfig,
    ResilientClient,
    RetryPolicy,
)
from crmflow.config import ConfigurationError, MissingConfigurationError
from crmflow.config.extraction import ExtractionConfig, get_extraction_config
from crmflow.domain.model import Contact, Folder, SourceKind, Task
from crmflow.domain.ports.extraction import (
    ExtractionLookups,
    ExtractionRequest,
    ExtractionResult,
    MalformedExtractionError,
)
from tests.helpers.crm import make_contact

REQUEST = ExtractionRequest(
    kind=SourceKind.EMAIL,
    subject="Pilot kickoff",
    body="Let's start the pilot next week. Bob will join.",
    sender_email="jane@acme.test",
    sender_name="Jane Doe",
    recipient="me@crm.test",
    received_at=datetime(2024, 5, 1, 9, tzinfo=UTC),
    folder=Folder.INBOX,
)


def _config() -> ExtractionConfig:
    return ExtractionConfig(
        base_url="https://extract.test/api",
        api_key="secret-key",
        resilience=ResilienceConfig(name="extraction-test", retry=RetryPolicy(total=0)),
    )


def _make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[ResilienceConfig], ResilientClient]:
    def factory(resilience: ResilienceConfig) -> ResilientClient:
        return ResilientClient(resilience, transport=httpx.MockTransport(handler))

    return factory


def _lookups() -> ExtractionLookups:
    contact = make_contact()
    task = Task(title="Send deck", contact_emails=["jane@acme.test"])
    return ExtractionLookups(list_contacts=lambda: [contact], list_tasks=lambda: [task])


def _call(handler: Callable[[httpx.Request], httpx.Response]) -> ExtractionResult:
    service = HttpExtractionService(
        config=_config(), client_factory=_make_client_factory(handler)
    )
    return asyncio.run(service(REQUEST, lookups=_lookups()))


def test_request_carries_communication_snapshots_and_auth() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={})

    result = _call(handler)

    (request,) = captured
    assert request.method == "POST"
    assert str(request.url) == "https://extract.test/api/extract"
    assert request.headers["Authorization"] == "Bearer secret-key"
    body = json.loads(request.content)
    assert body["communication"]["subject"] == "Pilot kickoff"
    assert body["communication"]["senderEmail"] == "jane@acme.test"
    assert body["communication"]["folder"] == "inbox"
    assert body["existingContacts"][0]["email"] == "jane@acme.test"
    assert body["existingContacts"][0]["companyName"] == "Acme"
    assert body["existingTasks"][0]["contactEmails"] == ["jane@acme.test"]
    assert result == ExtractionResult()


def test_store_lookups_run_off_the_event_loop_thread() -> None:
    loop_thread = threading.get_ident()
    lookup_threads: list[int] = []
    contact = make_contact()

    def list_contacts() -> list[Contact]:
        lookup_threads.append(threading.get_ident())
        return [contact]

    def list_tasks() -> list[Task]:
        lookup_threads.append(threading.get_ident())
        return []

    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={})

    service = HttpExtractionService(
        config=_config(), client_factory=_make_client_factory(handler)
    )
    lookups = ExtractionLookups(list_contacts=list_contacts, list_tasks=list_tasks)
    asyncio.run(service(REQUEST, lookups=lookups))

    assert len(lookup_threads) == 2
    assert loop_thread not in lookup_threads
    body = json.loads(captured[0].content)
    assert body["existingContacts"][0]["email"] == "jane@acme.test"
    assert body["existingTasks"] == []


def test_response_is_translated_into_proposals() -> None:
    contact_id = str(uuid4())
    payload = {
        "newContacts": [{"name": "Bob", "email": "bob@acme.test", "companyName": " "}],
        "contactUpdates": [
            {
                "existingContactId": contact_id,
                "changes": [{"field": "title", "oldValue": None, "newValue": "CTO"}],
            }
        ],
        "newTasks": [{"title": "Book room", "priority": "high", "dueDate": "2024-05-08"}],
        "newDeals": [{"title": "Pilot", "amount": "$12,000", "stage": "proposal"}],
        "reasoning": "ignored",
    }

    result = _call(lambda _request: httpx.Response(200, json=payload))

    (contact,) = result.new_contacts
    assert contact.email == "bob@acme.test"
    assert contact.company_name is None
    (update,) = result.contact_updates
    assert update.existing_contact_id == contact_id
    assert update.changes[0].new_value == "CTO"
    assert result.new_tasks[0].due_date == "2024-05-08"
    assert result.new_deals[0].amount == 12000


def test_change_values_are_stringified() -> None:
    parsed = ExtractionResponse.model_validate(
        {
            "contactUpdates": [
                {"existingContactId": "x", "changes": [{"field": "phone", "newValue": 5551234}]}
            ]
        }
    )

    result = parse_extraction_result(parsed)

    assert result.contact_updates[0].changes[0].new_value == "5551234"


def test_error_payload_raises_service_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "unauthorized", "message": "Bad API key"})

    with pytest.raises(ExtractionServiceError, match="Bad API key") as excinfo:
        _call(handler)

    assert excinfo.value.status_code == 401


def test_server_error_without_json_raises_service_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream unavailable")

    with pytest.raises(ExtractionServiceError) as excinfo:
        _call(handler)

    assert excinfo.value.status_code == 503


def test_non_json_success_is_malformed() -> None:
    with pytest.raises(MalformedExtractionError):
        _call(lambda _request: httpx.Response(200, text="<html>oops</html>"))


def test_unexpected_shape_is_malformed() -> None:
    with pytest.raises(MalformedExtractionError):
        _call(lambda _request: httpx.Response(200, json={"newContacts": "none"}))


def test_transport_failure_raises_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExtractionServiceError, match="connection refused"):
        _call(handler)


def test_config_requires_url_and_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("EXTRACTION_API_URL", raising=False)
    monkeypatch.setenv("EXTRACTION_API_KEY", "secret")

    with pytest.raises(MissingConfigurationError):
        get_extraction_config()


def test_config_strips_trailing_slash(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXTRACTION_API_URL", "https://extract.test/api/")
    monkeypatch.setenv("EXTRACTION_API_KEY", "secret")

    config = get_extraction_config()

    assert config.base_url == "https://extract.test/api"
    assert config.resilience.ratelimit is not None


def test_config_reads_retry_and_rate_limit_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXTRACTION_API_URL", "https://extract.test/api")
    monkeypatch.setenv("EXTRACTION_API_KEY", "secret")
    monkeypatch.setenv("EXTRACTION_MAX_RETRIES", "0")
    monkeypatch.setenv("EXTRACTION_RATE_LIMIT", "2")

    resilience = get_extraction_config().resilience

    assert resilience.retry.total == 0
    assert resilience.ratelimit == RateLimit(max_calls=2, per_seconds=1.0)
    assert resilience.user_agent is not None
    assert resilience.user_agent.startswith("crmflow/")


def test_rate_limit_must_be_positive() -> None:
    with pytest.raises(ConfigurationError):
        RateLimit(max_calls=0, per_seconds=1.0)


def test_client_retries_transient_status() -> None:
    statuses = [503, 200]
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(statuses.pop(0), json={"ok": True})

    config = ResilienceConfig(
        name="retry-test",
        base_url="https://extract.test",
        retry=RetryPolicy(total=2, backoff_factor=0.0, backoff_jitter=0.0),
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        user_agent="crmflow/test",
    )

    async def send() -> httpx.Response:
        async with ResilientClient(config, transport=httpx.MockTransport(handler)) as client:
            return await client.post("/extract", json={})

    response = asyncio.run(send())

    assert response.status_code == 200
    assert len(seen) == 2
    assert seen[-1].headers["User-Agent"] == "crmflow/test"
