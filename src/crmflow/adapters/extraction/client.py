"""HTTP client for the extraction API."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from crmflow.adapters.http_resilience import ResilientClient
from crmflow.config.extraction import ExtractionConfig, get_extraction_config
from crmflow.domain.ports.extraction import (
    ExtractionError,
    ExtractionService,
    MalformedExtractionError,
)

from .schema import ErrorResponse, ExtractionResponse
from .translator import build_request_payload, parse_extraction_result

if TYPE_CHECKING:
    from collections.abc import Callable

    from crmflow.config.http_resilience import ResilienceConfig
    from crmflow.domain.ports.extraction import (
        ExtractionLookups,
        ExtractionRequest,
        ExtractionResult,
    )

log = getLogger(__name__)

EXTRACT_PATH = "/extract"


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


class ExtractionServiceError(ExtractionError):
    """Raised when the extraction API reports an error or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class HttpExtractionService:
    config: ExtractionConfig = field(default_factory=get_extraction_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    async def __call__(
        self,
        request: ExtractionRequest,
        *,
        lookups: ExtractionLookups,
    ) -> ExtractionResult:
        # Lookups hit the store synchronously; keep them off the event loop.
        contacts = await asyncio.to_thread(lookups.list_contacts)
        tasks = await asyncio.to_thread(lookups.list_tasks)
        payload = build_request_payload(request, contacts=contacts, tasks=tasks)
        body = payload.model_dump(mode="json", by_alias=True)

        async with self.client_factory(self.config.resilience) as client:
            try:
                response = await client.post(
                    f"{self.config.base_url}{EXTRACT_PATH}",
                    json=body,
                    headers={"Authorization": f"Bearer {self.config.api_key}"},
                )
            except httpx.HTTPError as exc:
                raise ExtractionServiceError(f"Extraction request failed: {exc}") from exc

        return self._parse_response(response)

    def _parse_response(self, response: httpx.Response) -> ExtractionResult:
        try:
            data = response.json()
        except ValueError as exc:
            if response.is_error:
                raise ExtractionServiceError(
                    f"Extraction API returned HTTP {response.status_code}",
                    status_code=response.status_code,
                ) from exc
            raise MalformedExtractionError(
                f"Extraction API returned non-JSON body (status {response.status_code})"
            ) from exc

        if isinstance(data, dict) and "error" in data:
            error_payload = ErrorResponse.model_validate(data)
            message = error_payload.message or error_payload.error
            log.error(f"Extraction API error {response.status_code}: {message}")
            raise ExtractionServiceError(message, status_code=response.status_code) from None

        if response.is_error:
            raise ExtractionServiceError(
                f"Extraction API returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            parsed = ExtractionResponse.model_validate(data)
        except ValidationError as exc:
            raise MalformedExtractionError(f"Unexpected extraction payload: {exc}") from exc
        return parse_extraction_result(parsed)


if TYPE_CHECKING:
    _service_check: ExtractionService = HttpExtractionService()
