"""
Async client for the SACCO backend REST API.
Every call is scoped to the member's session; the workflow services depend on the
``SaccoBackend`` protocol so they can be exercised against an in-memory fake.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from config import settings
from schemas.eligibility import EligibilitySnapshot
from schemas.guarantor import GuarantorCandidate
from schemas.loan import LoanDraft
from schemas.session import MemberSession

logger = logging.getLogger(__name__)

MSG_RATE_LIMITED = "Rate limit exceeded. Please try again later."
MSG_INVALID_RESPONSE = "Invalid response from server"


class SaccoApiError(Exception):
    """Network or server failure talking to the SACCO backend. Always retryable by the user."""

    def __init__(self, message: str, status_code: int | None = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data


class SaccoBackend(Protocol):
    async def check_eligibility(self, session: MemberSession) -> EligibilitySnapshot: ...

    async def list_eligible_guarantors(self, session: MemberSession, amount: float) -> list[GuarantorCandidate]: ...

    async def create_loan_application(self, session: MemberSession, draft: LoanDraft) -> str: ...

    async def create_guarantor_request(
        self,
        session: MemberSession,
        application_id: str,
        guarantor_id: str,
        percentage: float,
        message: str,
    ) -> dict[str, Any]: ...


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    """Pick the most specific message the backend returned: error, then detail, then the status."""
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = response.json()
        except ValueError:
            return f"Error {response.status_code}", None
        if isinstance(data, dict):
            message = data.get("error") or data.get("detail")
            if isinstance(message, str) and message:
                return message, data
        return f"Error {response.status_code}", data
    text = response.text.strip()
    return (text or f"Error {response.status_code}"), text


class SaccoClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url or settings.sacco_api_url, transport=transport)
        self.max_retries = settings.request_max_retries if max_retries is None else max_retries
        self.retry_base_delay = settings.request_retry_base_delay if retry_base_delay is None else retry_base_delay

    async def __aenter__(self) -> "SaccoClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, session: MemberSession, **kwargs: Any) -> Any:
        headers = {"Authorization": session.authorization, **kwargs.pop("headers", {})}
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, path, headers=headers, **kwargs)
            except httpx.HTTPError as e:
                logger.error("Network error for %s %s: %s", method, path, e)
                raise SaccoApiError(f"Network error: {e}") from e

            if response.status_code == 429:
                if attempt >= self.max_retries:
                    logger.error("Max retries (%d) exceeded for %s %s", self.max_retries, method, path)
                    raise SaccoApiError(MSG_RATE_LIMITED, status_code=429)
                delay = self.retry_base_delay * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "Rate limit hit on %s (attempt %d/%d); retrying in %.1fs",
                    path, attempt, self.max_retries, delay,
                )
                await asyncio.sleep(delay)
                continue

            if response.is_success:
                if "application/json" not in response.headers.get("content-type", ""):
                    return response.text
                try:
                    return response.json()
                except ValueError as e:
                    logger.error("Undecodable JSON from %s %s: %s", method, path, e)
                    raise SaccoApiError(MSG_INVALID_RESPONSE, status_code=response.status_code) from e

            message, data = _error_message(response)
            logger.error("API error from %s %s: %s %s", method, path, response.status_code, message)
            raise SaccoApiError(message, status_code=response.status_code, data=data)

    async def check_eligibility(self, session: MemberSession) -> EligibilitySnapshot:
        data = await self._request("GET", "/loans/eligibility/", session)
        try:
            return EligibilitySnapshot.model_validate(data)
        except ValidationError as e:
            logger.error("Malformed eligibility payload: %s", e)
            raise SaccoApiError(MSG_INVALID_RESPONSE, data=data) from e

    async def list_eligible_guarantors(self, session: MemberSession, amount: float) -> list[GuarantorCandidate]:
        data = await self._request("GET", "/loans/guarantors/eligible/", session, params={"amount": amount})
        # DRF pagination wraps lists in {"results": [...]}
        if isinstance(data, dict):
            data = data.get("results") or []
        if not isinstance(data, list):
            raise SaccoApiError(MSG_INVALID_RESPONSE, data=data)
        try:
            return [GuarantorCandidate.model_validate(c) for c in data]
        except ValidationError as e:
            logger.error("Malformed guarantor list payload: %s", e)
            raise SaccoApiError(MSG_INVALID_RESPONSE, data=data) from e

    async def create_loan_application(self, session: MemberSession, draft: LoanDraft) -> str:
        payload = draft.to_payload()
        doc = draft.supporting_document
        if doc is not None:
            form = {k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in payload.items()}
            files = {"application_document": (doc.filename, doc.content, doc.content_type)}
            data = await self._request("POST", "/loans/applications/", session, data=form, files=files)
        else:
            data = await self._request("POST", "/loans/applications/", session, json=payload)
        application_id = data.get("id") if isinstance(data, dict) else None
        if application_id is None:
            raise SaccoApiError("Loan application was not acknowledged with an id", data=data)
        return str(application_id)

    async def create_guarantor_request(
        self,
        session: MemberSession,
        application_id: str,
        guarantor_id: str,
        percentage: float,
        message: str,
    ) -> dict[str, Any]:
        data = await self._request(
            "POST",
            "/loans/guarantor-requests/",
            session,
            json={
                "loan_application": application_id,
                "guarantor": guarantor_id,
                "guarantee_percentage": percentage,
                "message": message,
            },
        )
        return data if isinstance(data, dict) else {}
