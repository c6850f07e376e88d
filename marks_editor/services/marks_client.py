"""HTTP client for the upstream marks API.

Loads batches for editing, lists recently uploaded batches, and submits
change-sets.  ``MarksApiClient.submit`` satisfies the
:class:`~marks_editor.services.edit_session.Persister` protocol, so a
client can be handed straight to ``EditSession.save``.

Every failure is mapped to a domain exception: load problems become
:class:`BatchLoadError`, save problems become :class:`SaveError`.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx
import pydantic

from marks_editor.config import get_settings
from marks_editor.exceptions import BatchLoadError, SaveError
from marks_editor.schemas.marks import (
    BatchDetail,
    MarksOverview,
    MarkUpdate,
    RecentBatch,
    SaveRequest,
)
from marks_editor.services.score_mutator import refresh_derived

logger = logging.getLogger(__name__)


def extract_error_detail(response: httpx.Response) -> str:
    """Pull a human-readable error message out of an error response.

    Looks at the JSON ``error`` key first, then ``detail``, then falls back
    to the raw body or the reason phrase.
    """
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        for key in ("error", "detail", "message"):
            value = data.get(key)
            if value:
                return value if isinstance(value, str) else str(value)

    text = response.text.strip()
    if text:
        return text[:500]
    return response.reason_phrase or f"HTTP {response.status_code}"


class MarksApiClient:
    """Async client for the marks endpoints.

    Args:
        http_client: Shared ``httpx.AsyncClient``; its lifetime is owned by
            the caller.
        base_url: API root; defaults to ``Settings.marks_api_base_url``.
        auth_token: Bearer token forwarded on every request, if given.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str | None = None,
        auth_token: str | None = None,
    ) -> None:
        self._client = http_client
        self.base_url: str = (base_url or get_settings().marks_api_base_url).rstrip("/")
        self._auth_token = auth_token

    def with_token(self, auth_token: str | None) -> MarksApiClient:
        """Return a client sharing the same connection pool but another token."""
        return MarksApiClient(self._client, base_url=self.base_url, auth_token=auth_token)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load_batch(
        self,
        group_key: str,
        page: int | None = None,
        page_size: int | None = None,
    ) -> BatchDetail:
        """Fetch a batch and its marks, ready to seed an edit session.

        Derived fields (``grade``, ``is_below_half``) are recomputed from
        each score so they never disagree with the batch ``max_score``.

        Raises:
            BatchLoadError: On transport errors, error statuses, or a
                malformed payload.
        """
        url = self._url(f"/marks/batch-det/{quote(group_key, safe='')}/")
        params: dict[str, Any] = {}
        if page is not None:
            params["page"] = page
        if page_size is not None:
            params["page_size"] = page_size

        logger.debug("Loading batch %s (page=%s, page_size=%s)", group_key, page, page_size)
        try:
            response = await self._client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.error("Transport error loading batch %s: %s", group_key, exc)
            raise BatchLoadError(
                f"Could not reach the marks API: {exc}", group_key=group_key
            ) from exc

        if response.is_error:
            detail = extract_error_detail(response)
            logger.warning(
                "Loading batch %s failed with HTTP %d: %s",
                group_key,
                response.status_code,
                detail,
            )
            raise BatchLoadError(
                detail, group_key=group_key, status_code=response.status_code
            )

        return self._parse_batch_detail(group_key, response)

    async def list_recent_batches(self) -> list[RecentBatch]:
        """Return the recently uploaded batches visible to the caller.

        Raises:
            BatchLoadError: If the list cannot be fetched or parsed.
        """
        url = self._url("/marks/recent/")
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise BatchLoadError(f"Could not reach the marks API: {exc}") from exc

        if response.is_error:
            raise BatchLoadError(
                extract_error_detail(response), status_code=response.status_code
            )

        try:
            data = response.json()
            rows = data["recent_batches"] if isinstance(data, dict) else data
            return [RecentBatch.model_validate(row) for row in rows]
        except (ValueError, KeyError, TypeError, pydantic.ValidationError) as exc:
            raise BatchLoadError(f"Malformed recent batches payload: {exc}") from exc

    async def get_overview(self) -> MarksOverview:
        """Return upload progress for the current term.

        Raises:
            BatchLoadError: If the overview cannot be fetched or parsed.
        """
        url = self._url("/marks/overview/")
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise BatchLoadError(f"Could not reach the marks API: {exc}") from exc

        if response.is_error:
            raise BatchLoadError(
                extract_error_detail(response), status_code=response.status_code
            )

        try:
            return MarksOverview.model_validate(response.json())
        except ValueError as exc:
            raise BatchLoadError(f"Malformed marks overview payload: {exc}") from exc

    async def submit(self, group_key: str, change_set: list[MarkUpdate]) -> None:
        """PATCH the change-set to the batch.

        Only changed rows, and within them only changed fields, are sent.
        The call is safe to repeat with the same change-set.

        Raises:
            SaveError: On timeouts, transport errors, or any error status.
        """
        url = self._url(f"/marks/batch/{quote(group_key, safe='')}/")
        payload = SaveRequest(marks=change_set).to_payload()

        try:
            response = await self._client.patch(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as exc:
            logger.error("Timed out saving batch %s", group_key)
            raise SaveError(
                "The marks API timed out; please retry", group_key=group_key
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Transport error saving batch %s: %s", group_key, exc)
            raise SaveError(
                f"Could not reach the marks API: {exc}", group_key=group_key
            ) from exc

        if response.is_error:
            detail = extract_error_detail(response)
            logger.warning(
                "Saving batch %s failed with HTTP %d: %s",
                group_key,
                response.status_code,
                detail,
            )
            raise SaveError(detail, group_key=group_key, status_code=response.status_code)

        logger.info("Submitted %d mark updates for batch %s", len(change_set), group_key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    def _parse_batch_detail(self, group_key: str, response: httpx.Response) -> BatchDetail:
        try:
            detail = BatchDetail.model_validate(response.json())
        except ValueError as exc:
            # pydantic.ValidationError is a ValueError subclass too
            logger.error("Malformed payload for batch %s: %s", group_key, exc)
            raise BatchLoadError(
                f"Malformed batch payload: {exc}", group_key=group_key
            ) from exc

        seen: set[str] = set()
        for mark in detail.marks:
            if mark.id in seen:
                raise BatchLoadError(
                    f"Malformed batch payload: duplicate mark id {mark.id!r}",
                    group_key=group_key,
                )
            seen.add(mark.id)

        max_score = detail.batch.max_score
        for mark in detail.marks:
            if mark.score is not None and not 0 <= mark.score <= max_score:
                logger.error(
                    "Batch %s mark %s has score %g outside 0..%g",
                    group_key,
                    mark.id,
                    mark.score,
                    max_score,
                )
                raise BatchLoadError(
                    f"Malformed batch payload: mark {mark.id!r} score {mark.score:g} "
                    f"is outside 0..{max_score:g}",
                    group_key=group_key,
                )

        marks = [refresh_derived(mark, max_score) for mark in detail.marks]
        logger.info(
            "Loaded batch %s: %d marks (page %d of %d)",
            group_key,
            len(marks),
            detail.pagination.page,
            detail.pagination.total_pages,
        )
        return detail.model_copy(update={"marks": marks})
