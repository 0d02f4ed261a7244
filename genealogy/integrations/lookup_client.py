"""
Person-lookup service client with caching, rate limiting and retry logic.

This module provides:
- Identifier lookups and mother/father name searches
- Input validation before any network call
- A shared per-minute request budget
- Fixed-delay retries for upstream 5xx responses only
- Cache-first reads, an advisory per-identifier lock and relative warm-up
"""

import httpx
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from pydantic import ValidationError

from schemas.records import ParentRole, PersonRecord, ParentSearchRecord
from genealogy.identifiers import clean_identifier, is_valid_identifier
from genealogy.integrations.lookup_cache import LookupCache
from genealogy.integrations.rate_limiter import SlidingWindowRateLimiter
from core.exceptions import InvalidInputError, UpstreamError, NoResponseError

logger = logging.getLogger(__name__)

MIN_PARENT_NAME_LENGTH = 3


class PersonLookupClient:
    """
    Client for the external person-lookup service.

    Features:
    - Cache consulted before every request, results cached after
    - Concurrent lookups of one identifier coordinated through a lock
    - Relatives of a fetched person queued for cache warm-up
    - 5xx responses retried with a fixed delay, everything else raised at once

    Attributes:
        max_retries: Retries after the first attempt for 5xx responses (default: 3)
        retry_delay: Delay between retries in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 30.0)
        lock_wait: Seconds to wait for another holder of the identifier lock (default: 2.0)
    """

    def __init__(
        self,
        base_url: str,
        identifier_token: Optional[str] = None,
        parent_token: Optional[str] = None,
        cache: Optional[LookupCache] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        lock_wait: float = 2.0,
        user_agent: str = "GenealogyDiscovery/1.0",
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.base_url = base_url
        self.identifier_token = identifier_token
        self.parent_token = parent_token or identifier_token
        self.cache = cache if cache is not None else LookupCache()
        self.rate_limiter = rate_limiter if rate_limiter is not None else SlidingWindowRateLimiter()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.lock_wait = lock_wait
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent, "Accept": "application/json"}
        )
        self.requests_made = 0

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def lookup_by_identifier(self, identifier: str) -> PersonRecord:
        """
        Fetch the full record of one person.

        Raises:
            InvalidInputError: Identifier fails length or check-digit validation
            UpstreamError: The service answered with an error or a malformed body
            NoResponseError: The service could not be reached
        """
        digits = clean_identifier(identifier)
        if not is_valid_identifier(digits):
            raise InvalidInputError(
                "Invalid national identifier",
                context={"field": "identifier", "value": identifier}
            )

        cached = await self.cache.get_identifier(digits)
        if cached is not None:
            return cached

        locked = await self.cache.try_lock(digits)
        if not locked:
            logger.info(f"Identifier {digits} is being fetched elsewhere, waiting {self.lock_wait}s")
            await self._sleep(self.lock_wait)
            cached = await self.cache.get_identifier(digits)
            if cached is not None:
                return cached

        try:
            payload = await self._request({"token": self.identifier_token, "cpf": digits})
            record = self._parse_person(payload, digits)
            await self.cache.set_identifier(digits, record)
            await self._warm_relatives(record)
            return record
        finally:
            if locked:
                await self.cache.release(digits)

    async def lookup_by_parent_name(self, role: ParentRole, name: str) -> List[ParentSearchRecord]:
        """
        List people whose mother (or father) has the given name.

        Raises:
            InvalidInputError: Name shorter than three characters
            UpstreamError: The service answered with an error or a malformed body
            NoResponseError: The service could not be reached
        """
        normalized = " ".join((name or "").split()).upper()
        if len(normalized) < MIN_PARENT_NAME_LENGTH:
            raise InvalidInputError(
                f"Parent name must have at least {MIN_PARENT_NAME_LENGTH} characters",
                context={"field": f"{role.value}_name", "value": name}
            )

        cached = await self.cache.get_parent_search(role, normalized)
        if cached is not None:
            return cached

        payload = await self._request({"token": self.parent_token, role.value: normalized})
        rows = self._parse_search(payload, role)
        await self.cache.set_parent_search(role, normalized, rows)
        return rows

    async def lookup_by_mother_name(self, name: str) -> List[ParentSearchRecord]:
        return await self.lookup_by_parent_name(ParentRole.MOTHER, name)

    async def lookup_by_father_name(self, name: str) -> List[ParentSearchRecord]:
        return await self.lookup_by_parent_name(ParentRole.FATHER, name)

    async def prefetch_next(self) -> Optional[PersonRecord]:
        """Fetch the next identifier waiting in the warm-up queue, if any"""
        identifier = await self.cache.dequeue_priority()
        if identifier is None:
            return None
        if await self.cache.has_identifier(identifier):
            return None
        return await self.lookup_by_identifier(identifier)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _request(self, params: Dict[str, Any]) -> Any:
        response = await self._make_request_with_retry(params)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                "Invalid response format",
                context={"url": self.base_url, "response_body": response.text[:500]},
                original_exception=e
            )

    async def _make_request_with_retry(self, params: Dict[str, Any]) -> httpx.Response:
        """
        Make the request, retrying only 5xx responses.

        Raises:
            UpstreamError: For 4xx responses, or 5xx after all retries
            NoResponseError: For timeouts and connection failures
        """
        for attempt in range(self.max_retries + 1):
            await self.rate_limiter.acquire()
            try:
                logger.debug(f"Request attempt {attempt + 1}/{self.max_retries + 1} to {self.base_url}")
                self.requests_made += 1
                response = await self._client.get(self.base_url, params=params, timeout=self.timeout)
            except httpx.RequestError as e:
                raise NoResponseError(
                    "No response received from lookup service",
                    context={"url": self.base_url, "retry_count": attempt},
                    original_exception=e
                )

            if response.status_code >= 500:
                if attempt < self.max_retries:
                    logger.warning(
                        f"Server error {response.status_code}. "
                        f"Retrying in {self.retry_delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await self._sleep(self.retry_delay)
                    continue
                raise UpstreamError(
                    f"Lookup service error after {self.max_retries} retries",
                    context={
                        "url": self.base_url,
                        "retry_count": attempt,
                        "response_body": response.text[:500]
                    },
                    status_code=response.status_code
                )

            if response.status_code >= 400:
                upstream_message = self._error_message(response)
                raise UpstreamError(
                    f"Lookup service error: {upstream_message or response.reason_phrase}",
                    context={"url": self.base_url, "upstream_message": upstream_message},
                    status_code=response.status_code
                )

            return response

        # range() always runs at least once and every branch returns or raises
        raise UpstreamError("Max retries exceeded", context={"url": self.base_url})

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            message = body.get("error") or body.get("message")
            return str(message) if message else None
        return None

    def _parse_person(self, payload: Any, identifier: str) -> PersonRecord:
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            raise UpstreamError(
                f"Lookup service error: {payload['error']}",
                context={"identifier": identifier, "upstream_message": payload["error"]}
            )
        if isinstance(payload, list) and len(payload) == 1:
            payload = payload[0]
        if not isinstance(payload, dict):
            raise UpstreamError("Invalid response format", context={"identifier": identifier})
        try:
            return PersonRecord.model_validate(payload)
        except ValidationError as e:
            raise UpstreamError(
                "Invalid response format",
                context={"identifier": identifier, "validation_errors": e.error_count()},
                original_exception=e
            )

    def _parse_search(self, payload: Any, role: ParentRole) -> List[ParentSearchRecord]:
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            raise UpstreamError(
                f"Lookup service error: {payload['error']}",
                context={"role": role.value, "upstream_message": payload["error"]}
            )
        if not isinstance(payload, list):
            raise UpstreamError("Invalid response format", context={"role": role.value})
        try:
            return [ParentSearchRecord.model_validate(item) for item in payload]
        except (ValidationError, TypeError) as e:
            raise UpstreamError(
                "Invalid response format",
                context={"role": role.value},
                original_exception=e
            )

    async def _warm_relatives(self, record: PersonRecord) -> None:
        queued = 0
        for relative in record.relatives:
            digits = clean_identifier(relative.identifier)
            if not is_valid_identifier(digits):
                continue
            if await self.cache.has_identifier(digits):
                continue
            await self.cache.enqueue_priority(digits)
            queued += 1
        if queued:
            logger.debug(f"Queued {queued} relatives of {record.identifier} for cache warm-up")
