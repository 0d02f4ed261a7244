"""
Wiring of the discovery services from settings.

Components never read settings themselves; everything configurable is
passed in here.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings, Settings
from genealogy.discovery.identifier_discovery import IdentifierDiscovery
from genealogy.discovery.person_aggregator import PersonAggregator
from genealogy.imports.full_tree import FullTreeImport
from genealogy.imports.single_discovery import PersonDiscovery
from genealogy.integrations.lookup_cache import LookupCache
from genealogy.integrations.lookup_client import PersonLookupClient
from genealogy.integrations.rate_limiter import SlidingWindowRateLimiter
from genealogy.jobs import RetryPolicy
from genealogy.relationships import RelationshipInference
from genealogy.transformers.record_mapper import RecordMapper
from genealogy.validators.date_validator import DateValidator
from genealogy.validators.name_matcher import NameMatcher
from genealogy.validators.sibling_validator import SiblingValidator
from repositories.contracts import ImportsRepository, PeopleRepository, RelationshipsRepository
from repositories.people import PeopleRepository as SQLPeopleRepository
from repositories.relationships import RelationshipsRepository as SQLRelationshipsRepository
from repositories.imports import ImportsRepository as SQLImportsRepository
from repositories.memory import (
    InMemoryImportsRepository,
    InMemoryPeopleRepository,
    InMemoryRelationshipsRepository,
)


@dataclass
class GenealogyServices:
    client: PersonLookupClient
    people: PeopleRepository
    relationships: RelationshipsRepository
    imports: ImportsRepository
    aggregator: PersonAggregator
    single: PersonDiscovery
    full_tree: FullTreeImport


def build_cache(config: Optional[Settings] = None) -> LookupCache:
    config = config or settings
    return LookupCache(
        identifier_ttl=config.CACHE_IDENTIFIER_TTL,
        parent_search_ttl=config.CACHE_PARENT_SEARCH_TTL,
        lock_ttl=config.CACHE_LOCK_TTL,
    )


def build_lookup_client(
    config: Optional[Settings] = None,
    cache: Optional[LookupCache] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> PersonLookupClient:
    """One client per process; its rate limiter is shared by every run"""
    config = config or settings
    return PersonLookupClient(
        base_url=config.LOOKUP_BASE_URL,
        identifier_token=config.LOOKUP_IDENTIFIER_TOKEN,
        parent_token=config.LOOKUP_PARENT_TOKEN,
        cache=cache or build_cache(config),
        rate_limiter=SlidingWindowRateLimiter(
            max_per_window=config.RATE_LIMIT_PER_MINUTE,
            enabled=config.RATE_LIMIT_ENABLED,
        ),
        max_retries=config.LOOKUP_MAX_RETRIES,
        retry_delay=config.LOOKUP_RETRY_DELAY,
        timeout=config.LOOKUP_TIMEOUT,
        lock_wait=config.LOOKUP_LOCK_WAIT,
        user_agent=config.LOOKUP_USER_AGENT,
        http_client=http_client,
    )


def build_retry_policy(config: Optional[Settings] = None) -> RetryPolicy:
    config = config or settings
    return RetryPolicy(attempts=config.JOB_MAX_ATTEMPTS, backoff="exponential", delay=config.JOB_BACKOFF_SECONDS)


def build_services(
    client: PersonLookupClient,
    people: PeopleRepository,
    relationships: RelationshipsRepository,
    imports: ImportsRepository,
    config: Optional[Settings] = None
) -> GenealogyServices:
    config = config or settings

    inference = RelationshipInference(unknown_policy=config.UNKNOWN_RELATION_POLICY)
    mapper = RecordMapper(inference)
    name_matcher = NameMatcher()
    date_validator = DateValidator()
    aggregator = PersonAggregator(
        client,
        mapper=mapper,
        sibling_validator=SiblingValidator(name_matcher, date_validator),
        name_matcher=name_matcher,
        date_validator=date_validator,
        identifier_discovery=IdentifierDiscovery(client, name_matcher, date_validator, inference),
    )

    single = PersonDiscovery(
        client,
        people,
        relationships,
        imports,
        mapper=mapper,
        date_validator=date_validator,
        duplicate_threshold=config.DUPLICATE_NAME_THRESHOLD,
        recent_window_hours=config.RECENT_IMPORT_WINDOW_HOURS,
    )
    full_tree = FullTreeImport(
        aggregator,
        people,
        relationships,
        imports,
        mapper=mapper,
        date_validator=date_validator,
        batch_size=config.IMPORT_BATCH_SIZE,
        batch_delay=config.IMPORT_BATCH_DELAY,
        checkpoint_every=config.IMPORT_CHECKPOINT_EVERY,
        max_duration_seconds=config.IMPORT_MAX_DURATION_SECONDS,
        duplicate_threshold=config.DUPLICATE_NAME_THRESHOLD,
    )
    return GenealogyServices(
        client=client,
        people=people,
        relationships=relationships,
        imports=imports,
        aggregator=aggregator,
        single=single,
        full_tree=full_tree,
    )


def build_memory_services(client: PersonLookupClient, config: Optional[Settings] = None) -> GenealogyServices:
    """Services over in-memory repositories, for dry runs and tests"""
    return build_services(
        client,
        InMemoryPeopleRepository(),
        InMemoryRelationshipsRepository(),
        InMemoryImportsRepository(),
        config,
    )


@asynccontextmanager
async def open_services(
    session_maker: async_sessionmaker,
    client: PersonLookupClient,
    config: Optional[Settings] = None
) -> AsyncIterator[GenealogyServices]:
    """Services bound to one database session"""
    async with session_maker() as session:
        yield build_services(
            client,
            SQLPeopleRepository(session),
            SQLRelationshipsRepository(session),
            SQLImportsRepository(session),
            config,
        )
