"""
Full Tree Import - bounded breadth-first crawl of a family tree.

Starting from one national identifier, every person is aggregated from all
lookup sources, persisted, linked to the person who led to them, and their
relatives are queued one generation further out. Siblings found through
parent-name searches stay on the same level.

The crawl stops when the queue is empty, when max_people people have been
processed, or when the optional wall-clock budget runs out.
"""

import asyncio
import time
from collections import deque
from datetime import date
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Set
import logging

from models.base import ImportStatus, ImportType, RelationshipType
from schemas.person import PersonFields
from schemas.discovery import (
    AggregatedPerson,
    AggregationContext,
    FullTreeImportPayload,
    ImportResult,
    TreeNode,
)
from genealogy.base import ImportTrackedService
from genealogy.discovery.person_aggregator import PersonAggregator
from genealogy.identifiers import clean_identifier, is_valid_identifier
from genealogy.loaders.person_loader import PersonLoader, RelationshipLoader
from genealogy.transformers.record_mapper import RecordMapper
from genealogy.validators.date_validator import DateValidator
from repositories.contracts import ImportsRepository, PeopleRepository, RelationshipsRepository
from core.exceptions import GenealogyException, ImportTimeoutError, InvalidInputError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY = 0.1
DEFAULT_CHECKPOINT_EVERY = 10


class _Crawl:
    """State of one import run; discarded when the run ends"""

    def __init__(self, payload: FullTreeImportPayload, result: ImportResult):
        self.payload = payload
        self.result = result
        self.queue: Deque[TreeNode] = deque()
        self.processed: Set[str] = set()
        self.person_ids: Dict[str, str] = {}
        self.birth_dates: Dict[str, Optional[date]] = {}
        self.sibling_groups: Dict[str, List[str]] = {}

    @property
    def budget_left(self) -> bool:
        return len(self.processed) < self.payload.max_people


class FullTreeImport(ImportTrackedService):
    """
    Breadth-first full-tree import.

    Guarantees:
    - A node is processed at most once per run (keyed by identifier)
    - No node deeper than max_depth is processed
    - At most max_people nodes are processed
    - At most one edge pair is written per pair of people in the tree
    """

    def __init__(
        self,
        aggregator: PersonAggregator,
        people: PeopleRepository,
        relationships: RelationshipsRepository,
        imports: ImportsRepository,
        mapper: Optional[RecordMapper] = None,
        date_validator: Optional[DateValidator] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        checkpoint_every: int = DEFAULT_CHECKPOINT_EVERY,
        max_duration_seconds: Optional[float] = None,
        duplicate_threshold: float = 0.9,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        super().__init__(imports)
        self.aggregator = aggregator
        self.people = people
        self.relationships = relationships
        self.mapper = mapper or aggregator.mapper
        self.inference = self.mapper.inference
        self.date_validator = date_validator or DateValidator()
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.checkpoint_every = checkpoint_every
        self.max_duration_seconds = max_duration_seconds
        self.duplicate_threshold = duplicate_threshold
        self._clock = clock
        self._sleep = sleep
        self.loader: Optional[PersonLoader] = None
        self.linker: Optional[RelationshipLoader] = None

    async def run(self, payload: FullTreeImportPayload) -> ImportResult:
        root = clean_identifier(payload.identifier)
        logger.info(f"Starting full tree import from {root} with max depth {payload.max_depth}")

        await self.start_run(
            ImportType.FULL_TREE,
            f"tree:{root}:depth{payload.max_depth}",
            payload.family_tree_id,
            payload.actor_id,
            import_id=payload.import_id
        )
        result = ImportResult(import_id=self.run_record.id, status=ImportStatus.PROCESSING)
        crawl = _Crawl(payload, result)
        self.loader = PersonLoader(
            self.people,
            name_matcher=self.aggregator.name_matcher,
            merge_duplicates=payload.merge_duplicates,
            duplicate_threshold=self.duplicate_threshold
        )
        self.linker = RelationshipLoader(self.relationships, self.inference)

        try:
            if not is_valid_identifier(root):
                raise InvalidInputError(
                    "Invalid national identifier",
                    context={"field": "identifier", "value": payload.identifier}
                )

            crawl.queue.append(TreeNode(identifier=root, level=0, source="root"))
            await self._crawl(crawl)

            result.people_processed = len(crawl.processed)
            return await self.complete_run(result, {
                "created_person_ids": sorted(set(crawl.person_ids.values())),
                "total_levels": result.total_levels,
                "people_processed": result.people_processed,
                "errors": [entry.model_dump() for entry in result.errors],
                "unrecognized_relation_codes": result.unrecognized_relation_codes,
            })

        except Exception as e:
            logger.error(f"Full tree import from {root} failed: {e}")
            await self.fail_run(e)
            raise

    async def _crawl(self, crawl: _Crawl) -> None:
        deadline = None
        if self.max_duration_seconds is not None:
            deadline = self._clock() + self.max_duration_seconds

        while crawl.queue and crawl.budget_left:
            batch = [crawl.queue.popleft() for _ in range(min(self.batch_size, len(crawl.queue)))]

            for node in batch:
                if deadline is not None and self._clock() > deadline:
                    self._stop_on_deadline(crawl)
                    return
                if node.identifier in crawl.processed:
                    await self._link_to_discoverer(node, crawl)
                    continue
                if node.level > crawl.payload.max_depth:
                    continue
                if not crawl.budget_left:
                    break

                crawl.processed.add(node.identifier)
                try:
                    await self._process_node(node, crawl)
                except GenealogyException as e:
                    logger.error(
                        f"Failed to process {node.identifier} at level {node.level}: {e.message}",
                        extra={"error_context": e.to_dict()}
                    )
                    self.record_error(crawl.result, f"{node.name or 'Unknown'} ({node.identifier})", e)

                if len(crawl.processed) % self.checkpoint_every == 0:
                    logger.info(
                        f"Tree import progress: {len(crawl.processed)} processed, {len(crawl.queue)} in queue"
                    )
                    await self.checkpoint(crawl.result)

            if crawl.queue and self.batch_delay:
                await self._sleep(self.batch_delay)

        logger.info(
            f"Full tree import finished: {crawl.result.persons_created} created, "
            f"{crawl.result.persons_updated} updated, {crawl.result.relationships_created} relationships, "
            f"{crawl.result.total_levels + 1} levels, {len(crawl.processed)} people"
        )

    def _stop_on_deadline(self, crawl: _Crawl) -> None:
        error = ImportTimeoutError(
            f"Import exceeded {self.max_duration_seconds}s",
            context={"processed": len(crawl.processed), "queued": len(crawl.queue)}
        )
        logger.warning(f"{error.message}, stopping with {len(crawl.queue)} nodes queued")
        self.record_error(crawl.result, None, error)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def _process_node(self, node: TreeNode, crawl: _Crawl) -> None:
        aggregated = await self.aggregator.aggregate(
            AggregationContext(identifier=node.identifier, full_name=node.name)
        )
        fields = aggregated.person
        if aggregated.record is None and not fields.full_name:
            raise GenealogyException(
                "No data found",
                context={"identifier": node.identifier, "level": node.level}
            )

        if not self._plausible(node, fields, crawl):
            return

        detail = self.mapper.to_person_detail(aggregated.record) if aggregated.record else None
        outcome = await self.loader.upsert(fields, detail, created_by=crawl.payload.actor_id)
        result = crawl.result
        if outcome.created:
            result.persons_created += 1
        else:
            result.persons_updated += 1
        if outcome.duplicate:
            result.duplicates_found += 1

        crawl.person_ids[node.identifier] = outcome.person.id
        crawl.birth_dates[node.identifier] = fields.birth_date
        result.total_levels = max(result.total_levels, node.level)
        result.tree_structure.append(node.model_copy(update={"name": outcome.person.full_name}))

        await self._link_to_discoverer(node, crawl)
        await self._link_co_siblings(node, crawl)
        await self._follow(node, aggregated, crawl)

    def _plausible(self, node: TreeNode, fields: PersonFields, crawl: _Crawl) -> bool:
        """Age check of a node against the person who led to it"""
        if node.parent_identifier is None:
            return True
        check = self.date_validator.validate_by_type(
            crawl.birth_dates.get(node.parent_identifier),
            fields.birth_date,
            self._edge_type(node)
        )
        if not check.is_valid:
            logger.info(f"Rejected {node.identifier} as {node.relation_code} of {node.parent_identifier}: {check.reason}")
        return check.is_valid

    async def _follow(self, node: TreeNode, aggregated: AggregatedPerson, crawl: _Crawl) -> None:
        """Queue relatives one level out and siblings on the same level"""
        self.note_unrecognized(
            crawl.result,
            [relative.relation_code for relative in aggregated.relatives if not relative.recognized]
        )

        for relative in aggregated.relatives:
            if not relative.identifier or not self.inference.accepts(self.inference.infer(relative.relation_code)):
                continue
            if relative.identifier in crawl.person_ids:
                await self._link(
                    crawl.person_ids[node.identifier],
                    crawl.person_ids[relative.identifier],
                    relative.relationship_type,
                    crawl
                )
                continue
            if relative.identifier in crawl.processed:
                continue
            if node.level + 1 <= crawl.payload.max_depth and crawl.budget_left:
                crawl.queue.append(TreeNode(
                    identifier=relative.identifier,
                    name=relative.name,
                    level=node.level + 1,
                    parent_identifier=node.identifier,
                    relation_code=relative.relation_code,
                    source=relative.source,
                ))

        for sibling in aggregated.siblings:
            if not sibling.identifier:
                continue
            if sibling.identifier in crawl.person_ids:
                await self._link(
                    crawl.person_ids[node.identifier],
                    crawl.person_ids[sibling.identifier],
                    RelationshipType.SIBLING,
                    crawl
                )
                continue
            if sibling.identifier in crawl.processed:
                continue
            if crawl.budget_left:
                crawl.queue.append(TreeNode(
                    identifier=sibling.identifier,
                    name=sibling.name,
                    level=node.level,
                    parent_identifier=node.identifier,
                    relation_code=sibling.relation_code,
                    source="sibling",
                    sibling_group=node.identifier,
                ))

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def _edge_type(self, node: TreeNode) -> RelationshipType:
        """What the node is to the person who led to it"""
        if node.source == "sibling":
            return RelationshipType.SIBLING
        return self.inference.infer(node.relation_code).forward

    async def _link_to_discoverer(self, node: TreeNode, crawl: _Crawl) -> None:
        if node.parent_identifier is None:
            return
        discoverer = crawl.person_ids.get(node.parent_identifier)
        person = crawl.person_ids.get(node.identifier)
        if discoverer is None or person is None:
            return
        if node.source != "sibling" and not self.inference.accepts(self.inference.infer(node.relation_code)):
            return
        await self._link(discoverer, person, self._edge_type(node), crawl)

    async def _link_co_siblings(self, node: TreeNode, crawl: _Crawl) -> None:
        if node.sibling_group is None:
            return
        person = crawl.person_ids[node.identifier]
        group = crawl.sibling_groups.setdefault(node.sibling_group, [])
        for other in group:
            await self._link(other, person, RelationshipType.SIBLING, crawl)
        group.append(person)

    async def _link(self, person_id: str, related_id: str, relationship_type: RelationshipType, crawl: _Crawl) -> None:
        try:
            crawl.result.relationships_created += await self.linker.link(
                person_id,
                related_id,
                relationship_type,
                crawl.payload.family_tree_id,
                notes="Imported from full tree scan"
            )
        except GenealogyException as e:
            logger.error(
                f"Failed to create relationship between {person_id} and {related_id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
