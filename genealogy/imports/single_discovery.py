"""
Discovery of one person and their immediate relatives from a national identifier
"""

from typing import Optional, Tuple
import logging

from models.base import ImportStatus, ImportType
from models.person import Person
from schemas.records import PersonRecord
from schemas.person import PersonFields, PersonDetailFields
from schemas.discovery import DiscoveryCandidate, DiscoveryResult, PersonDiscoveryPayload
from genealogy.base import ImportTrackedService
from genealogy.identifiers import clean_identifier, is_valid_identifier
from genealogy.integrations.lookup_client import PersonLookupClient
from genealogy.loaders.person_loader import PersonLoader, RelationshipLoader
from genealogy.merge import person_fields_from_entity
from genealogy.transformers.record_mapper import RecordMapper
from genealogy.validators.date_validator import DateValidator
from repositories.contracts import ImportsRepository, PeopleRepository, RelationshipsRepository
from core.exceptions import GenealogyException, UpstreamError

logger = logging.getLogger(__name__)

RECENT_IMPORT_WINDOW_HOURS = 24


class PersonDiscovery(ImportTrackedService):
    """
    Single-person discovery.

    Pipeline:
    1. Skip when the same identifier was discovered successfully in the
       same tree within the recent window
    2. Fetch and map the person, upsert them with their details
    3. Resolve every listed relative (stored person, cached record, fresh
       lookup, or a name-only stub) and link it with a bidirectional edge

    A failing relative is recorded in the error list and the run continues;
    any error downgrades the status to partial.
    """

    def __init__(
        self,
        client: PersonLookupClient,
        people: PeopleRepository,
        relationships: RelationshipsRepository,
        imports: ImportsRepository,
        mapper: Optional[RecordMapper] = None,
        date_validator: Optional[DateValidator] = None,
        duplicate_threshold: float = 0.9,
        recent_window_hours: int = RECENT_IMPORT_WINDOW_HOURS
    ):
        super().__init__(imports)
        self.client = client
        self.people = people
        self.relationships = relationships
        self.mapper = mapper or RecordMapper()
        self.date_validator = date_validator or DateValidator()
        self.duplicate_threshold = duplicate_threshold
        self.recent_window_hours = recent_window_hours

    def final_status(self, result: DiscoveryResult) -> ImportStatus:
        return ImportStatus.PARTIAL if result.errors else ImportStatus.SUCCESS

    async def run(self, payload: PersonDiscoveryPayload) -> DiscoveryResult:
        identifier = clean_identifier(payload.identifier)

        recent = await self.imports.find_recent_similar(
            ImportType.NATIONAL_ID, identifier, payload.family_tree_id, self.recent_window_hours
        )
        if recent is not None:
            logger.info(f"Recent successful import found for {identifier}, skipping lookup")
            return DiscoveryResult(
                import_id=recent.id,
                status=ImportStatus.SUCCESS,
                skipped=True,
                **recent.counters()
            )

        await self.start_run(ImportType.NATIONAL_ID, identifier, payload.family_tree_id, payload.actor_id)
        loader = PersonLoader(
            self.people,
            merge_duplicates=payload.merge_duplicates,
            duplicate_threshold=self.duplicate_threshold
        )
        linker = RelationshipLoader(self.relationships, self.mapper.inference)
        result = DiscoveryResult(import_id=self.run_record.id, status=ImportStatus.PROCESSING)

        try:
            logger.info(f"Fetching data for identifier {identifier}")
            record = await self.client.lookup_by_identifier(identifier)
            await self.imports.record_api_exchange(
                self.run_record.id,
                {"cpf": identifier},
                record.model_dump(by_alias=True)
            )

            outcome = await loader.upsert(
                self.mapper.to_person(record),
                self.mapper.to_person_detail(record),
                created_by=payload.actor_id
            )
            person = outcome.person
            if outcome.created:
                result.persons_created += 1
            else:
                result.persons_updated += 1
            if outcome.duplicate:
                result.duplicates_found += 1

            if payload.discover_relatives:
                for relative in self.mapper.map_relatives(record):
                    try:
                        await self._import_relative(relative, person, payload, loader, linker, result)
                    except GenealogyException as e:
                        logger.error(
                            f"Failed to import relative {relative.identifier}: {e.message}",
                            extra={"error_context": e.to_dict()}
                        )
                        self.record_error(result, relative.name or relative.identifier, e)

            return await self.complete_run(result, {
                "created_person_ids": [person.id],
                "errors": [entry.model_dump() for entry in result.errors],
                "unrecognized_relation_codes": result.unrecognized_relation_codes,
            })

        except Exception as e:
            logger.error(f"Discovery for identifier {identifier} failed: {e}")
            await self.fail_run(e)
            raise

    async def _import_relative(
        self,
        relative: DiscoveryCandidate,
        person: Person,
        payload: PersonDiscoveryPayload,
        loader: PersonLoader,
        linker: RelationshipLoader,
        result: DiscoveryResult
    ) -> None:
        inferred = self.mapper.inference.infer(relative.relation_code)
        if not inferred.recognized:
            self.note_unrecognized(result, [relative.relation_code])
        if not self.mapper.inference.accepts(inferred):
            logger.info(f"Skipping relative {relative.identifier} with unrecognized code {relative.relation_code}")
            return
        if not is_valid_identifier(relative.identifier):
            logger.warning(f"Skipping relative {relative.name} without a valid identifier")
            return

        existing = await self.people.find_by_identifier(relative.identifier)
        if existing is not None:
            relative_person = existing
            fields = person_fields_from_entity(existing)
        else:
            fields, detail = await self._resolve(relative)

        check = self.date_validator.validate_by_type(person.birth_date, fields.birth_date, inferred.forward)
        if not check.is_valid:
            logger.info(f"Rejected relative {relative.identifier} ({inferred.forward.value}): {check.reason}")
            return

        if existing is not None:
            result.persons_updated += 1
        else:
            outcome = await loader.upsert(fields, detail, created_by=payload.actor_id)
            relative_person = outcome.person
            if outcome.created:
                result.persons_created += 1
            if outcome.duplicate:
                result.duplicates_found += 1

        result.relationships_created += await linker.link(
            person.id,
            relative_person.id,
            inferred.forward,
            payload.family_tree_id,
            notes="Discovered from identifier data"
        )

    async def _resolve(self, relative: DiscoveryCandidate) -> Tuple[PersonFields, Optional[PersonDetailFields]]:
        """Person fields for a relative not stored yet: cache, then upstream, then a stub"""
        record: Optional[PersonRecord] = await self.client.cache.get_identifier(relative.identifier)
        if record is not None:
            logger.info(f"Using cached data for relative {relative.identifier}")
        else:
            try:
                record = await self.client.lookup_by_identifier(relative.identifier)
            except UpstreamError as e:
                logger.warning(
                    f"Lookup failed for relative {relative.identifier}, creating with basic info: {e.message}"
                )

        if record is None:
            return PersonFields(full_name=relative.name, national_id=relative.identifier), None
        return self.mapper.to_person(record), self.mapper.to_person_detail(record)
