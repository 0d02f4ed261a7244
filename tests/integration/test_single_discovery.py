"""
Integration tests for single-person discovery over in-memory repositories
"""

import pytest
from unittest.mock import AsyncMock
from genealogy.factory import build_memory_services
from models.base import ImportStatus, RelationshipType
from schemas.discovery import PersonDiscoveryPayload
from schemas.person import PersonFields
from core.exceptions import PersistenceError, UpstreamError

TREE = "tree-1"


@pytest.fixture
def ids(make_identifier):
    return {
        "carlos": make_identifier(1),
        "maria": make_identifier(2),
        "pedro": make_identifier(3),
        "joao": make_identifier(4),
    }


def seed_carlos(fake_service, make_person, ids, relatives=None, mother_birth="01/01/1955"):
    fake_service.add_person(make_person(
        ids["carlos"], "CARLOS SOUZA",
        birth_date="01/01/1980", mother="MARIA SOUZA", gender="M",
        relatives=relatives if relatives is not None else [(ids["maria"], "MARIA SOUZA", "MAE")],
        TELEFONES=[{"NUMBER": "11987654321"}],
    ))
    fake_service.add_person(make_person(
        ids["maria"], "MARIA SOUZA", birth_date=mother_birth, gender="F",
        relatives=[(ids["carlos"], "CARLOS SOUZA", "FILHO")],
    ))


def payload(ids, **overrides):
    values = dict(identifier=ids["carlos"], family_tree_id=TREE, actor_id=1)
    values.update(overrides)
    return PersonDiscoveryPayload(**values)


class TestPersonDiscovery:
    """Test discovery of a person and their listed relatives"""

    @pytest.mark.asyncio
    async def test_person_and_relatives_are_imported(self, services, fake_service, make_person, ids):
        seed_carlos(fake_service, make_person, ids, relatives=[
            (ids["maria"], "MARIA SOUZA", "MAE"),
            (ids["pedro"], "PEDRO SOUZA", "IRMÃO"),
            ("00000000000", "SEM DOCUMENTO", "TIO"),
            (ids["joao"], "JOAO LIMA", "PADRINHO"),
        ])

        result = await services.single.run(payload(ids))

        # Assertions
        assert result.status == ImportStatus.SUCCESS
        assert result.persons_created == 4
        assert result.persons_updated == 0
        assert result.relationships_created == 6
        assert result.errors == []
        assert result.unrecognized_relation_codes == ["PADRINHO"]

        carlos = await services.people.find_by_identifier(ids["carlos"])
        maria = await services.people.find_by_identifier(ids["maria"])
        pedro = await services.people.find_by_identifier(ids["pedro"])
        joao = await services.people.find_by_identifier(ids["joao"])
        assert carlos.full_name == "Carlos Souza"
        assert carlos.created_by == 1
        assert pedro.full_name == "Pedro Souza"
        assert await services.relationships.types_between(carlos.id, maria.id, TREE) == [RelationshipType.PARENT]
        assert await services.relationships.types_between(maria.id, carlos.id, TREE) == [RelationshipType.CHILD]
        assert await services.relationships.types_between(carlos.id, pedro.id, TREE) == [RelationshipType.SIBLING]
        assert await services.relationships.types_between(carlos.id, joao.id, TREE) == [RelationshipType.COUSIN]

        detail = await services.people.get_detail(carlos.id)
        assert detail.phone_numbers[0]["number"] == "11987654321"

    @pytest.mark.asyncio
    async def test_run_record_is_tracked(self, services, fake_service, make_person, ids):
        seed_carlos(fake_service, make_person, ids)

        result = await services.single.run(payload(ids))
        run = await services.imports.find(result.import_id)

        assert run.status == ImportStatus.SUCCESS
        assert run.search_value == ids["carlos"]
        assert run.api_request == {"cpf": ids["carlos"]}
        assert run.api_response["NOME"] == "CARLOS SOUZA"
        assert run.persons_created == 2
        assert run.relationships_created == 2
        assert run.started_at is not None and run.completed_at is not None

    @pytest.mark.asyncio
    async def test_recent_discovery_is_skipped(self, services, fake_service, make_person, ids):
        seed_carlos(fake_service, make_person, ids)

        first = await services.single.run(payload(ids))
        second = await services.single.run(payload(ids))

        assert second.skipped
        assert second.import_id == first.import_id
        assert second.persons_created == first.persons_created
        assert second.relationships_created == first.relationships_created
        assert len(services.imports.runs) == 1
        assert fake_service.identifier_requests(ids["carlos"]) == 1

    @pytest.mark.asyncio
    async def test_other_tree_is_not_skipped(self, services, fake_service, make_person, ids):
        seed_carlos(fake_service, make_person, ids)

        await services.single.run(payload(ids))
        other = await services.single.run(payload(ids, family_tree_id="tree-2"))

        assert not other.skipped
        assert other.persons_created == 0
        assert other.persons_updated == 2
        assert other.relationships_created == 2

    @pytest.mark.asyncio
    async def test_existing_relative_counts_as_updated(self, services, fake_service, make_person, ids):
        seed_carlos(fake_service, make_person, ids)
        await services.people.create(PersonFields(full_name="Maria Souza", national_id=ids["maria"]))

        result = await services.single.run(payload(ids))

        assert result.persons_created == 1
        assert result.persons_updated == 1
        assert result.relationships_created == 2
        assert fake_service.identifier_requests(ids["maria"]) == 0

    @pytest.mark.asyncio
    async def test_implausible_relative_is_rejected(self, services, fake_service, make_person, ids):
        seed_carlos(fake_service, make_person, ids, mother_birth="01/01/1975")

        result = await services.single.run(payload(ids))

        assert result.status == ImportStatus.SUCCESS
        assert result.persons_created == 1
        assert result.relationships_created == 0
        assert await services.people.find_by_identifier(ids["maria"]) is None

    @pytest.mark.asyncio
    async def test_relatives_can_be_left_out(self, services, fake_service, make_person, ids):
        seed_carlos(fake_service, make_person, ids)

        result = await services.single.run(payload(ids, discover_relatives=False))

        assert result.persons_created == 1
        assert result.relationships_created == 0
        assert fake_service.identifier_requests(ids["maria"]) == 0

    @pytest.mark.asyncio
    async def test_skip_policy_for_unknown_codes(self, lookup_client, test_settings, fake_service, make_person, ids):
        services = build_memory_services(
            lookup_client, test_settings.model_copy(update={"UNKNOWN_RELATION_POLICY": "skip"})
        )
        seed_carlos(fake_service, make_person, ids, relatives=[(ids["joao"], "JOAO LIMA", "PADRINHO")])

        result = await services.single.run(payload(ids))

        assert result.persons_created == 1
        assert result.relationships_created == 0
        assert result.unrecognized_relation_codes == ["PADRINHO"]

    @pytest.mark.asyncio
    async def test_failing_relative_makes_run_partial(self, services, fake_service, make_person, ids):
        seed_carlos(fake_service, make_person, ids)
        services.relationships.create_bidirectional = AsyncMock(
            side_effect=PersistenceError("Failed to create relationship pair")
        )

        result = await services.single.run(payload(ids))
        run = await services.imports.find(result.import_id)

        assert result.status == ImportStatus.PARTIAL
        assert result.persons_created == 2
        assert result.relationships_created == 0
        assert [(e.person, e.error) for e in result.errors] == [("Maria Souza", "Failed to create relationship pair")]
        assert run.status == ImportStatus.PARTIAL
        assert run.errors == [{"person": "Maria Souza", "error": "Failed to create relationship pair"}]

    @pytest.mark.asyncio
    async def test_lookup_failure_fails_the_run(self, services, ids):
        with pytest.raises(UpstreamError):
            await services.single.run(payload(ids))

        run = list(services.imports.runs.values())[0]
        assert run.status == ImportStatus.FAILED
        assert "CPF não encontrado" in run.error_message
