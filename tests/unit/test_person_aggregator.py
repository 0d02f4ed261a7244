"""
Unit tests for multi-source person aggregation
"""

import pytest
from datetime import date
from genealogy.discovery.person_aggregator import PersonAggregator
from genealogy.validators.name_matcher import normalize_name
from models.base import RelationshipType
from schemas.discovery import AggregatedPerson, AggregationContext, DiscoveryCandidate
from schemas.person import PersonFields


@pytest.fixture
def ids(make_identifier):
    return {name: make_identifier(n) for n, name in enumerate(
        ["ana", "pedro", "carla", "maria", "jose", "rosa", "paulo", "joao", "lucas"], start=10
    )}


@pytest.fixture
def aggregator(lookup_client):
    return PersonAggregator(lookup_client)


class TestAggregate:
    """Test the three aggregation sources"""

    @pytest.mark.asyncio
    async def test_lookup_and_parent_searches(self, aggregator, fake_service, ids, make_person, make_row):
        fake_service.add_person(make_person(
            ids["ana"], "ANA SOUZA", birth_date="01/01/1990",
            mother="MARIA SOUZA", father="JOSE SOUZA",
            relatives=[(ids["maria"], "MARIA SOUZA", "MAE"), ("123", "SEM CPF", "TIO")],
        ))
        own = make_row(ids["ana"], "ANA SOUZA", "01/01/1990", "MARIA SOUZA", "JOSE SOUZA")
        brother = make_row(ids["pedro"], "PEDRO SOUZA", "01/05/1992", "MARIA SOUZA", "JOSE SOUZA")
        too_old = make_row(ids["carla"], "CARLA LIMA", "01/01/1950", "MARIA SOUZA")
        fake_service.add_search("pai", "JOSE SOUZA", [own, brother])
        fake_service.add_search("mae", "MARIA SOUZA", [own, brother, too_old])

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        # Assertions
        assert result.person.full_name == "Ana Souza"
        assert result.person.birth_date == date(1990, 1, 1)
        assert result.sources_used == ["identifier_lookup", "parent_search_validated", "identifier_discovery"]
        assert [r.identifier for r in result.relatives] == [ids["maria"]]
        assert result.relatives[0].source == "identifier_lookup"
        assert [s.identifier for s in result.siblings] == [ids["pedro"]]
        assert result.siblings[0].confidence == 100
        assert result.siblings[0].found_by_mother and result.siblings[0].found_by_father
        assert result.data_quality.level == "high"
        assert result.data_quality.score == 11

    @pytest.mark.asyncio
    async def test_expansion_through_siblings(self, aggregator, fake_service, ids, make_person, make_row):
        fake_service.add_person(make_person(
            ids["ana"], "ANA SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA"
        ))
        fake_service.add_person(make_person(
            ids["pedro"], "PEDRO SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA",
            relatives=[
                (ids["rosa"], "ROSA SOUZA", "AVO"),
                (ids["paulo"], "PAULO SOUZA", "TIO"),
                (ids["ana"], "ANA SOUZA", "IRMA"),
                (ids["joao"], "JOAO LIMA", "PADRINHO"),
                (ids["lucas"], "LUCAS SOUZA", "FILHO"),
            ],
        ))
        brother = make_row(ids["pedro"], "PEDRO SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA")
        fake_service.add_search("pai", "JOSE SOUZA", [brother])
        fake_service.add_search("mae", "MARIA SOUZA", [brother])

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        assert result.sources_used == ["identifier_lookup", "parent_search_validated", "expanded_search"]
        assert {r.identifier for r in result.relatives} == {ids["rosa"], ids["paulo"]}
        assert all(r.confidence == 60 and r.source == "expanded_search" for r in result.relatives)
        assert {r.relationship_type for r in result.relatives} == {
            RelationshipType.GRANDPARENT, RelationshipType.UNCLE_AUNT
        }

    @pytest.mark.asyncio
    async def test_failed_lookup_falls_back_to_seed(self, aggregator, ids):
        result = await aggregator.aggregate(AggregationContext(
            identifier=ids["ana"], full_name="ANA SOUZA", mother_name="MARIA SOUZA"
        ))

        assert result.record is None
        assert result.sources_used == []
        assert result.person.full_name == "Ana Souza"
        assert result.person.national_id == ids["ana"]
        assert result.relatives == [] and result.siblings == []
        assert result.data_quality.level == "medium"

    @pytest.mark.asyncio
    async def test_mother_name_from_own_father_search_row(self, aggregator, fake_service, ids, make_person, make_row):
        fake_service.add_person(make_person(ids["ana"], "ANA SOUZA", father="JOSE SOUZA"))
        fake_service.add_search("pai", "JOSE SOUZA", [
            make_row(ids["ana"], "ANA SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA"),
        ])

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        assert result.person.mother_name == "Maria Souza"
        assert result.siblings == []

    @pytest.mark.asyncio
    async def test_dissimilar_mother_name_replaced_from_own_row(
        self, aggregator, fake_service, ids, make_person, make_row
    ):
        """The own row of the father search corrects a wrong mother name"""
        fake_service.add_person(make_person(ids["ana"], "ANA SOUZA", mother="MARIA SILVA", father="JOSE SOUZA"))
        own = make_row(ids["ana"], "ANA SOUZA", mother="ROSA LIMA", father="JOSE SOUZA")
        brother = make_row(ids["pedro"], "PEDRO SOUZA", mother="ROSA LIMA", father="JOSE SOUZA")
        fake_service.add_search("pai", "JOSE SOUZA", [own])
        fake_service.add_search("mae", "ROSA LIMA", [own, brother])

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        mother_searches = [params["mae"] for params in fake_service.requests if "mae" in params]
        assert result.person.mother_name == "Rosa Lima"
        assert "ROSA LIMA" in mother_searches
        assert "MARIA SILVA" not in mother_searches
        assert [s.identifier for s in result.siblings] == [ids["pedro"]]

    @pytest.mark.asyncio
    async def test_fuller_similar_mother_name_is_preferred(self, aggregator, fake_service, ids, make_person, make_row):
        fake_service.add_person(make_person(
            ids["ana"], "ANA SOUZA", mother="MARIA APARECIDA SOUZA", father="JOSE SOUZA"
        ))
        fake_service.add_search("pai", "JOSE SOUZA", [
            make_row(ids["ana"], "ANA SOUZA", mother="MARIA APARECIDA DE SOUZA", father="JOSE SOUZA"),
        ])

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        assert normalize_name(result.person.mother_name) == "MARIA APARECIDA DE SOUZA"

    @pytest.mark.asyncio
    async def test_shorter_similar_mother_name_is_ignored(self, aggregator, fake_service, ids, make_person, make_row):
        fake_service.add_person(make_person(
            ids["ana"], "ANA SOUZA", mother="MARIA APARECIDA DE SOUZA", father="JOSE SOUZA"
        ))
        fake_service.add_search("pai", "JOSE SOUZA", [
            make_row(ids["ana"], "ANA SOUZA", mother="MARIA APARECIDA SOUZA", father="JOSE SOUZA"),
        ])

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        assert normalize_name(result.person.mother_name) == "MARIA APARECIDA DE SOUZA"

    @pytest.mark.asyncio
    async def test_no_expansion_when_subject_has_direct_relatives(
        self, aggregator, fake_service, ids, make_person, make_row
    ):
        fake_service.add_person(make_person(
            ids["ana"], "ANA SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA",
            relatives=[(ids["maria"], "MARIA SOUZA", "MAE")],
        ))
        fake_service.add_person(make_person(
            ids["pedro"], "PEDRO SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA",
            relatives=[(ids["rosa"], "ROSA SOUZA", "AVO")],
        ))
        brother = make_row(ids["pedro"], "PEDRO SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA")
        fake_service.add_search("pai", "JOSE SOUZA", [brother])
        fake_service.add_search("mae", "MARIA SOUZA", [brother])

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        assert "expanded_search" not in result.sources_used
        assert [r.identifier for r in result.relatives] == [ids["maria"]]
        assert [s.identifier for s in result.siblings] == [ids["pedro"]]

    @pytest.mark.asyncio
    async def test_expansion_follows_at_most_three_siblings(
        self, aggregator, fake_service, ids, make_person, make_row, make_identifier
    ):
        fake_service.add_person(make_person(ids["ana"], "ANA SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA"))
        grandparents = {}
        rows = []
        for n, name in enumerate(["pedro", "carla", "paulo", "joao"], start=30):
            grandparents[name] = make_identifier(n)
            fake_service.add_person(make_person(
                ids[name], f"{name.upper()} SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA",
                relatives=[(grandparents[name], f"AVO DE {name.upper()}", "AVO")],
            ))
            rows.append(make_row(ids[name], f"{name.upper()} SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA"))
        fake_service.add_search("pai", "JOSE SOUZA", rows)
        fake_service.add_search("mae", "MARIA SOUZA", rows)

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        assert len(result.siblings) == 4
        assert {r.identifier for r in result.relatives} == {
            grandparents["pedro"], grandparents["carla"], grandparents["paulo"]
        }

    @pytest.mark.asyncio
    async def test_mother_name_inferred_from_candidates(self, aggregator, fake_service, ids, make_person, make_row):
        fake_service.add_person(make_person(ids["ana"], "ANA SOUZA", father="JOSE SOUZA"))
        rows = [
            make_row(ids["pedro"], "PEDRO SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA"),
            make_row(ids["carla"], "CARLA SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA"),
        ]
        fake_service.add_search("pai", "JOSE SOUZA", rows)
        fake_service.add_search("mae", "MARIA SOUZA", rows)

        result = await aggregator.aggregate(AggregationContext(identifier=ids["ana"]))

        assert result.person.mother_name == "Maria Souza"
        assert {s.identifier for s in result.siblings} == {ids["pedro"], ids["carla"]}

    @pytest.mark.asyncio
    async def test_sibling_limit(self, lookup_client, fake_service, ids, make_person, make_row):
        fake_service.add_person(make_person(ids["ana"], "ANA SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA"))
        rows = [
            make_row(ids[name], f"{name.upper()} SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA")
            for name in ("pedro", "carla", "paulo")
        ]
        fake_service.add_search("pai", "JOSE SOUZA", rows)
        fake_service.add_search("mae", "MARIA SOUZA", rows)

        result = await PersonAggregator(lookup_client, max_siblings=2).aggregate(
            AggregationContext(identifier=ids["ana"])
        )

        assert len(result.siblings) == 2


class TestSupplementaryDiscovery:
    """Test parent identifier and children discovery"""

    @pytest.mark.asyncio
    async def test_discover_children_of(self, aggregator, fake_service, ids, make_row):
        fake_service.add_search("mae", "MARIA SOUZA", [
            make_row(ids["ana"], "ANA SOUZA", "01/01/1985", "MARIA SOUZA", "JOSE SOUZA"),
            make_row(ids["pedro"], "PEDRO SOUZA", "01/01/1965", "MARIA SOUZA", "JOSE SOUZA"),
            make_row(ids["carla"], "CARLA SOUZA", None, "MARIA SOUZA"),
        ])

        result = await aggregator.discover_children_of("Maria Souza", approximate_birth_year=1960)

        # Assertions
        assert [c.identifier for c in result.possible_children] == [ids["ana"], ids["carla"]]
        assert all(c.relationship_type == RelationshipType.CHILD for c in result.possible_children)
        assert all(c.relation_code == "FILHO" for c in result.possible_children)
        assert result.mother_name_variations == ["Maria Souza"]
        assert result.father_name_variations == []
        assert result.spouse_names == ["Jose Souza"]

    @pytest.mark.asyncio
    async def test_discover_missing_parent_identifiers(self, aggregator, fake_service, ids, make_person, make_row):
        own = make_row(ids["ana"], "ANA SOUZA", mother="MARIA SOUZA", father="JOSE SOUZA")
        fake_service.add_search("mae", "MARIA SOUZA", [own])
        fake_service.add_search("pai", "JOSE SOUZA", [own])
        fake_service.add_person(make_person(
            ids["ana"], "ANA SOUZA", relatives=[(ids["jose"], "JOSE SOUZA", "PAI")]
        ))
        aggregated = AggregatedPerson(
            person=PersonFields(
                full_name="Ana Souza",
                national_id=ids["ana"],
                mother_name="Maria Souza",
                father_name="Jose Souza",
            ),
            relatives=[DiscoveryCandidate(
                identifier=ids["maria"],
                name="Maria Souza",
                relation_code="MAE",
                relationship_type=RelationshipType.PARENT,
            )],
        )

        found = await aggregator.discover_missing_parent_identifiers(aggregated)

        assert list(found) == ["father"]
        assert found["father"].identifier == ids["jose"]


class TestDataQuality:

    def test_levels(self):
        assess = PersonAggregator.assess_data_quality

        bare = AggregatedPerson(person=PersonFields(full_name="Ana Souza"))
        assert assess(bare).level == "low"
        assert assess(bare).score == 2

        partial = AggregatedPerson(
            person=PersonFields(full_name="Ana Souza", national_id="52998224725", father_name="Jose Souza")
        )
        assert assess(partial).level == "medium"

        full = AggregatedPerson(
            person=PersonFields(full_name="Ana Souza", national_id="52998224725"),
            relatives=[DiscoveryCandidate(identifier="11144477735")],
            sources_used=["identifier_lookup", "parent_search_validated"],
        )
        assert assess(full).level == "high"
        assert assess(full).score == 8
