"""
Unit tests for the SQLAlchemy repositories with a mocked session
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock, Mock
from sqlalchemy.exc import SQLAlchemyError
from models.base import ImportStatus, ImportType, RelationshipType
from models.data_import import DataImport
from models.person import Person
from repositories.imports import ImportsRepository
from repositories.people import PeopleRepository
from repositories.relationships import RelationshipsRepository
from schemas.person import PersonFields
from core.exceptions import InvalidInputError, PersistenceError


def mock_session():
    session = AsyncMock()
    session.add = Mock()
    session.add_all = Mock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    return session


def returning(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalars.return_value.all.return_value = value if isinstance(value, list) else [value]
    return AsyncMock(return_value=result)


class TestPeopleRepository:
    """Test people persistence"""

    @pytest.mark.asyncio
    async def test_find_by_identifier(self):
        session = mock_session()
        person = Person(full_name="Ana Souza", national_id="52998224725")
        session.execute = returning(person)

        repository = PeopleRepository(session)
        found = await repository.find_by_identifier("529.982.247-25")

        assert found is person
        session.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_find_by_empty_identifier_skips_query(self):
        session = mock_session()
        session.execute = AsyncMock()

        assert await PeopleRepository(session).find_by_identifier("") is None
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_matches_names_and_identifier(self):
        session = mock_session()
        person = Person(full_name="Ana Souza", national_id="52998224725")
        session.execute = returning([person])

        found = await PeopleRepository(session).search("529.982.247-25")

        assert found == [person]
        statement = str(session.execute.call_args[0][0])
        assert "people.full_name" in statement
        assert "people.national_id =" in statement

    @pytest.mark.asyncio
    async def test_find_by_birth_date_filters_on_the_day(self):
        session = mock_session()
        people = [Person(full_name="Pedro José Souza"), Person(full_name="Paula Lima")]
        session.execute = returning(people)

        found = await PeopleRepository(session).find_by_birth_date(date(1992, 5, 1))

        assert found == people
        statement = str(session.execute.call_args[0][0])
        assert "people.birth_date =" in statement
        assert "ORDER BY people.created_at" in statement

    @pytest.mark.asyncio
    async def test_create(self):
        session = mock_session()

        person = await PeopleRepository(session).create(PersonFields(national_id="52998224725"), created_by=7)

        # Assertions
        assert person.full_name == "Unknown"
        assert person.national_id == "52998224725"
        assert person.created_by == 7
        session.add.assert_called_once_with(person)
        session.commit.assert_called_once()
        session.refresh.assert_called_once_with(person)

    @pytest.mark.asyncio
    async def test_merge_keeps_populated_columns(self):
        session = mock_session()
        person = Person(full_name="Ana Souza", national_id="52998224725")

        merged = await PeopleRepository(session).merge_and_save(
            person, PersonFields(full_name="Outra Pessoa", birth_date=date(1990, 1, 1))
        )

        assert merged.full_name == "Ana Souza"
        assert merged.birth_date == date(1990, 1, 1)
        session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self):
        session = mock_session()
        session.commit = AsyncMock(side_effect=SQLAlchemyError("connection lost"))

        with pytest.raises(PersistenceError) as exc_info:
            await PeopleRepository(session).create(PersonFields(full_name="Ana Souza"))

        assert exc_info.value.context["table_name"] == "people"
        session.rollback.assert_called_once()


class TestRelationshipsRepository:
    """Test edge pair persistence"""

    @pytest.mark.asyncio
    async def test_create_bidirectional(self):
        session = mock_session()

        forward, inverse = await RelationshipsRepository(session).create_bidirectional(
            "x", "a", RelationshipType.GRANDPARENT, "tree-1", notes="test"
        )

        # Assertions
        assert (forward.person_id, forward.related_person_id) == ("x", "a")
        assert forward.relationship_type == RelationshipType.GRANDPARENT
        assert (inverse.person_id, inverse.related_person_id) == ("a", "x")
        assert inverse.relationship_type == RelationshipType.GRANDCHILD
        session.add_all.assert_called_once_with([forward, inverse])
        session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_self_edge_is_rejected(self):
        session = mock_session()

        with pytest.raises(InvalidInputError):
            await RelationshipsRepository(session).create_bidirectional("x", "x", RelationshipType.SIBLING, "tree-1")
        session.add_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self):
        session = mock_session()
        session.commit = AsyncMock(side_effect=SQLAlchemyError("duplicate key"))

        with pytest.raises(PersistenceError) as exc_info:
            await RelationshipsRepository(session).create_bidirectional("x", "a", RelationshipType.SPOUSE, "tree-1")

        assert exc_info.value.context["operation"] == "create_bidirectional"
        session.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_types_between_reads_forward_edges(self):
        session = mock_session()
        session.execute = returning([
            Mock(person_id="x", related_person_id="a", relationship_type=RelationshipType.PARENT),
            Mock(person_id="a", related_person_id="x", relationship_type=RelationshipType.CHILD),
        ])

        types = await RelationshipsRepository(session).types_between("x", "a", "tree-1")

        assert types == [RelationshipType.PARENT]


class TestImportsRepository:
    """Test import run lifecycle updates"""

    @pytest.mark.asyncio
    async def test_update_progress(self):
        session = mock_session()
        run = DataImport(import_type=ImportType.FULL_TREE, status=ImportStatus.PROCESSING)
        session.get = AsyncMock(return_value=run)

        await ImportsRepository(session).update_progress(
            "run-1",
            {"persons_created": 3, "relationships_created": 4, "unknown": 9},
            [{"person": "Ana", "error": "No data found"}],
        )

        assert run.persons_created == 3
        assert run.relationships_created == 4
        assert run.errors == [{"person": "Ana", "error": "No data found"}]
        session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_mark_failed(self):
        session = mock_session()
        run = DataImport(import_type=ImportType.NATIONAL_ID, status=ImportStatus.PROCESSING)
        session.get = AsyncMock(return_value=run)

        await ImportsRepository(session).mark_failed("run-1", "Lookup service error")

        assert run.status == ImportStatus.FAILED
        assert run.error_message == "Lookup service error"
        assert run.completed_at is not None

    @pytest.mark.asyncio
    async def test_missing_run(self):
        session = mock_session()
        session.get = AsyncMock(return_value=None)

        with pytest.raises(PersistenceError):
            await ImportsRepository(session).mark_processing("missing")
        session.commit.assert_not_called()
