"""
Unit tests for name, date and sibling validation
"""

import pytest
from datetime import date
from genealogy.validators.name_matcher import NameMatcher, normalize_name, levenshtein
from genealogy.validators.date_validator import DateValidator, parse_date
from genealogy.validators.sibling_validator import SiblingValidator
from schemas.discovery import DiscoveryCandidate
from schemas.person import PersonFields


class TestNameMatcher:
    """Test fuzzy name comparison"""

    def setup_method(self):
        self.matcher = NameMatcher()

    def test_normalize_name(self):
        """Accents, case, punctuation and spacing are normalized"""
        assert normalize_name("  joão  d'ávila ") == "JOAO DAVILA"
        assert normalize_name(None) == ""
        assert normalize_name("") == ""

    def test_accents_do_not_matter(self):
        assert self.matcher.similarity("JOÃO DA SILVA", "Joao da Silva") == 1.0
        assert self.matcher.similarity("JOÃO", "JOAO") >= 0.95

    def test_similarity_is_symmetric(self):
        """Scores do not depend on argument order"""
        pairs = [
            ("MARIA SILVA", "MARIA SILVA SANTOS"),
            ("JOSE", "JOSA"),
            ("Antonio Carlos", "Antônia Carla"),
            ("ANA", ""),
        ]
        for a, b in pairs:
            assert self.matcher.similarity(a, b) == self.matcher.similarity(b, a)

    def test_contained_name_scores_by_length(self):
        score = self.matcher.similarity("MARIA SILVA", "MARIA SILVA SANTOS")
        assert score == pytest.approx(11 / 18)

    def test_edit_distance_score(self):
        assert levenshtein("KITTEN", "SITTING") == 3
        assert self.matcher.similarity("JOSE", "JOSA") == pytest.approx(0.75)

    def test_empty_names_score_zero(self):
        assert self.matcher.similarity(None, "MARIA") == 0.0
        assert self.matcher.similarity("", "") == 0.0

    def test_are_similar_uses_threshold(self):
        assert self.matcher.are_similar("MARIA APARECIDA DA SILVA", "MARIA APARECIDA DA SILVAS")
        assert not self.matcher.are_similar("MARIA SILVA", "MARIA SILVA SANTOS")
        assert self.matcher.are_similar("MARIA SILVA", "MARIA SILVA SANTOS", threshold=0.6)

    def test_surname_and_common_parts(self):
        assert self.matcher.surname("Maria da Silva") == "SILVA"
        assert self.matcher.surname(None) is None
        assert self.matcher.common_parts("Maria da Silva Santos", "Joana Silva Santos") == ["SILVA", "SANTOS"]


class TestDateValidator:
    """Test age-gap plausibility checks"""

    def setup_method(self):
        self.validator = DateValidator()

    def test_parse_date_formats(self):
        assert parse_date("15/03/1980") == date(1980, 3, 15)
        assert parse_date("1980-03-15") == date(1980, 3, 15)
        assert parse_date("15-03-1980") == date(1980, 3, 15)
        assert parse_date("1980-03-15T10:00:00Z") == date(1980, 3, 15)
        assert parse_date("ontem") is None
        assert parse_date(None) is None

    def test_parent_child_bounds(self):
        valid = self.validator.validate_parent_child("15/03/1960", "15/03/1980")
        assert valid.is_valid
        assert valid.age_difference_years == pytest.approx(20.0, abs=0.01)

        too_young = self.validator.validate_parent_child("1975-01-01", "1980-01-01")
        assert not too_young.is_valid
        assert "minimum 15" in too_young.reason

        too_old = self.validator.validate_parent_child("1900-01-01", "1980-01-01")
        assert not too_old.is_valid

    def test_sibling_bound(self):
        assert self.validator.validate_sibling("1980-01-01", "1995-01-01").is_valid
        assert not self.validator.validate_sibling("1950-01-01", "1980-01-01").is_valid

    def test_missing_or_unreadable_dates_pass(self):
        """Missing data never rejects a relationship"""
        missing = self.validator.validate_parent_child(None, "1980-01-01")
        assert missing.is_valid
        assert missing.reason == "Missing birth dates, cannot validate"

        unreadable = self.validator.validate_sibling("ontem", "1980-01-01")
        assert unreadable.is_valid
        assert unreadable.reason == "Invalid date format"

    def test_validate_by_type_with_relation_codes(self):
        """The relationship describes the relative as seen from the person"""
        mother = self.validator.validate_by_type("1980-01-01", "1960-01-01", "MAE")
        assert mother.is_valid

        child = self.validator.validate_by_type("1980-01-01", "1960-01-01", "FILHO")
        assert not child.is_valid

        unknown = self.validator.validate_by_type("1980-01-01", "1960-01-01", "PADRINHO")
        assert unknown.is_valid

    def test_age_helpers(self):
        assert DateValidator.age_at("1980-06-15", "2000-06-14") == 19
        assert DateValidator.age_at("1980-06-15", "2000-06-15") == 20
        assert DateValidator.age_at(None) is None
        assert self.validator.is_same_generation("1980-01-01", "1990-01-01")
        assert not self.validator.is_same_generation("1950-01-01", "1990-01-01")


class TestSiblingValidator:
    """Test sibling candidate scoring"""

    def setup_method(self):
        self.validator = SiblingValidator()
        self.known = PersonFields(
            full_name="Ana Souza",
            national_id="52998224725",
            birth_date=date(1990, 1, 1),
            mother_name="Maria Souza",
            father_name="Jose Souza",
        )

    def test_full_match_is_clamped_to_100(self):
        candidate = DiscoveryCandidate(
            identifier="11144477735",
            name="Pedro Souza",
            birth_date=date(1992, 5, 1),
            mother_name="MARIA SOUZA",
            father_name="Jose Souza",
            found_by_mother=True,
            found_by_father=True,
        )

        result = self.validator.score(self.known, candidate)

        assert result.is_valid
        assert result.confidence == 100
        assert all(result.factors.values())

    def test_father_match_adds_fifty(self):
        with_father = DiscoveryCandidate(identifier="11144477735", name="Pedro Lima", father_name="Jose Souza")
        without_father = DiscoveryCandidate(identifier="11144477735", name="Pedro Lima")

        gained = (
            self.validator.score(self.known, with_father).confidence
            - self.validator.score(self.known, without_father).confidence
        )

        assert gained == 50

    def test_mother_only_is_below_threshold(self):
        candidate = DiscoveryCandidate(
            identifier="11144477735",
            name="Pedro Souza",
            birth_date=date(1992, 5, 1),
            mother_name="Maria Souza",
            found_by_mother=True,
        )

        result = self.validator.score(self.known, candidate)

        assert result.confidence == 60
        assert not result.is_valid

    def test_age_mismatch_penalty(self):
        candidate = DiscoveryCandidate(
            identifier="11144477735",
            name="Pedro Lima",
            birth_date=date(1950, 1, 1),
            father_name="Jose Souza",
        )

        assert self.validator.score(self.known, candidate).confidence == 40

    def test_same_identifier_is_rejected(self):
        candidate = DiscoveryCandidate(
            identifier="52998224725",
            name="Ana Souza",
            mother_name="Maria Souza",
            father_name="Jose Souza",
        )

        result = self.validator.score(self.known, candidate)

        assert not result.is_valid
        assert result.confidence == 0

    def test_validate_multiple_sorts_by_confidence(self):
        strong = DiscoveryCandidate(
            identifier="11144477735", name="Pedro Souza",
            mother_name="Maria Souza", father_name="Jose Souza",
        )
        medium = DiscoveryCandidate(
            identifier="12345678909", name="Carla Lima",
            father_name="Jose Souza", found_by_mother=True, found_by_father=True,
        )
        weak = DiscoveryCandidate(identifier="98765432100", name="Bruno Lima", mother_name="Maria Souza")

        accepted = self.validator.validate_multiple(self.known, [medium, weak, strong])

        assert [c.identifier for c in accepted] == ["11144477735", "12345678909"]
        assert accepted[0].confidence == 90
        assert accepted[1].confidence == 70
