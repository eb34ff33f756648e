"""Tests for the eligibility gate and allow-list loading."""

import json

from voting_api.eligibility import EligibilityGate, load_allow_list


def write_allow_list(path, payload) -> str:
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return str(path)


class TestIsEligible:
    """Tests for the domain and allow-list predicate."""

    def test_listed_institutional_address_is_eligible(self):
        gate = EligibilityGate("nsut.ac.in", ["asha.ug23@nsut.ac.in"])
        assert gate.is_eligible("asha.ug23@nsut.ac.in") is True

    def test_comparison_ignores_case_and_whitespace(self):
        gate = EligibilityGate("nsut.ac.in", ["Asha.UG23@nsut.ac.in"])
        assert gate.is_eligible("  asha.ug23@NSUT.AC.IN ") is True

    def test_listed_address_outside_domain_is_refused(self):
        """The suffix rule applies even to allow-listed addresses."""
        gate = EligibilityGate("nsut.ac.in", ["asha@gmail.com", "asha@fake-nsut.ac.in"])
        assert gate.is_eligible("asha@gmail.com") is False
        assert gate.is_eligible("asha@fake-nsut.ac.in") is False

    def test_unlisted_institutional_address_is_refused(self):
        gate = EligibilityGate("nsut.ac.in", ["asha.ug23@nsut.ac.in"])
        assert gate.is_eligible("dev.ug23@nsut.ac.in") is False

    def test_lookalike_domains_are_refused(self):
        gate = EligibilityGate("nsut.ac.in", ["asha@nsut.ac.in.evil.test"])
        assert gate.is_eligible("asha@nsut.ac.in.evil.test") is False
        assert gate.is_eligible("") is False

    def test_domain_may_be_given_with_at_sign(self):
        gate = EligibilityGate("@NSUT.ac.in", ["asha@nsut.ac.in"])
        assert gate.is_eligible("asha@nsut.ac.in") is True


class TestAllowListFile:
    """Tests for reading the allow-list from disk."""

    def test_load_valid_file(self, tmp_path):
        path = write_allow_list(tmp_path / "accepted.json", {"emails": ["A@nsut.ac.in", "b@nsut.ac.in", ""]})
        assert load_allow_list(path) == frozenset({"a@nsut.ac.in", "b@nsut.ac.in"})

    def test_missing_file_refuses_everyone(self, tmp_path):
        """A missing allow-list fails closed.

        Verifies:
        - Loader returns an empty set
        - Every address, even institutional, is refused
        """
        gate = EligibilityGate.from_file("nsut.ac.in", tmp_path / "missing.json")

        assert gate.size == 0
        assert gate.is_eligible("asha@nsut.ac.in") is False

    def test_malformed_json_refuses_everyone(self, tmp_path):
        path = write_allow_list(tmp_path / "accepted.json", "{not json")
        gate = EligibilityGate.from_file("nsut.ac.in", path)
        assert gate.is_eligible("asha@nsut.ac.in") is False

    def test_wrong_shape_refuses_everyone(self, tmp_path):
        assert load_allow_list(write_allow_list(tmp_path / "a.json", {"emails": "asha@nsut.ac.in"})) == frozenset()
        assert load_allow_list(write_allow_list(tmp_path / "b.json", {"users": []})) == frozenset()
        assert load_allow_list(write_allow_list(tmp_path / "c.json", ["asha@nsut.ac.in"])) == frozenset()

    def test_reload_swaps_the_list(self, tmp_path):
        path = write_allow_list(tmp_path / "accepted.json", {"emails": ["asha@nsut.ac.in"]})
        gate = EligibilityGate.from_file("nsut.ac.in", path)
        assert gate.is_eligible("dev@nsut.ac.in") is False

        write_allow_list(tmp_path / "accepted.json", {"emails": ["asha@nsut.ac.in", "dev@nsut.ac.in"]})

        assert gate.reload(path) == 2
        assert gate.is_eligible("dev@nsut.ac.in") is True

    def test_reload_of_broken_file_fails_closed(self, tmp_path):
        path = write_allow_list(tmp_path / "accepted.json", {"emails": ["asha@nsut.ac.in"]})
        gate = EligibilityGate.from_file("nsut.ac.in", path)

        write_allow_list(tmp_path / "accepted.json", "")

        assert gate.reload(path) == 0
        assert gate.is_eligible("asha@nsut.ac.in") is False
