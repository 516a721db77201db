"""Tests for project type, client and budget resolution."""

from decimal import Decimal

import pytest

from src.models.dtos import ProjectLineBudget, ProjectType
from src.services.project_classifier import (
    ClientSource,
    budget_from_lines,
    classify_project,
    client_from_project_name,
    effective_budget,
    project_status,
    resolve_client_name,
    resolve_project_budget,
)


class TestClassifyProject:
    @pytest.mark.parametrize(
        "tags, expected",
        [
            ([{"id": 30, "searchname": "Intern"}], ProjectType.INTERN),
            ([{"id": 29}], ProjectType.CONTRACT),
            ([28], ProjectType.FIXED_PRICE),
            (["26"], ProjectType.TIME_AND_MATERIALS),
        ],
    )
    def test_tag_ids(self, tags, expected):
        assert classify_project("Some project", tags) is expected

    def test_exact_tag_name(self):
        assert classify_project(None, [{"id": 999, "searchname": "Vaste prijs"}]) is ProjectType.FIXED_PRICE

    def test_partial_tag_name(self):
        assert classify_project(None, ["Project - fixed price 2024"]) is ProjectType.FIXED_PRICE

    def test_name_heuristics(self):
        assert classify_project("Acme - Service uren 2024") is ProjectType.TIME_AND_MATERIALS
        assert classify_project("Internal tooling") is ProjectType.INTERN
        assert classify_project("Bravoure - Eigen uren") is ProjectType.INTERN

    def test_override_wins(self):
        assert (
            classify_project("Acme", [{"id": 30}], type_override="Vaste Prijs")
            is ProjectType.FIXED_PRICE
        )

    def test_unknown_override_is_ignored(self):
        assert classify_project("Acme", [{"id": 29}], type_override="Bogus") is ProjectType.CONTRACT

    def test_quote_discriminator(self):
        assert classify_project("Acme", [{"id": 28}], discr="offerte") is ProjectType.QUOTE

    def test_unclassified(self):
        assert classify_project("Acme - Website", []) is ProjectType.UNCLASSIFIED


class TestClientResolution:
    def test_company_name_first(self):
        client = resolve_client_name("Other - Project", "Acme B.V.", "Offer Client")

        assert client.value == "Acme B.V."
        assert client.source is ClientSource.COMPANY

    def test_offer_client_second(self):
        client = resolve_client_name("Other - Project", "  ", "Offer Client")

        assert client.source is ClientSource.OFFER

    def test_known_project(self):
        client = client_from_project_name("Clay - Service hours (1234)")

        assert client.value == "Clay Hospitality"
        assert client.source is ClientSource.KNOWN_PROJECT

    def test_name_split(self):
        assert client_from_project_name("Acme - Website relaunch").value == "Acme"

    def test_generic_first_part_uses_last(self):
        assert client_from_project_name("Development - Acme").value == "Acme"

    def test_unresolved(self):
        client = resolve_client_name("Website")

        assert client.is_resolved is False
        assert client.value == "Onbekend"


class TestBudget:
    def test_project_total_first(self):
        assert resolve_project_budget("1200.50") == Decimal("1200.50")

    def test_lines_skip_group_labels_and_non_billable(self):
        lines = [
            ProjectLineBudget(id=1, amount=Decimal("10"), selling_price=Decimal("100")),
            ProjectLineBudget(id=2, amount=Decimal("5"), selling_price=Decimal("100"), row_type_id=2),
            ProjectLineBudget(id=3, amount=Decimal("5"), selling_price=Decimal("100"), invoice_basis_id=4),
        ]

        assert budget_from_lines(lines) == Decimal("1000")
        assert resolve_project_budget(0, lines) == Decimal("1000")

    def test_offer_total_last(self):
        assert resolve_project_budget(None, [], "750") == Decimal("750")
        assert resolve_project_budget("garbage", [], None) == Decimal("0")

    def test_effective_budget_for_fixed_price_without_budget(self):
        assert effective_budget(ProjectType.FIXED_PRICE, Decimal("0"), Decimal("900")) == Decimal("900")
        assert effective_budget(ProjectType.CONTRACT, Decimal("0"), Decimal("900")) == Decimal("0")


def test_project_status():
    assert project_status(True, "Uitvoering") == "Gearchiveerd"
    assert project_status(False, "Uitvoering") == "Uitvoering"
    assert project_status(False, None) == "Actief"
