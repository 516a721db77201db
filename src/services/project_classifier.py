"""Project classification helpers.

Turns a cached Gripp project into the facts the revenue report needs: its
contract type, the client it belongs to, its budget and its display status.
Gripp data is messy (tags arrive as ids, as strings or as objects; budgets live
on the project, on its lines or on the quote), so every resolver walks an
explicit fallback chain and ends in a defined "unresolved" result instead of
raising.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from src.models.dtos import NON_BILLABLE_INVOICE_BASIS, ProjectLineBudget, ProjectType
from src.utils.numbers import ZERO, to_decimal, to_int

logger = logging.getLogger(__name__)

# Gripp tag ids used by the agency to mark contract types
TAG_ID_TYPES: Dict[int, ProjectType] = {
    30: ProjectType.INTERN,
    29: ProjectType.CONTRACT,
    28: ProjectType.FIXED_PRICE,
    26: ProjectType.TIME_AND_MATERIALS,
}

TAG_NAME_TYPES: Dict[str, ProjectType] = {
    "vaste prijs": ProjectType.FIXED_PRICE,
    "intern": ProjectType.INTERN,
    "nacalculatie": ProjectType.TIME_AND_MATERIALS,
    "contract": ProjectType.CONTRACT,
    "offerte": ProjectType.QUOTE,
}

# Checked in order; first fragment found in a tag or project name wins
PARTIAL_NAME_TYPES: List[Tuple[Tuple[str, ...], ProjectType]] = [
    (("vaste prijs", "fixed price"), ProjectType.FIXED_PRICE),
    (("intern", "internal", "eigen uren"), ProjectType.INTERN),
    (("nacalculatie", "hourly"), ProjectType.TIME_AND_MATERIALS),
    (("contract", "subscription"), ProjectType.CONTRACT),
    (("offerte", "quote"), ProjectType.QUOTE),
]

QUOTE_DISCRIMINATORS = {"offer", "offerte"}

# Gripp row type for group headers on a quote; they carry no budget
GROUP_LABEL_ROW_TYPE = 2

UNKNOWN_CLIENT = "Onbekend"

# Project name fragments whose client cannot be derived from the name itself
KNOWN_PROJECT_CLIENTS: Dict[str, str] = {
    "ADE - Begroting App": "Amsterdam Dance Event",
    "Service Hours - (Nacalculatie)": "Bravoure",
    "Clay - Service hours": "Clay Hospitality",
    "Cultuur Ferry - Service hours": "Stichting Cultuur Ferry",
    "Dynamics Koppeling - Courses": "Lektor",
}

GENERIC_NAME_TERMS = (
    "service", "project", "development", "design", "internal", "intern",
    "aanvullende", "extra", "begroting", "api", "content", "pilot",
    "strategie", "sessie", "bijbegroting", "cms",
)


class ClientSource(str, Enum):
    """Where a resolved client name came from."""

    COMPANY = "company"
    OFFER = "offer"
    KNOWN_PROJECT = "known_project"
    PROJECT_NAME = "project_name"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ClientName:
    value: str
    source: ClientSource

    @property
    def is_resolved(self) -> bool:
        return self.source is not ClientSource.UNRESOLVED


UNRESOLVED_CLIENT = ClientName(UNKNOWN_CLIENT, ClientSource.UNRESOLVED)


def _normalize_tags(tags: Any) -> List[Tuple[Optional[int], str]]:
    """Return ``(tag_id, lowercase_name)`` pairs from any tag shape Gripp produces."""
    if not tags:
        return []
    if isinstance(tags, (str, int, dict)):
        tags = [tags]

    normalized = []
    for tag in tags:
        if isinstance(tag, dict):
            normalized.append(
                (to_int(tag.get("id")), str(tag.get("searchname") or "").strip().lower())
            )
        elif isinstance(tag, int) or (isinstance(tag, str) and tag.strip().isdigit()):
            normalized.append((to_int(tag), ""))
        elif isinstance(tag, str):
            normalized.append((None, tag.strip().lower()))
    return normalized


def _match_partial(text: str) -> Optional[ProjectType]:
    for fragments, project_type in PARTIAL_NAME_TYPES:
        if any(fragment in text for fragment in fragments):
            return project_type
    return None


def classify_project(
    name: Optional[str] = None,
    tags: Any = None,
    type_override: Optional[str] = None,
    discr: Optional[str] = None,
) -> ProjectType:
    """Determine a project's contract type.

    Order: a stored override, the quote discriminator, tags (by id, exact
    name, then partial name), the project name, and finally UNCLASSIFIED.
    """
    if type_override:
        try:
            return ProjectType(type_override)
        except ValueError:
            logger.warning(f"Ignoring unknown project type override '{type_override}'")

    if discr and discr.strip().lower() in QUOTE_DISCRIMINATORS:
        return ProjectType.QUOTE

    for tag_id, tag_name in _normalize_tags(tags):
        if tag_id in TAG_ID_TYPES:
            return TAG_ID_TYPES[tag_id]
        if tag_name in TAG_NAME_TYPES:
            return TAG_NAME_TYPES[tag_name]
        partial = _match_partial(tag_name) if tag_name else None
        if partial:
            return partial

    if name:
        name_lower = name.lower()
        if "service" in name_lower and "uren" in name_lower:
            return ProjectType.TIME_AND_MATERIALS
        partial = _match_partial(name_lower)
        if partial:
            return partial

    return ProjectType.UNCLASSIFIED


def client_from_project_name(project_name: Optional[str]) -> ClientName:
    """Guess the client from a "Client - Project description (1234)" style name."""
    if not project_name:
        return UNRESOLVED_CLIENT

    name = re.sub(r"\s*\(\d+\)\s*$", "", project_name)

    for fragment, client in KNOWN_PROJECT_CLIENTS.items():
        if fragment in name:
            return ClientName(client, ClientSource.KNOWN_PROJECT)

    parts = [p.strip() for p in name.split(" - ") if p.strip()]
    if len(parts) < 2:
        return UNRESOLVED_CLIENT

    first_generic = any(term in parts[0].lower() for term in GENERIC_NAME_TERMS)
    last_generic = any(term in parts[-1].lower() for term in GENERIC_NAME_TERMS)
    if first_generic and not last_generic:
        return ClientName(parts[-1], ClientSource.PROJECT_NAME)
    return ClientName(parts[0], ClientSource.PROJECT_NAME)


def resolve_client_name(
    project_name: Optional[str] = None,
    company_name: Optional[str] = None,
    offer_client_name: Optional[str] = None,
) -> ClientName:
    if company_name and company_name.strip():
        return ClientName(company_name.strip(), ClientSource.COMPANY)
    if offer_client_name and offer_client_name.strip():
        return ClientName(offer_client_name.strip(), ClientSource.OFFER)

    guessed = client_from_project_name(project_name)
    if not guessed.is_resolved:
        logger.debug(f"Could not resolve client for project '{project_name}'")
    return guessed


def budget_from_lines(lines: Iterable[ProjectLineBudget]) -> Decimal:
    """Sum ``amount * selling_price`` over lines that carry budget."""
    total = ZERO
    for line in lines:
        if line.row_type_id == GROUP_LABEL_ROW_TYPE:
            continue
        if line.invoice_basis_id == NON_BILLABLE_INVOICE_BASIS:
            continue
        total += max(ZERO, line.budget)
    return total


def resolve_project_budget(
    total_excl_vat: Any,
    lines: Iterable[ProjectLineBudget] = (),
    offer_total_excl_vat: Any = None,
) -> Decimal:
    """Project budget: the project total, else its lines, else its quote, else 0."""
    total = to_decimal(total_excl_vat)
    if total > ZERO:
        return total

    from_lines = budget_from_lines(lines)
    if from_lines > ZERO:
        return from_lines

    offer_total = to_decimal(offer_total_excl_vat)
    if offer_total > ZERO:
        return offer_total

    return ZERO


def effective_budget(
    project_type: ProjectType, budget: Decimal, previous_year_budget_used: Decimal
) -> Decimal:
    """Budget to report for a project.

    A fixed-price project without a budget in Gripp that did consume budget in
    earlier years is assumed to be fully used: the budget becomes the earlier
    consumption, leaving nothing available this year.
    """
    if (
        project_type is ProjectType.FIXED_PRICE
        and budget <= ZERO
        and previous_year_budget_used > ZERO
    ):
        logger.warning(
            f"Fixed-price project has no budget but {previous_year_budget_used} "
            f"previous-year consumption; using the consumption as budget"
        )
        return previous_year_budget_used
    return budget


def project_status(archived: bool, phase_name: Optional[str] = None) -> str:
    if archived:
        return "Gearchiveerd"
    return phase_name or "Actief"
