"""
Party suggestion for bank lines the auto-matcher could not place.

Bank narrations usually carry the counterparty name at one end
("NEFT-ACME TRADERS-REF123", "UPI/...../ACME"), so the first and last
characters are compared on their own as well as the whole description.
"""

import re
from typing import Dict, List, Optional, Sequence

import structlog
from rapidfuzz import fuzz, process

from ..config import Settings, get_settings
from ..models import Party

logger = structlog.get_logger()

# Reference numbers, dates and separators carry no name signal
NOISE = re.compile(r"[\d/\\|_#*:.,@()\[\]-]+")
WHITESPACE = re.compile(r"\s+")
MIN_FRAGMENT_LENGTH = 4


def clean_description(text: str) -> str:
    cleaned = NOISE.sub(" ", text or "")
    return WHITESPACE.sub(" ", cleaned).strip().lower()


class PartySuggester:
    """Fuzzy lookup of a likely counterparty; advisory only."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.fragment_length = self.settings.party_fragment_length
        self.threshold = self.settings.party_similarity_threshold

    def fragments(self, description: str) -> List[str]:
        """Leading, trailing and whole cleaned description, de-duplicated."""
        cleaned = clean_description(description)
        n = self.fragment_length
        result: List[str] = []
        for fragment in (cleaned[:n].strip(), cleaned[-n:].strip(), cleaned):
            if len(fragment) >= MIN_FRAGMENT_LENGTH and fragment not in result:
                result.append(fragment)
        return result

    def suggest(self, description: str, parties: Sequence[Party]) -> Optional[Party]:
        """
        Best matching active party, or None below the similarity threshold.

        Ties on score go to the lowest party id.
        """
        choices: Dict[int, str] = {
            p.id: p.name.lower()
            for p in parties
            if p.name and len(p.name.strip()) >= MIN_FRAGMENT_LENGTH
        }
        if not choices:
            return None

        best_scores: Dict[int, float] = {}
        for fragment in self.fragments(description):
            hits = process.extract(
                fragment,
                choices,
                scorer=fuzz.partial_ratio,
                score_cutoff=self.threshold,
                limit=None,
            )
            for _, score, party_id in hits:
                if score > best_scores.get(party_id, -1.0):
                    best_scores[party_id] = score

        if not best_scores:
            return None

        party_id = max(best_scores, key=lambda pid: (best_scores[pid], -pid))
        party = next(p for p in parties if p.id == party_id)

        logger.debug(
            "Party suggested",
            description=description,
            party_id=party.id,
            score=round(best_scores[party_id], 1),
        )
        return party
