"""Reconciliation engine components."""

from .scoring import MatchTolerance, build_candidate, compute_confidence, rank_candidates
from .party_suggestion import PartySuggester
from .auto_matcher import AutoMatcher
from .manual import ManualReconciliation
from .importer import StatementImporter
from .export import export_matched_csv, write_matched_csv

__all__ = [
    "MatchTolerance",
    "build_candidate",
    "compute_confidence",
    "rank_candidates",
    "PartySuggester",
    "AutoMatcher",
    "ManualReconciliation",
    "StatementImporter",
    "export_matched_csv",
    "write_matched_csv",
]
