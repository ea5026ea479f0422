"""Ingestion module for detecting, parsing and fingerprinting bank statements."""

from .formats import BankFormat, FormatDetection, FormatProfile, PROFILES, detect_format
from .statement_parser import ColumnMapping, ParseReport, ParseResult, StatementParser
from .fingerprint import DuplicateImportGuard

__all__ = [
    "BankFormat",
    "FormatDetection",
    "FormatProfile",
    "PROFILES",
    "detect_format",
    "ColumnMapping",
    "ParseReport",
    "ParseResult",
    "StatementParser",
    "DuplicateImportGuard",
]
