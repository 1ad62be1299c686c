"""Turns free OCR text into biomarker records using the pattern database."""

import re
from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

from labreport.biomarkers.models import (
    BiomarkerStatus,
    ExtractedBiomarker,
    ExtractionMethod,
    parse_numeric,
)
from labreport.biomarkers.patterns import BIOMARKER_PATTERNS, BiomarkerPattern

EXACT_MATCH_CONFIDENCE = 0.9
ALIAS_MATCH_CONFIDENCE = 0.8
FUZZY_MATCH_CONFIDENCE = 0.7
_MAX_EDIT_DISTANCE = 2
_MIN_FUZZY_LENGTH = 5

_SEGMENT_SPLIT = re.compile(r";|,\s+|\n")
_VALUE = re.compile(r"(?<![A-Za-z\d.])(?P<cmp>[<>]=?\s*)?(?P<value>\d+(?:,\d{3})*(?:\.\d+)?)")
_UNIT = re.compile(r"\s*(?P<unit>[^\s\d(),;:][^\s(),;]*)")
_RANGE = re.compile(r"(?P<low>\d+(?:\.\d+)?)\s*[-–]\s*(?P<high>\d+(?:\.\d+)?)")
_BOUND = re.compile(r"(?P<cmp>[<>]=?)\s*(?P<bound>\d+(?:\.\d+)?)")
_WORD = re.compile(r"[a-z][a-z0-9\-]*")


@dataclass(frozen=True)
class _Match:
    pattern: BiomarkerPattern
    end: int
    length: int
    confidence: float


def parse_reference_range(text: str) -> tuple[float | None, float | None] | None:
    """Parse '70-99', '(3.5 - 5.0)', '<200' or '>40' into (low, high) bounds."""
    match = _RANGE.search(text)
    if match:
        return float(match.group("low")), float(match.group("high"))
    bound = _BOUND.search(text)
    if bound:
        value = float(bound.group("bound"))
        if bound.group("cmp").startswith("<"):
            return None, value
        return value, None
    return None


def classify_status(numeric_value: float | None, reference_range: str | None) -> BiomarkerStatus:
    if numeric_value is None or not reference_range:
        return BiomarkerStatus.UNKNOWN
    bounds = parse_reference_range(reference_range)
    if bounds is None:
        return BiomarkerStatus.UNKNOWN
    low, high = bounds
    if low is not None and numeric_value < low:
        return BiomarkerStatus.LOW
    if high is not None and numeric_value > high:
        return BiomarkerStatus.HIGH
    return BiomarkerStatus.NORMAL


def _term_regex(term: str) -> re.Pattern[str]:
    return re.compile(r"(?<![a-z0-9])" + re.escape(term.lower()) + r"(?![a-z0-9])")


class TextBiomarkerParser:
    """Finds at most one biomarker per text segment, best match first.

    Longer matched terms win over shorter ones so that 'LDL Cholesterol'
    is not read as 'Total Cholesterol' through the 'cholesterol' alias.
    """

    def __init__(self, patterns: tuple[BiomarkerPattern, ...] = BIOMARKER_PATTERNS) -> None:
        self._patterns = patterns
        self._terms: list[tuple[BiomarkerPattern, re.Pattern[str], int, float]] = []
        for pattern in patterns:
            self._terms.append(
                (pattern, _term_regex(pattern.name), len(pattern.name), EXACT_MATCH_CONFIDENCE)
            )
            for alias in pattern.aliases:
                self._terms.append((pattern, _term_regex(alias), len(alias), ALIAS_MATCH_CONFIDENCE))

    def parse(
        self, text: str, method: ExtractionMethod = ExtractionMethod.OCR_LOCAL
    ) -> list[ExtractedBiomarker]:
        found: dict[str, ExtractedBiomarker] = {}
        for segment in _SEGMENT_SPLIT.split(text):
            biomarker = self._parse_segment(segment, method)
            if biomarker is None:
                continue
            existing = found.get(biomarker.name)
            if existing is None or biomarker.confidence > existing.confidence:
                found[biomarker.name] = biomarker
        return list(found.values())

    def _parse_segment(self, segment: str, method: ExtractionMethod) -> ExtractedBiomarker | None:
        lowered = segment.lower()
        match = self._best_match(lowered) or self._fuzzy_match(lowered)
        if match is None:
            return None

        remainder = segment[match.end:]
        value_match = _VALUE.search(remainder)
        if value_match is None:
            return None
        comparator = (value_match.group("cmp") or "").replace(" ", "")
        value = comparator + value_match.group("value")
        tail = remainder[value_match.end():]

        unit = None
        unit_match = _UNIT.match(tail)
        if unit_match is not None:
            candidate = unit_match.group("unit")
            if candidate.lower() in {u.lower() for u in match.pattern.units}:
                unit = candidate
                tail = tail[unit_match.end():]

        reference_range = _extract_range(tail)
        return ExtractedBiomarker(
            name=match.pattern.name,
            value=value,
            unit=unit,
            reference_range=reference_range,
            status=classify_status(parse_numeric(value), reference_range),
            confidence=match.confidence,
            method=method,
            category=match.pattern.category,
        )

    def _best_match(self, lowered: str) -> _Match | None:
        best: _Match | None = None
        for pattern, regex, length, confidence in self._terms:
            hit = regex.search(lowered)
            if hit is None:
                continue
            candidate = _Match(pattern, hit.end(), length, confidence)
            if best is None or (candidate.length, candidate.confidence) > (best.length, best.confidence):
                best = candidate
        return best

    def _fuzzy_match(self, lowered: str) -> _Match | None:
        for word in _WORD.finditer(lowered):
            token = word.group()
            if len(token) < _MIN_FUZZY_LENGTH:
                continue
            for pattern in self._patterns:
                for term in (pattern.name, *pattern.aliases):
                    term = term.lower()
                    if " " in term or len(term) < _MIN_FUZZY_LENGTH:
                        continue
                    if Levenshtein.distance(token, term) <= _MAX_EDIT_DISTANCE:
                        return _Match(pattern, word.end(), len(term), FUZZY_MATCH_CONFIDENCE)
        return None


def _extract_range(tail: str) -> str | None:
    match = _RANGE.search(tail)
    if match:
        return f"{match.group('low')}-{match.group('high')}"
    bound = _BOUND.search(tail)
    if bound:
        return f"{bound.group('cmp')}{bound.group('bound')}"
    return None
