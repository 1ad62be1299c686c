from collections.abc import Iterable, Iterator
from dataclasses import replace

from labreport.biomarkers.exceptions import BiomarkerNotFoundError
from labreport.biomarkers.models import (
    MANUAL_CONFIDENCE,
    BiomarkerSetSummary,
    ExtractedBiomarker,
    ExtractionMethod,
    HealthCategory,
    parse_numeric,
)
from labreport.biomarkers.parser import classify_status

MANUALLY_VALIDATED_NOTE = "Manually validated by user"
MANUALLY_ADDED_NOTE = "Manually added by user"


class BiomarkerSet:
    """Ordered, reviewable collection of biomarkers for the active document.

    Records are immutable; edits replace a record in place keeping its
    position and id.
    """

    def __init__(self, biomarkers: Iterable[ExtractedBiomarker] = ()) -> None:
        self._items: list[ExtractedBiomarker] = list(biomarkers)

    def __iter__(self) -> Iterator[ExtractedBiomarker]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> tuple[ExtractedBiomarker, ...]:
        return tuple(self._items)

    def replace_all(self, biomarkers: Iterable[ExtractedBiomarker]) -> None:
        self._items = list(biomarkers)

    def clear(self) -> None:
        self._items.clear()

    def get(self, biomarker_id: str) -> ExtractedBiomarker:
        return self._items[self._index_of(biomarker_id)]

    def update(
        self, biomarker_id: str, new_value: str, new_unit: str | None = None
    ) -> ExtractedBiomarker:
        """Apply a user correction; the result is always manual with confidence 1.0."""
        index = self._index_of(biomarker_id)
        current = self._items[index]
        updated = replace(
            current,
            value=new_value,
            unit=new_unit if new_unit is not None else current.unit,
            status=classify_status(parse_numeric(new_value), current.reference_range),
            confidence=MANUAL_CONFIDENCE,
            method=ExtractionMethod.MANUAL,
            notes=MANUALLY_VALIDATED_NOTE,
        )
        self._items[index] = updated
        return updated

    def remove(self, biomarker_id: str) -> ExtractedBiomarker:
        return self._items.pop(self._index_of(biomarker_id))

    def add_manual(
        self,
        name: str,
        value: str,
        unit: str | None = None,
        category: HealthCategory | None = None,
        reference_range: str | None = None,
    ) -> ExtractedBiomarker:
        biomarker = ExtractedBiomarker(
            name=name,
            value=value,
            unit=unit,
            reference_range=reference_range,
            status=classify_status(parse_numeric(value), reference_range),
            confidence=MANUAL_CONFIDENCE,
            method=ExtractionMethod.MANUAL,
            category=category,
            notes=MANUALLY_ADDED_NOTE,
        )
        self._items.append(biomarker)
        return biomarker

    def needing_validation(self) -> list[ExtractedBiomarker]:
        return [b for b in self._items if b.needs_validation]

    def high_confidence(self) -> list[ExtractedBiomarker]:
        return [b for b in self._items if b.is_high_confidence]

    def for_category(self, category: HealthCategory) -> list[ExtractedBiomarker]:
        return [b for b in self._items if b.category is category]

    def categories(self) -> tuple[HealthCategory, ...]:
        seen: list[HealthCategory] = []
        for biomarker in self._items:
            if biomarker.category is not None and biomarker.category not in seen:
                seen.append(biomarker.category)
        return tuple(seen)

    def summary(self) -> BiomarkerSetSummary:
        return BiomarkerSetSummary(
            total_extracted=len(self._items),
            high_confidence_count=len(self.high_confidence()),
            categories=self.categories(),
            average_confidence=(
                sum(b.confidence for b in self._items) / len(self._items) if self._items else None
            ),
        )

    def _index_of(self, biomarker_id: str) -> int:
        for index, biomarker in enumerate(self._items):
            if biomarker.id == biomarker_id:
                return index
        raise BiomarkerNotFoundError(biomarker_id)
