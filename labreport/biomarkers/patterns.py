from dataclasses import dataclass

from labreport.biomarkers.models import HealthCategory


@dataclass(frozen=True)
class BiomarkerPattern:
    """Recognition rule for one biomarker in free OCR text."""

    name: str
    aliases: tuple[str, ...]
    units: tuple[str, ...]
    category: HealthCategory


BIOMARKER_PATTERNS: tuple[BiomarkerPattern, ...] = (
    BiomarkerPattern("Glucose", ("blood sugar", "fasting glucose", "glu"), ("mg/dL", "mmol/L"), HealthCategory.METABOLIC),
    BiomarkerPattern("HbA1c", ("hemoglobin a1c", "a1c", "glycated hemoglobin"), ("%", "mmol/mol"), HealthCategory.METABOLIC),
    BiomarkerPattern("Total Cholesterol", ("cholesterol", "chol"), ("mg/dL", "mmol/L"), HealthCategory.CARDIOVASCULAR),
    BiomarkerPattern("LDL Cholesterol", ("ldl", "ldl-c"), ("mg/dL", "mmol/L"), HealthCategory.CARDIOVASCULAR),
    BiomarkerPattern("HDL Cholesterol", ("hdl", "hdl-c"), ("mg/dL", "mmol/L"), HealthCategory.CARDIOVASCULAR),
    BiomarkerPattern("Triglycerides", ("trig", "tg"), ("mg/dL", "mmol/L"), HealthCategory.CARDIOVASCULAR),
    BiomarkerPattern("Hemoglobin", ("hgb", "hb"), ("g/dL", "g/L"), HealthCategory.HEMATOLOGY),
    BiomarkerPattern("Hematocrit", ("hct",), ("%",), HealthCategory.HEMATOLOGY),
    BiomarkerPattern("White Blood Cells", ("wbc", "leukocytes"), ("K/uL", "x10^3/uL", "10^9/L"), HealthCategory.HEMATOLOGY),
    BiomarkerPattern("Red Blood Cells", ("rbc", "erythrocytes"), ("M/uL", "x10^6/uL", "10^12/L"), HealthCategory.HEMATOLOGY),
    BiomarkerPattern("Platelets", ("plt", "platelet count"), ("K/uL", "x10^3/uL", "10^9/L"), HealthCategory.HEMATOLOGY),
    BiomarkerPattern("Creatinine", ("creat", "cr"), ("mg/dL", "umol/L"), HealthCategory.KIDNEY_FUNCTION),
    BiomarkerPattern("Blood Urea Nitrogen", ("bun", "urea nitrogen"), ("mg/dL", "mmol/L"), HealthCategory.KIDNEY_FUNCTION),
    BiomarkerPattern("ALT", ("alanine aminotransferase", "sgpt"), ("U/L", "IU/L"), HealthCategory.LIVER_FUNCTION),
    BiomarkerPattern("AST", ("aspartate aminotransferase", "sgot"), ("U/L", "IU/L"), HealthCategory.LIVER_FUNCTION),
    BiomarkerPattern("TSH", ("thyroid stimulating hormone", "thyrotropin"), ("mIU/L", "uIU/mL"), HealthCategory.THYROID),
    BiomarkerPattern("Vitamin D", ("25-hydroxy vitamin d", "vit d"), ("ng/mL", "nmol/L"), HealthCategory.NUTRITIONAL),
    BiomarkerPattern("Ferritin", ("ferr",), ("ng/mL", "ug/L"), HealthCategory.NUTRITIONAL),
    BiomarkerPattern("C-Reactive Protein", ("crp", "hs-crp"), ("mg/L", "mg/dL"), HealthCategory.INFLAMMATION),
)
