from .terminology import DEFAULT_TERMS, DetectedTerm, MedicalTerm, MedicalTermIndex

__all__ = ["DEFAULT_TERMS", "DetectedTerm", "MedicalTerm", "MedicalTermIndex"]
