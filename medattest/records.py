"""
Sample private documents for the attestation workflow.
"""

from typing import Any, Iterable, Tuple

from medattest.models import Document, Field


def make_document(name: str, rows: Iterable[Tuple[str, str, Any]]) -> Document:
    """
    Build a document from (type, name, value) rows, keeping their order.

    Args:
        name: Document name (also used to derive salts)
        rows: Field rows in leaf order

    Returns:
        Document: The immutable document
    """
    return Document(name=name, fields=tuple(Field(type=t, name=n, value=v) for t, n, v in rows))


def create_medical_record() -> Document:
    """Patient medical record: name, age, isInsured, diagnosis"""
    return make_document("medicalRecord", [
        ("string", "name", "Alice Johnson"),
        ("uint256", "age", 28),
        ("bool", "isInsured", True),
        ("string", "diagnosis", "Hypertension"),
    ])


def create_prescription() -> Document:
    """Prescription: prescriptionId, medication, dosage, duration"""
    return make_document("prescription", [
        ("string", "prescriptionId", "presc-001"),
        ("string", "medication", "Lisinopril 10mg"),
        ("string", "dosage", "Take one tablet daily"),
        ("string", "duration", "30 days"),
    ])
