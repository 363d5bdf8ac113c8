"""medattest, private-data attestations with selective disclosure"""

__all__ = [
    "Document",
    "Field",
    "MultiProof",
    "PrivateData",
    "SchemaEncoder",
    "AttestationId",
    "run_pipeline",
]

from .crypto.merkle import PrivateData
from .models import AttestationId, Document, Field, MultiProof
from .pipeline import run_pipeline
from .schema import SchemaEncoder
