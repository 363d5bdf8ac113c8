"""
Attestation workflow for the medical record and the prescription.

Each document is committed to a Merkle root, the root is attested on EAS,
and a multi-proof is written next to the attestation id. The prescription
attestation references the medical record attestation.
"""

import logging
from typing import Dict, List, Optional, Union

from medattest import constants
from medattest.crypto.merkle import PrivateData
from medattest.models import AttestationId, AttestationRequest, Document, MultiProof
from medattest.records import create_medical_record, create_prescription
from medattest.schema import SchemaEncoder
from medattest.storage import DEFAULT_POLICY, SerializationPolicy, output_path, write_text

logger = logging.getLogger(__name__)


class DocumentResult:
    """Outcome of attesting one document"""

    def __init__(self, document: Document, attestation_id: AttestationId, root: str, proof: MultiProof,
                 ref_uid: Optional[AttestationId] = None):
        self.document = document
        self.attestation_id = attestation_id
        self.root = root
        self.proof = proof
        self.ref_uid = ref_uid
        self.attestation_file = None
        self.proof_file = None

    def attestation_record(self) -> Dict:
        record = {"attestationId": self.attestation_id}
        if self.ref_uid is not None:
            record["refAttestationId"] = self.ref_uid
        return record


class PipelineResult:
    def __init__(self, medical_record: DocumentResult, prescription: DocumentResult):
        self.medical_record = medical_record
        self.prescription = prescription


def encode_root(root: str) -> bytes:
    """Attestation payload for a Merkle root under the private data schema"""
    encoder = SchemaEncoder(constants.PRIVATE_DATA_SCHEMA)
    return encoder.encode_data([{"name": "privateData", "type": "bytes32", "value": root}])


def decode_root(data: bytes) -> str:
    encoder = SchemaEncoder(constants.PRIVATE_DATA_SCHEMA)
    return encoder.decode_data(data)[0]["value"]


def attest_document(eas, document: Document, schema_uid: str, recipient: str,
                    proof_indexes: Optional[List[int]] = None, ref_uid: Optional[AttestationId] = None,
                    salt_secret: Optional[str] = None) -> DocumentResult:
    """
    Commit to a document, attest its root and build the disclosure proof.

    Args:
        eas: EAS client (anything with attest(schema_uid, request))
        document: The private document
        schema_uid: Schema the root is attested under
        recipient: Attestation recipient address
        proof_indexes: Fields to reveal; every field when None
        ref_uid: Earlier attestation this one references
        salt_secret: Secret for deterministic salts; random salts when None

    Returns:
        DocumentResult: Attestation id, root and proof

    Raises:
        InvalidIndexError: If a proof index is outside the document
    """
    if not salt_secret:
        logger.warning(f"No salt secret set; {document.name} root uses random salts and will differ between runs")
    private_data = PrivateData(document, salt_secret=salt_secret)
    full_tree = private_data.get_full_tree()
    logger.info(f"{document.name} Merkle root: {full_tree.root}")
    logger.debug(f"{document.name} Merkle tree: {full_tree.model_dump()}")

    request = AttestationRequest(
        recipient=recipient,
        expiration_time=0,
        revocable=True,
        ref_uid=ref_uid,
        data=encode_root(private_data.root),
    )
    attestation_id = eas.attest(schema_uid, request)
    logger.info(f"New {document.name} attestation ID: {attestation_id}")

    indexes = document.all_indexes() if proof_indexes is None else list(proof_indexes)
    proof = private_data.generate_multi_proof(indexes)
    logger.info(f"Multi-proof for selective reveal ({document.name}) over fields {indexes}")

    return DocumentResult(document, attestation_id, private_data.root, proof, ref_uid=ref_uid)


def write_document_result(result: DocumentResult, output_dir: str, attestation_file: str, proof_file: str,
                          policy: SerializationPolicy = DEFAULT_POLICY) -> DocumentResult:
    # both payloads are serialized before either file is touched
    attestation_text = policy.dumps(result.attestation_record())
    proof_text = policy.dumps(result.proof)
    result.attestation_file = write_text(output_path(output_dir, attestation_file), attestation_text)
    result.proof_file = write_text(output_path(output_dir, proof_file), proof_text)
    return result


def run_pipeline(context, output_dir: Optional[str] = None,
                 proof_indexes: Optional[Dict[str, List[int]]] = None,
                 policy: SerializationPolicy = DEFAULT_POLICY) -> PipelineResult:
    """
    Attest the medical record, then the prescription referencing it.

    Args:
        context: ChainContext with settings and an EAS client
        output_dir: Where the JSON files go (defaults to settings.output_dir)
        proof_indexes: Optional {document name: indexes} overrides
        policy: JSON serialization policy

    Returns:
        PipelineResult: Both document results
    """
    settings = context.settings
    output_dir = output_dir or settings.output_dir
    proof_indexes = proof_indexes or {}

    medical_record = create_medical_record()
    medical_result = attest_document(
        context.eas,
        medical_record,
        settings.medical_record_schema_uid,
        settings.recipient_address,
        proof_indexes=proof_indexes.get(medical_record.name),
        salt_secret=settings.salt_secret,
    )
    write_document_result(
        medical_result, output_dir,
        constants.MEDICAL_RECORD_ATTESTATION_FILE, constants.MEDICAL_RECORD_PROOF_FILE, policy,
    )

    prescription = create_prescription()
    prescription_result = attest_document(
        context.eas,
        prescription,
        settings.prescription_schema_uid,
        settings.recipient_address,
        proof_indexes=proof_indexes.get(prescription.name),
        ref_uid=medical_result.attestation_id,
        salt_secret=settings.salt_secret,
    )
    write_document_result(
        prescription_result, output_dir,
        constants.PRESCRIPTION_ATTESTATION_FILE, constants.PRESCRIPTION_PROOF_FILE, policy,
    )

    return PipelineResult(medical_result, prescription_result)


def verify_disclosure(proof: Union[MultiProof, Dict], root: str) -> bool:
    """Check that revealed fields belong to the committed root"""
    return PrivateData.verify_multi_proof(root, proof)


def root_from_attestation(eas, attestation_id: AttestationId) -> str:
    """Read the committed Merkle root out of an on-chain attestation"""
    attestation = eas.get_attestation(attestation_id)
    return decode_root(attestation.data)
