"""
Command line entry point.

    python -m medattest run [--output-dir DIR]
    python -m medattest verify --proof prescriptionProof.json (--root 0x... | --attestation prescriptionAttestation.json)
"""

import argparse
import logging
import sys

from medattest.constants import Settings
from medattest.eas import ChainContext
from medattest.exceptions import MedAttestError
from medattest.models import AttestationId, MultiProof
from medattest.pipeline import root_from_attestation, run_pipeline, verify_disclosure
from medattest.storage import DEFAULT_POLICY, read_json

logger = logging.getLogger("medattest")


def cmd_run(args) -> int:
    settings = Settings.from_env(args.env_file)
    context = ChainContext.connect(settings)
    result = run_pipeline(context, output_dir=args.output_dir)

    for doc in (result.medical_record, result.prescription):
        print(f"{doc.document.name} attestation ID: {doc.attestation_id} ({doc.attestation_id.to_hex()})")
        print(f"{doc.document.name} Merkle root: {doc.root}")
        print(f"Wrote {doc.attestation_file} and {doc.proof_file}")

    print("Proof can be shared for verification:")
    print(DEFAULT_POLICY.dumps(result.prescription.proof))
    return 0


def cmd_verify(args) -> int:
    proof = MultiProof.model_validate(read_json(args.proof))

    if args.root:
        root = args.root
    else:
        settings = Settings.from_env(args.env_file)
        context = ChainContext.connect(settings)
        attestation_id = AttestationId(read_json(args.attestation)["attestationId"])
        root = root_from_attestation(context.eas, attestation_id)
        print(f"Root from attestation {attestation_id.to_hex()}: {root}")

    if verify_disclosure(proof, root):
        for leaf in proof.leaves:
            print(f"  {leaf.name} ({leaf.type}) = {leaf.value}")
        print("Proof is valid")
        return 0
    print("Proof is NOT valid for this root")
    return 1


def main(argv=None) -> int:
    """Main function"""
    parser = argparse.ArgumentParser(description="Private data attestations with selective disclosure")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Attest the medical record and prescription")
    run_parser.add_argument("--output-dir", default=None, help="Directory for the JSON results")
    run_parser.set_defaults(func=cmd_run)

    verify_parser = subparsers.add_parser("verify", help="Verify a disclosure proof")
    verify_parser.add_argument("--proof", required=True, help="Proof JSON file")
    source = verify_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--root", help="Merkle root to verify against")
    source.add_argument("--attestation", help="Attestation JSON file; the root is read on-chain")
    verify_parser.set_defaults(func=cmd_verify)

    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(levelname)s|%(name)s: %(message)s",
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    try:
        return args.func(args)
    except (MedAttestError, OSError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except Exception:
        logger.exception("Unexpected failure")
        return 1
