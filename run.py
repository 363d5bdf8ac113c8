#!/usr/bin/env python3
"""
Run the medical record / prescription attestation workflow.

Usage:
    python run.py run --output-dir results
    python run.py verify --proof results/prescriptionProof.json --attestation results/prescriptionAttestation.json
"""

import sys

from medattest.cli import main

if __name__ == "__main__":
    sys.exit(main())
