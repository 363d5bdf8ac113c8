"""
Constants and configuration for the private-data attestation workflow.

This module defines the attestation schema, the output file names and the
environment-sourced settings used to reach the chain.
"""

import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict
from web3 import Web3

from medattest.exceptions import ConfigurationError

# Schema layout shared by both documents
PRIVATE_DATA_SCHEMA = "bytes32 privateData"

# Private data schema UIDs
# Both documents currently point at the same registered schema.
MEDICAL_RECORD_SCHEMA_UID = "0x20351f973fdec1478924c89dfa533d8f872defa108d9c3c6512267d7e7e5dbc2"
PRESCRIPTION_SCHEMA_UID = "0x20351f973fdec1478924c89dfa533d8f872defa108d9c3c6512267d7e7e5dbc2"

# EAS "no reference" / "no resolver" values
ZERO_UID = "0x" + "00" * 32
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Output files
MEDICAL_RECORD_ATTESTATION_FILE = "medicalRecordAttestation.json"
MEDICAL_RECORD_PROOF_FILE = "medicalRecordProof.json"
PRESCRIPTION_ATTESTATION_FILE = "prescriptionAttestation.json"
PRESCRIPTION_PROOF_FILE = "prescriptionProof.json"

# Seconds to wait for an attestation receipt
DEFAULT_TX_TIMEOUT = 120


def _is_bytes32_hex(value: str) -> bool:
    if not isinstance(value, str) or not value.startswith("0x") or len(value) != 66:
        return False
    try:
        bytes.fromhex(value[2:])
    except ValueError:
        return False
    return True


class Settings(BaseModel):
    """Runtime settings, read once at startup"""

    model_config = ConfigDict(frozen=True)

    rpc_url: str
    private_key: str
    eas_contract_address: str
    recipient_address: str
    medical_record_schema_uid: str = MEDICAL_RECORD_SCHEMA_UID
    prescription_schema_uid: str = PRESCRIPTION_SCHEMA_UID
    salt_secret: Optional[str] = None
    tx_timeout: int = DEFAULT_TX_TIMEOUT
    output_dir: str = "."

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """
        Build settings from the environment, loading a .env file first.

        Args:
            env_file: Optional path to a .env file (defaults to ./.env)

        Returns:
            Settings: The validated settings

        Raises:
            ConfigurationError: If a required variable is missing or invalid
        """
        load_dotenv(env_file or find_dotenv(usecwd=True))

        required = {
            "rpc_url": "RPC_URL",
            "private_key": "PRIVATE_KEY",
            "eas_contract_address": "EAS_CONTRACT_ADDRESS",
            "recipient_address": "RECIPIENT_ADDRESS",
        }
        values = {}
        missing = []
        for field_name, env_name in required.items():
            value = os.getenv(env_name)
            if not value:
                missing.append(env_name)
            values[field_name] = value
        if missing:
            raise ConfigurationError(f"Missing environment variables: {', '.join(missing)}")

        timeout = os.getenv("TX_TIMEOUT", str(DEFAULT_TX_TIMEOUT))
        try:
            values["tx_timeout"] = int(timeout)
        except ValueError:
            raise ConfigurationError(f"TX_TIMEOUT must be an integer, got {timeout!r}")

        values["medical_record_schema_uid"] = os.getenv("MEDICAL_RECORD_SCHEMA_UID", MEDICAL_RECORD_SCHEMA_UID)
        values["prescription_schema_uid"] = os.getenv("PRESCRIPTION_SCHEMA_UID", PRESCRIPTION_SCHEMA_UID)
        values["salt_secret"] = os.getenv("PRIVATE_DATA_SALT_SECRET") or None
        values["output_dir"] = os.getenv("OUTPUT_DIR", ".")

        settings = cls(**values)
        settings.validate_values()
        return settings

    def validate_values(self) -> None:
        """Check addresses and schema UIDs, raising ConfigurationError on the first bad one"""
        for label, address in (
            ("EAS_CONTRACT_ADDRESS", self.eas_contract_address),
            ("RECIPIENT_ADDRESS", self.recipient_address),
        ):
            if not Web3.is_address(address):
                raise ConfigurationError(f"{label} is not a valid address: {address}")

        for label, uid in (
            ("MEDICAL_RECORD_SCHEMA_UID", self.medical_record_schema_uid),
            ("PRESCRIPTION_SCHEMA_UID", self.prescription_schema_uid),
        ):
            if not _is_bytes32_hex(uid):
                raise ConfigurationError(f"{label} must be a 0x-prefixed 32-byte hex string: {uid}")

        if self.tx_timeout <= 0:
            raise ConfigurationError("TX_TIMEOUT must be positive")
