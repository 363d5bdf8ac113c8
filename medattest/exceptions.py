"""
Exception types raised by medattest.
"""


class MedAttestError(Exception):
    """Base class for all medattest errors"""


class ConfigurationError(MedAttestError):
    """Missing or invalid configuration (RPC URL, key material, addresses)"""


class InvalidIndexError(MedAttestError, IndexError):
    """A proof index is outside the document or repeated"""


class SchemaError(MedAttestError, ValueError):
    """Data does not match the attestation schema"""


class AttestationError(MedAttestError):
    """The attestation transaction reverted or produced no attestation"""

    def __init__(self, message, tx_hash=None):
        super().__init__(message)
        self.tx_hash = tx_hash
