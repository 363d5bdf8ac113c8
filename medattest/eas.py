"""
Client for the Ethereum Attestation Service (EAS) contract.

Signs and submits attest() transactions with web3.py, waits for the receipt
and pulls the new attestation UID out of the Attested event.
"""

import logging
from typing import Optional

from eth_account import Account
from web3 import Web3

from medattest.constants import Settings
from medattest.exceptions import AttestationError, ConfigurationError
from medattest.models import AttestationId, AttestationRequest, OnChainAttestation

logger = logging.getLogger(__name__)

_ATTESTATION_REQUEST_DATA = {
    "components": [
        {"internalType": "address", "name": "recipient", "type": "address"},
        {"internalType": "uint64", "name": "expirationTime", "type": "uint64"},
        {"internalType": "bool", "name": "revocable", "type": "bool"},
        {"internalType": "bytes32", "name": "refUID", "type": "bytes32"},
        {"internalType": "bytes", "name": "data", "type": "bytes"},
        {"internalType": "uint256", "name": "value", "type": "uint256"},
    ],
    "internalType": "struct AttestationRequestData",
    "name": "data",
    "type": "tuple",
}

EAS_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "bytes32", "name": "schema", "type": "bytes32"},
                    _ATTESTATION_REQUEST_DATA,
                ],
                "internalType": "struct AttestationRequest",
                "name": "request",
                "type": "tuple",
            }
        ],
        "name": "attest",
        "outputs": [{"internalType": "bytes32", "name": "", "type": "bytes32"}],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "bytes32", "name": "uid", "type": "bytes32"}],
        "name": "getAttestation",
        "outputs": [
            {
                "components": [
                    {"internalType": "bytes32", "name": "uid", "type": "bytes32"},
                    {"internalType": "bytes32", "name": "schema", "type": "bytes32"},
                    {"internalType": "uint64", "name": "time", "type": "uint64"},
                    {"internalType": "uint64", "name": "expirationTime", "type": "uint64"},
                    {"internalType": "uint64", "name": "revocationTime", "type": "uint64"},
                    {"internalType": "bytes32", "name": "refUID", "type": "bytes32"},
                    {"internalType": "address", "name": "recipient", "type": "address"},
                    {"internalType": "address", "name": "attester", "type": "address"},
                    {"internalType": "bool", "name": "revocable", "type": "bool"},
                    {"internalType": "bytes", "name": "data", "type": "bytes"},
                ],
                "internalType": "struct Attestation",
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "recipient", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "attester", "type": "address"},
            {"indexed": False, "internalType": "bytes32", "name": "uid", "type": "bytes32"},
            {"indexed": True, "internalType": "bytes32", "name": "schemaUID", "type": "bytes32"},
        ],
        "name": "Attested",
        "type": "event",
    },
]

ZERO_BYTES32 = b"\x00" * 32


def _schema_bytes(schema_uid: str) -> bytes:
    return bytes.fromhex(schema_uid[2:] if schema_uid[:2].lower() == "0x" else schema_uid)


class EAS:
    """Thin wrapper around the EAS contract bound to one signer"""

    def __init__(self, address: str, w3: Web3, account=None, tx_timeout: int = 120):
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.contract = w3.eth.contract(address=self.address, abi=EAS_ABI)
        self.account = account
        self.tx_timeout = tx_timeout

    def connect(self, account) -> "EAS":
        """Bind a signer account"""
        self.account = account
        return self

    def attest(self, schema_uid: str, request: AttestationRequest) -> AttestationId:
        """
        Submit an attestation and wait for it to be mined.

        Args:
            schema_uid: Registered schema UID (0x-prefixed bytes32)
            request: Recipient, expiration, revocability, reference and payload

        Returns:
            AttestationId: The UID assigned by the contract

        Raises:
            AttestationError: If the transaction reverted or emitted no Attested event
        """
        if self.account is None:
            raise ConfigurationError("No signer connected to EAS")

        ref_uid = request.ref_uid.to_bytes32() if request.ref_uid is not None else ZERO_BYTES32
        attestation_request = (
            _schema_bytes(schema_uid),
            (
                Web3.to_checksum_address(request.recipient),
                request.expiration_time,
                request.revocable,
                ref_uid,
                request.data,
                request.value,
            ),
        )

        tx = self.contract.functions.attest(attestation_request).build_transaction({
            "from": self.account.address,
            "nonce": self.w3.eth.get_transaction_count(self.account.address),
            "value": request.value,
        })
        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Attestation transaction sent: {tx_hash_hex}")

        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        if receipt["status"] != 1:
            raise AttestationError(f"Attestation transaction reverted: {tx_hash_hex}", tx_hash=tx_hash_hex)

        events = self.contract.events.Attested().process_receipt(receipt)
        if not events:
            raise AttestationError(f"No Attested event in receipt {tx_hash_hex}", tx_hash=tx_hash_hex)

        uid = AttestationId(bytes(events[0]["args"]["uid"]))
        logger.info(f"Attestation {uid.to_hex()} mined in block {receipt['blockNumber']}")
        return uid

    def get_attestation(self, uid: AttestationId) -> OnChainAttestation:
        """Read an attestation back from the contract"""
        raw = self.contract.functions.getAttestation(AttestationId(uid).to_bytes32()).call()
        attestation = OnChainAttestation.from_tuple(raw)
        if attestation.uid == 0:
            raise AttestationError(f"Attestation {AttestationId(uid).to_hex()} not found")
        return attestation


class ChainContext:
    """Process-wide chain handles, built once at startup"""

    def __init__(self, settings: Settings, w3: Web3, account, eas: EAS):
        self.settings = settings
        self.w3 = w3
        self.account = account
        self.eas = eas

    @classmethod
    def connect(cls, settings: Settings, w3: Optional[Web3] = None) -> "ChainContext":
        """
        Connect to the RPC endpoint and bind the signer to the EAS contract.

        Raises:
            ConfigurationError: If the private key is invalid or the node is unreachable
        """
        if w3 is None:
            w3 = Web3(Web3.HTTPProvider(settings.rpc_url, request_kwargs={"timeout": settings.tx_timeout}))
        if not w3.is_connected():
            raise ConfigurationError(f"Failed to connect to RPC endpoint {settings.rpc_url}")

        try:
            account = Account.from_key(settings.private_key)
        except Exception as e:
            raise ConfigurationError(f"Invalid PRIVATE_KEY: {e}") from e

        logger.info(f"Connected to chain {w3.eth.chain_id} as {account.address}")
        eas = EAS(settings.eas_contract_address, w3, account, tx_timeout=settings.tx_timeout)
        return cls(settings, w3, account, eas)
