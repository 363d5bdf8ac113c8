import os

from web3 import Web3

from medattest.constants import Settings
from medattest.eas import ChainContext
from medattest.models import AttestationId, OnChainAttestation

# Hardhat development accounts
TEST_ACCOUNTS = {
    "Attester": {
        "address": "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
        "private_key": "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
    },
    "Patient": {
        "address": "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
        "private_key": "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
    },
}

EAS_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
SALT_SECRET = "test-salt-secret"


def make_settings(**overrides) -> Settings:
    values = {
        "rpc_url": "http://127.0.0.1:8545",
        "private_key": TEST_ACCOUNTS["Attester"]["private_key"],
        "eas_contract_address": EAS_ADDRESS,
        "recipient_address": TEST_ACCOUNTS["Patient"]["address"],
        "salt_secret": SALT_SECRET,
    }
    values.update(overrides)
    return Settings(**values)


class FakeEAS:
    """In-memory stand-in for the EAS contract"""

    def __init__(self, attester=TEST_ACCOUNTS["Attester"]["address"]):
        self.attester = attester
        self.attestations = {}
        self.requests = []

    def attest(self, schema_uid, request):
        if request.ref_uid is not None and request.ref_uid not in self.attestations:
            raise ValueError(f"Unknown reference {request.ref_uid.to_hex()}")

        uid = AttestationId(bytes(Web3.keccak(os.urandom(32) + request.data)))
        self.requests.append((schema_uid, request))
        self.attestations[uid] = OnChainAttestation(
            uid=uid,
            schema_uid=schema_uid,
            time=1700000000 + len(self.attestations),
            expiration_time=request.expiration_time,
            revocation_time=0,
            ref_uid=request.ref_uid,
            recipient=request.recipient,
            attester=self.attester,
            revocable=request.revocable,
            data=request.data,
        )
        return uid

    def get_attestation(self, uid):
        return self.attestations[AttestationId(uid)]


def make_context(eas=None, **overrides) -> ChainContext:
    settings = make_settings(**overrides)
    return ChainContext(settings, w3=None, account=None, eas=eas or FakeEAS())
