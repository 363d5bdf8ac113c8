from typing import Any, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from pydantic_core import core_schema

MAX_UINT256 = 2**256 - 1


class AttestationId(int):
    """256-bit attestation UID, kept as an integer so it never loses precision"""

    def __new__(cls, value: Union[int, str, bytes]):
        if isinstance(value, (bytes, bytearray)):
            value = int.from_bytes(value, "big")
        elif isinstance(value, str):
            text = value.strip()
            value = int(text, 16) if text[:2].lower() == "0x" else int(text)
        value = int(value)
        if value < 0 or value > MAX_UINT256:
            raise ValueError(f"Attestation id out of uint256 range: {value}")
        return super().__new__(cls, value)

    @classmethod
    def __get_pydantic_core_schema__(cls, source, handler):
        return core_schema.no_info_plain_validator_function(cls)

    @classmethod
    def from_hex(cls, value: str) -> "AttestationId":
        return cls(value if value[:2].lower() == "0x" else "0x" + value)

    def to_hex(self) -> str:
        return "0x" + format(int(self), "064x")

    def to_bytes32(self) -> bytes:
        return int(self).to_bytes(32, "big")

    def __str__(self):
        return int.__repr__(self)

    def __repr__(self):
        return f"AttestationId({self.to_hex()})"


class Field(BaseModel):
    """One typed value inside a private document"""

    model_config = ConfigDict(frozen=True)

    type: str
    name: str
    value: Any
    salt: Optional[str] = None


class Document(BaseModel):
    """Ordered fields of one logical record; position is the proof index"""

    model_config = ConfigDict(frozen=True)

    name: str
    fields: Tuple[Field, ...]

    def __len__(self):
        return len(self.fields)

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def all_indexes(self) -> List[int]:
        return list(range(len(self.fields)))


class FullTree(BaseModel):
    """Root plus every salted value, enough to rebuild the commitment"""

    root: str
    values: List[Field]


class MultiProof(BaseModel):
    """Selectively revealed leaves and the hashes needed to reach the root"""

    model_config = ConfigDict(populate_by_name=True)

    leaves: List[Field]
    proof: List[str]
    proof_flags: List[bool] = PydanticField(alias="proofFlags")


class AttestationRequest(BaseModel):
    """Data section of an EAS attest() call"""

    recipient: str
    expiration_time: int = 0
    revocable: bool = True
    ref_uid: Optional[AttestationId] = None
    data: bytes = b""
    value: int = 0


class OnChainAttestation(BaseModel):
    """Attestation record as returned by EAS.getAttestation"""

    uid: AttestationId
    schema_uid: str
    time: int
    expiration_time: int
    revocation_time: int
    ref_uid: Optional[AttestationId]
    recipient: str
    attester: str
    revocable: bool
    data: bytes

    @classmethod
    def from_tuple(cls, raw) -> "OnChainAttestation":
        uid, schema, time, expiration, revocation, ref_uid, recipient, attester, revocable, data = raw
        ref = AttestationId(bytes(ref_uid))
        return cls(
            uid=AttestationId(bytes(uid)),
            schema_uid="0x" + bytes(schema).hex(),
            time=time,
            expiration_time=expiration,
            revocation_time=revocation,
            ref_uid=ref if ref else None,
            recipient=recipient,
            attester=attester,
            revocable=revocable,
            data=bytes(data),
        )
