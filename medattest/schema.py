"""
Attestation schema encoding.

Schemas are plain EAS schema strings such as "bytes32 privateData" or
"string name, uint256 age". Values are ABI-encoded in schema order.
"""

import logging
from typing import Any, Dict, List

from eth_abi import decode, encode, is_encodable_type
from eth_abi.exceptions import DecodingError, EncodingError
from web3 import Web3

from medattest.constants import ZERO_ADDRESS
from medattest.exceptions import SchemaError

logger = logging.getLogger(__name__)


def coerce_value(abi_type: str, value: Any) -> Any:
    """
    Bring a value read back from JSON into the Python type eth_abi expects.

    Args:
        abi_type: Solidity type tag (e.g. "uint256", "bool", "bytes32")
        value: The raw value

    Returns:
        The value converted for ABI encoding
    """
    if abi_type.endswith("]"):
        inner = abi_type[: abi_type.rindex("[")]
        return [coerce_value(inner, v) for v in value]
    if abi_type.startswith(("uint", "int")):
        if isinstance(value, bool):
            raise SchemaError(f"Expected an integer for {abi_type}, got {value!r}")
        if isinstance(value, str):
            return int(value, 16) if value[:2].lower() == "0x" else int(value)
        return int(value)
    if abi_type == "bool":
        if isinstance(value, str):
            if value.lower() not in ("true", "false"):
                raise SchemaError(f"Expected a boolean, got {value!r}")
            return value.lower() == "true"
        return bool(value)
    if abi_type.startswith("bytes"):
        if isinstance(value, str):
            return bytes.fromhex(value[2:] if value[:2].lower() == "0x" else value)
        return bytes(value)
    if abi_type == "address":
        return Web3.to_checksum_address(value)
    return value


def to_json_value(abi_type: str, value: Any) -> Any:
    """Render a decoded ABI value in the form the EAS SDK prints it"""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        inner = abi_type[: abi_type.rindex("[")] if abi_type.endswith("]") else abi_type
        return [to_json_value(inner, v) for v in value]
    return value


def get_schema_uid(schema: str, resolver: str = ZERO_ADDRESS, revocable: bool = True) -> str:
    """
    Compute the UID the EAS schema registry assigns to a schema.

    Args:
        schema: The schema string
        resolver: Resolver contract address
        revocable: Whether attestations under the schema are revocable

    Returns:
        str: 0x-prefixed bytes32 schema UID
    """
    uid = Web3.solidity_keccak(["string", "address", "bool"], [schema, resolver, revocable])
    return Web3.to_hex(uid)


class SchemaEncoder:
    def __init__(self, schema: str):
        self.schema_string = schema
        self.schema = self._parse(schema)

    @staticmethod
    def _parse(schema: str) -> List[Dict[str, str]]:
        items = []
        for part in schema.split(","):
            part = part.strip()
            if not part:
                raise SchemaError(f"Empty item in schema {schema!r}")
            if "(" in part:
                raise SchemaError(f"Tuple types are not supported: {part!r}")
            pieces = part.split()
            if len(pieces) != 2:
                raise SchemaError(f"Schema item must be 'type name': {part!r}")
            abi_type, name = pieces
            if not is_encodable_type(abi_type):
                raise SchemaError(f"Unknown ABI type {abi_type!r}")
            items.append({"type": abi_type, "name": name})
        return items

    @staticmethod
    def is_schema_valid(schema: str) -> bool:
        try:
            SchemaEncoder._parse(schema)
        except SchemaError:
            return False
        return True

    @property
    def types(self) -> List[str]:
        return [item["type"] for item in self.schema]

    def encode_data(self, data: List[Dict[str, Any]]) -> bytes:
        """
        ABI-encode values against the schema.

        Args:
            data: List of {"name", "type", "value"} dicts in schema order

        Returns:
            bytes: The encoded payload

        Raises:
            SchemaError: If the items do not match the schema
        """
        if len(data) != len(self.schema):
            raise SchemaError(f"Expected {len(self.schema)} values, got {len(data)}")

        values = []
        for item, expected in zip(data, self.schema):
            if item["name"] != expected["name"] or item["type"] != expected["type"]:
                raise SchemaError(
                    f"Incompatible param: expected {expected['type']} {expected['name']}, "
                    f"got {item['type']} {item['name']}"
                )
            values.append(coerce_value(expected["type"], item["value"]))

        try:
            return encode(self.types, values)
        except EncodingError as e:
            raise SchemaError(f"Cannot encode data for schema {self.schema_string!r}: {e}") from e

    def decode_data(self, data: bytes) -> List[Dict[str, Any]]:
        """Decode a payload back into {"name", "type", "value"} items"""
        try:
            values = decode(self.types, bytes(data))
        except DecodingError as e:
            raise SchemaError(f"Cannot decode data for schema {self.schema_string!r}: {e}") from e
        return [
            {"name": item["name"], "type": item["type"], "value": to_json_value(item["type"], value)}
            for item, value in zip(self.schema, values)
        ]
