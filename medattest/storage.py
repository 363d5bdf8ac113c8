"""
JSON result files.

Integers that JSON readers would round through a double (anything above
2**53 - 1) are written as decimal strings; attestation ids always are.
"""

import json
import logging
import os
from typing import Any, Optional

from pydantic import BaseModel

from medattest.models import AttestationId

logger = logging.getLogger(__name__)

MAX_SAFE_INTEGER = 2**53 - 1


class SerializationPolicy:
    def __init__(self, max_exact_int: Optional[int] = MAX_SAFE_INTEGER, stringify_identifiers: bool = True):
        """
        Args:
            max_exact_int: Largest integer magnitude written as a JSON number;
                None writes every integer as a number
            stringify_identifiers: Write AttestationId values as decimal strings
        """
        self.max_exact_int = max_exact_int
        self.stringify_identifiers = stringify_identifiers

    def convert(self, value: Any) -> Any:
        """Recursively turn value into plain JSON types"""
        if isinstance(value, BaseModel):
            return self.convert(value.model_dump(by_alias=True))
        if isinstance(value, AttestationId):
            return str(value) if self.stringify_identifiers else self._convert_int(int(value))
        if isinstance(value, bool) or value is None or isinstance(value, (str, float)):
            return value
        if isinstance(value, int):
            return self._convert_int(value)
        if isinstance(value, (bytes, bytearray)):
            return "0x" + bytes(value).hex()
        if isinstance(value, dict):
            return {str(k): self.convert(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.convert(v) for v in value]
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

    def _convert_int(self, value: int) -> Any:
        if self.max_exact_int is not None and abs(value) > self.max_exact_int:
            return str(value)
        return int(value)

    def dumps(self, data: Any) -> str:
        return json.dumps(self.convert(data), indent=2)


DEFAULT_POLICY = SerializationPolicy()


def write_json(path: str, data: Any, policy: SerializationPolicy = DEFAULT_POLICY) -> str:
    """
    Write data to a UTF-8 JSON file, replacing any existing file.

    Args:
        path: Target file
        data: Value to serialize (dicts, lists, pydantic models, ids)
        policy: Integer/bytes conversion policy

    Returns:
        str: The path written
    """
    return write_text(path, policy.dumps(data))


def write_text(path: str, text: str) -> str:
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    logger.info(f"Wrote {path}")
    return path


def read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def output_path(output_dir: str, filename: str) -> str:
    os.makedirs(output_dir, exist_ok=True)
    return os.path.join(output_dir, filename)
