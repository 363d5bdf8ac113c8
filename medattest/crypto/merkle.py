"""
Merkle commitments over private documents.

The tree layout follows OpenZeppelin's StandardMerkleTree: leaves are
double keccak256 hashes of ABI-encoded values, sorted, and stored at the end
of a flat array; inner nodes hash the sorted pair of their children. Proofs
produced here verify with OpenZeppelin's MerkleProof contract and with the
EAS SDK's PrivateData helpers.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from cryptography.hazmat.primitives import hashes, hmac
from eth_abi import encode
from eth_abi.exceptions import EncodingError
from web3 import Web3

from medattest.exceptions import InvalidIndexError, SchemaError
from medattest.models import Document, Field, FullTree, MultiProof
from medattest.schema import coerce_value, to_json_value

logger = logging.getLogger(__name__)

PRIVATE_DATA_LEAF_ENCODING = ("string", "string", "bytes")


def _keccak(data: bytes) -> bytes:
    return bytes(Web3.keccak(data))


def _to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def _from_hex(data: str) -> bytes:
    return bytes.fromhex(data[2:] if data[:2].lower() == "0x" else data)


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes in sorted order"""
    return _keccak(b"".join(sorted((a, b))))


def leaf_hash(leaf_encoding: Sequence[str], value: Sequence[Any]) -> bytes:
    """Double keccak256 of the ABI-encoded leaf"""
    return _keccak(_keccak(encode(list(leaf_encoding), list(value))))


def _left_child(i):
    return 2 * i + 1


def _right_child(i):
    return 2 * i + 2


def _parent(i):
    if i <= 0:
        raise ValueError("Root has no parent")
    return (i - 1) // 2


def _sibling(i):
    if i <= 0:
        raise ValueError("Root has no siblings")
    return i + 1 if i % 2 else i - 1


def make_merkle_tree(leaves: List[bytes]) -> List[bytes]:
    """Build the flat tree array from sorted leaf hashes"""
    if not leaves:
        raise ValueError("Expected non-zero number of leaves")

    tree = [b""] * (2 * len(leaves) - 1)
    for i, leaf in enumerate(leaves):
        tree[len(tree) - 1 - i] = leaf
    for i in range(len(tree) - 1 - len(leaves), -1, -1):
        tree[i] = hash_pair(tree[_left_child(i)], tree[_right_child(i)])
    return tree


def _check_leaf_node(tree: List[bytes], i: int) -> None:
    if not (len(tree) // 2 <= i < len(tree)):
        raise InvalidIndexError("Index is not a leaf")


def get_proof(tree: List[bytes], index: int) -> List[bytes]:
    _check_leaf_node(tree, index)
    proof = []
    while index > 0:
        proof.append(tree[_sibling(index)])
        index = _parent(index)
    return proof


def process_proof(leaf: bytes, proof: List[bytes]) -> bytes:
    node = leaf
    for sibling in proof:
        node = hash_pair(node, sibling)
    return node


def get_multi_proof(tree: List[bytes], indices: List[int]) -> Dict[str, Any]:
    """
    Compute a multi-proof for several leaves of the tree at once.

    Args:
        tree: Flat tree array
        indices: Tree positions of the leaves to prove

    Returns:
        dict: {"leaves", "proof", "proofFlags"} with leaves in proof order
    """
    for i in indices:
        _check_leaf_node(tree, i)

    indices = sorted(indices, reverse=True)
    if any(a == b for a, b in zip(indices, indices[1:])):
        raise InvalidIndexError("Cannot prove duplicated index")

    stack = list(indices)
    proof = []
    proof_flags = []

    while stack and stack[0] > 0:
        j = stack.pop(0)
        s = _sibling(j)
        p = _parent(j)

        if stack and s == stack[0]:
            proof_flags.append(True)
            stack.pop(0)
        else:
            proof_flags.append(False)
            proof.append(tree[s])
        stack.append(p)

    if not indices:
        proof.append(tree[0])

    return {"leaves": [tree[i] for i in indices], "proof": proof, "proofFlags": proof_flags}


def process_multi_proof(leaves: List[bytes], proof: List[bytes], proof_flags: List[bool]) -> bytes:
    """Rebuild the root from a multi-proof; raises ValueError if it is malformed"""
    if len(leaves) + len(proof) - 1 != len(proof_flags):
        raise ValueError("Provided proof is invalid")

    stack = list(leaves)
    proof = list(proof)
    for flag in proof_flags:
        if not stack:
            raise ValueError("Provided proof is invalid")
        a = stack.pop(0)
        if flag:
            if not stack:
                raise ValueError("Provided proof is invalid")
            b = stack.pop(0)
        else:
            if not proof:
                raise ValueError("Provided proof is invalid")
            b = proof.pop(0)
        stack.append(hash_pair(a, b))

    if len(stack) + len(proof) != 1:
        raise ValueError("Provided proof is invalid")
    return stack.pop() if stack else proof.pop(0)


class StandardMerkleTree:
    def __init__(self, tree: List[bytes], values: List[Tuple[Any, int]], leaf_encoding: Sequence[str]):
        self.tree = tree
        self.values = values  # [(value, tree_index)] in insertion order
        self.leaf_encoding = tuple(leaf_encoding)
        self._hash_lookup = {
            leaf_hash(self.leaf_encoding, value): i for i, (value, _) in enumerate(values)
        }

    @classmethod
    def of(cls, values: List[Sequence[Any]], leaf_encoding: Sequence[str]) -> "StandardMerkleTree":
        """Build a tree from leaf values; leaves are sorted by hash"""
        hashed = sorted(
            ((leaf_hash(leaf_encoding, value), i) for i, value in enumerate(values)),
            key=lambda item: item[0],
        )
        tree = make_merkle_tree([h for h, _ in hashed])

        indexed = [[value, 0] for value in values]
        for leaf_index, (_, value_index) in enumerate(hashed):
            indexed[value_index][1] = len(tree) - leaf_index - 1

        return cls(tree, [tuple(v) for v in indexed], leaf_encoding)

    @property
    def root(self) -> str:
        return _to_hex(self.tree[0])

    def __len__(self):
        return len(self.values)

    def _validate_index(self, index: int) -> int:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidIndexError(f"Index must be an integer, got {index!r}")
        if index < 0 or index >= len(self.values):
            raise InvalidIndexError(f"Index out of bounds: {index} (tree has {len(self.values)} leaves)")
        return index

    def leaf_hash(self, value: Sequence[Any]) -> str:
        return _to_hex(leaf_hash(self.leaf_encoding, value))

    def leaf_lookup(self, value: Sequence[Any]) -> int:
        """Return the insertion index of a leaf value"""
        h = leaf_hash(self.leaf_encoding, value)
        if h not in self._hash_lookup:
            raise ValueError("Leaf is not in tree")
        return self._hash_lookup[h]

    def get_proof(self, index: int) -> List[str]:
        """Sibling hashes from the leaf at insertion index `index` up to the root"""
        self._validate_index(index)
        value, tree_index = self.values[index]
        proof = get_proof(self.tree, tree_index)
        if process_proof(leaf_hash(self.leaf_encoding, value), proof) != self.tree[0]:
            raise ValueError("Unable to prove value")
        return [_to_hex(p) for p in proof]

    def get_multi_proof(self, indexes: List[int]) -> Dict[str, Any]:
        """
        Multi-proof for the leaves at the given insertion indexes.

        Returns:
            dict: {"leaves": [values], "proof": [hex], "proofFlags": [bool]}

        Raises:
            InvalidIndexError: If an index is out of range or repeated
        """
        for index in indexes:
            self._validate_index(index)

        proof = get_multi_proof(self.tree, [self.values[i][1] for i in indexes])
        leaves = [self.values[self._hash_lookup[h]][0] for h in proof["leaves"]]
        return {
            "leaves": leaves,
            "proof": [_to_hex(p) for p in proof["proof"]],
            "proofFlags": proof["proofFlags"],
        }

    def verify(self, index: int, proof: List[str]) -> bool:
        self._validate_index(index)
        return StandardMerkleTree.verify_leaf(self.root, self.leaf_encoding, self.values[index][0], proof)

    @staticmethod
    def verify_leaf(root: str, leaf_encoding: Sequence[str], value: Sequence[Any], proof: List[str]) -> bool:
        node = process_proof(leaf_hash(leaf_encoding, value), [_from_hex(p) for p in proof])
        return node == _from_hex(root)

    @staticmethod
    def verify_multi_proof(root: str, leaf_encoding: Sequence[str], multi_proof: Dict[str, Any]) -> bool:
        leaves = [leaf_hash(leaf_encoding, value) for value in multi_proof["leaves"]]
        try:
            node = process_multi_proof(
                leaves,
                [_from_hex(p) for p in multi_proof["proof"]],
                list(multi_proof["proofFlags"]),
            )
        except ValueError as e:
            logger.debug(f"Multi-proof rejected: {e}")
            return False
        return node == _from_hex(root)

    def validate(self) -> None:
        """Re-derive every node and leaf; raises ValueError on mismatch"""
        for i, (value, tree_index) in enumerate(self.values):
            if self.tree[tree_index] != leaf_hash(self.leaf_encoding, value):
                raise ValueError(f"Merkle tree does not contain value {i}")
        for i in range(len(self.tree) // 2):
            if self.tree[i] != hash_pair(self.tree[_left_child(i)], self.tree[_right_child(i)]):
                raise ValueError(f"Merkle tree node {i} is inconsistent")

    def dump(self) -> Dict[str, Any]:
        return {
            "format": "standard-v1",
            "leafEncoding": list(self.leaf_encoding),
            "tree": [_to_hex(node) for node in self.tree],
            "values": [
                {
                    "value": [to_json_value(t, v) for t, v in zip(self.leaf_encoding, value)],
                    "treeIndex": tree_index,
                }
                for value, tree_index in self.values
            ],
        }

    @classmethod
    def load(cls, data: Dict[str, Any]) -> "StandardMerkleTree":
        if data.get("format") != "standard-v1":
            raise ValueError(f"Unknown format {data.get('format')!r}")
        leaf_encoding = tuple(data["leafEncoding"])
        values = [
            (
                tuple(coerce_value(t, v) for t, v in zip(leaf_encoding, item["value"])),
                item["treeIndex"],
            )
            for item in data["values"]
        ]
        tree = cls([_from_hex(node) for node in data["tree"]], values, leaf_encoding)
        tree.validate()
        return tree


def derive_salt(secret: str, domain: str, index: int, field: Field) -> str:
    """Deterministic 32-byte salt for a field, keyed by a private secret"""
    h = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
    h.update(f"{domain}\x00{index}\x00{field.type}\x00{field.name}".encode("utf-8"))
    return _to_hex(h.finalize())


def random_salt() -> str:
    return _to_hex(os.urandom(32))


class PrivateData:
    """
    Salted Merkle commitment over the fields of a document.

    Each leaf is (type, name, abi.encode([type, bytes32], [value, salt])), so a
    proof reveals only the selected fields and the root leaks nothing about
    the others.
    """

    def __init__(self, fields: Union[Document, Sequence[Field]], salt_secret: Optional[str] = None, domain: str = ""):
        if isinstance(fields, Document):
            domain = domain or fields.name
            fields = fields.fields
        if not fields:
            raise ValueError("Cannot commit to an empty document")

        self.values = []
        for i, field in enumerate(fields):
            if field.salt is None:
                salt = derive_salt(salt_secret, domain, i, field) if salt_secret else random_salt()
                field = field.model_copy(update={"salt": salt})
            self.values.append(field)

        encoded = [self.encode_merkle_value(f) for f in self.values]
        self._by_leaf = {value: field for value, field in zip(encoded, self.values)}
        self.tree = StandardMerkleTree.of(encoded, PRIVATE_DATA_LEAF_ENCODING)

    @staticmethod
    def encode_merkle_value(field: Field) -> Tuple[str, str, bytes]:
        """Leaf tuple for a salted field"""
        if field.salt is None:
            raise SchemaError(f"Field {field.name!r} has no salt")
        salt = _from_hex(field.salt)
        if len(salt) != 32:
            raise SchemaError(f"Salt for field {field.name!r} must be 32 bytes")
        try:
            encoded = encode([field.type, "bytes32"], [coerce_value(field.type, field.value), salt])
        except (EncodingError, TypeError, ValueError) as e:
            raise SchemaError(f"Cannot encode field {field.name!r} as {field.type}: {e}") from e
        return field.type, field.name, encoded

    @property
    def root(self) -> str:
        return self.tree.root

    def get_full_tree(self) -> FullTree:
        return FullTree(root=self.root, values=list(self.values))

    def generate_multi_proof(self, indexes: List[int]) -> MultiProof:
        """
        Proof revealing only the fields at the given positions.

        Args:
            indexes: Field positions in document order

        Returns:
            MultiProof: Revealed leaves (with salts), sibling hashes and flags

        Raises:
            InvalidIndexError: If an index is outside [0, len(fields)) or repeated
        """
        proof = self.tree.get_multi_proof(list(indexes))
        leaves = [self._by_leaf[tuple(value)] for value in proof["leaves"]]
        logger.debug(f"Generated multi-proof for indexes {list(indexes)}")
        return MultiProof(leaves=leaves, proof=proof["proof"], proof_flags=proof["proofFlags"])

    @staticmethod
    def verify_multi_proof(root: str, proof: Union[MultiProof, Dict[str, Any]]) -> bool:
        """Check a multi-proof against a committed root"""
        if not isinstance(proof, MultiProof):
            proof = MultiProof.model_validate(proof)
        return StandardMerkleTree.verify_multi_proof(
            root,
            PRIVATE_DATA_LEAF_ENCODING,
            {
                "leaves": [PrivateData.encode_merkle_value(leaf) for leaf in proof.leaves],
                "proof": proof.proof,
                "proofFlags": proof.proof_flags,
            },
        )

    @staticmethod
    def verify_full_tree(tree: Union[FullTree, Dict[str, Any]]) -> str:
        """Rebuild the root from a full tree; raises ValueError if it does not match"""
        if not isinstance(tree, FullTree):
            tree = FullTree.model_validate(tree)
        rebuilt = StandardMerkleTree.of(
            [PrivateData.encode_merkle_value(f) for f in tree.values], PRIVATE_DATA_LEAF_ENCODING
        )
        if rebuilt.root != tree.root.lower():
            raise ValueError("Full tree does not match its root")
        return rebuilt.root


def create_root(fields: Union[Document, Sequence[Field]], salt_secret: Optional[str] = None) -> str:
    """Create a Merkle root from a document"""
    return PrivateData(fields, salt_secret=salt_secret).root
