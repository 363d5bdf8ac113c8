import pytest

from medattest.crypto.merkle import (
    PrivateData,
    StandardMerkleTree,
    create_root,
    derive_salt,
    hash_pair,
    make_merkle_tree,
)
from medattest.exceptions import InvalidIndexError, SchemaError
from medattest.models import Field
from medattest.records import create_medical_record, create_prescription, make_document

from helpers import SALT_SECRET


@pytest.fixture
def medical_record():
    return create_medical_record()


@pytest.fixture
def private_data(medical_record):
    return PrivateData(medical_record, salt_secret=SALT_SECRET)


def test_root_is_bytes32_hex(private_data):
    assert private_data.root.startswith("0x")
    assert len(private_data.root) == 66


def test_full_proof_verifies(private_data, medical_record):
    proof = private_data.generate_multi_proof(medical_record.all_indexes())

    assert PrivateData.verify_multi_proof(private_data.root, proof)
    assert sorted(leaf.name for leaf in proof.leaves) == sorted(medical_record.field_names())
    # every leaf is revealed, so nothing is left to prove with sibling hashes
    assert proof.proof == []
    assert all(proof.proof_flags)


def test_full_proof_verifies_for_prescription():
    prescription = create_prescription()
    private_data = PrivateData(prescription)
    proof = private_data.generate_multi_proof([0, 1, 2, 3])
    assert PrivateData.verify_multi_proof(private_data.root, proof)


def test_partial_proof_hides_other_fields(private_data):
    proof = private_data.generate_multi_proof([0, 3])
    serialized = proof.model_dump_json(by_alias=True)

    assert {leaf.name for leaf in proof.leaves} == {"name", "diagnosis"}
    assert "isInsured" not in serialized
    assert '"age"' not in serialized
    assert PrivateData.verify_multi_proof(private_data.root, proof)


def test_proof_dict_form_verifies(private_data):
    proof = private_data.generate_multi_proof([1])
    data = proof.model_dump(by_alias=True)
    data["leaves"][0]["value"] = "28"
    assert PrivateData.verify_multi_proof(private_data.root, data)


def test_tampered_value_fails(private_data):
    proof = private_data.generate_multi_proof([3])
    leaf = proof.leaves[0].model_copy(update={"value": "Healthy"})
    tampered = proof.model_copy(update={"leaves": [leaf]})
    assert not PrivateData.verify_multi_proof(private_data.root, tampered)


def test_wrong_root_fails(private_data):
    proof = private_data.generate_multi_proof([0, 1])
    other = PrivateData(create_prescription(), salt_secret=SALT_SECRET)
    assert not PrivateData.verify_multi_proof(other.root, proof)


def test_malformed_proof_is_rejected(private_data):
    proof = private_data.generate_multi_proof([0])
    broken = proof.model_copy(update={"proof_flags": proof.proof_flags + [True]})
    assert not PrivateData.verify_multi_proof(private_data.root, broken)


@pytest.mark.parametrize("indexes", [[4], [-1], [0, 7], ["1"], [True]])
def test_invalid_index(private_data, indexes):
    with pytest.raises(InvalidIndexError):
        private_data.generate_multi_proof(indexes)


def test_invalid_index_is_an_index_error(private_data):
    with pytest.raises(IndexError):
        private_data.generate_multi_proof([10])


def test_duplicate_index(private_data):
    with pytest.raises(InvalidIndexError):
        private_data.generate_multi_proof([1, 1])


def test_empty_proof_carries_root(private_data):
    proof = private_data.generate_multi_proof([])
    assert proof.leaves == []
    assert proof.proof == [private_data.root]
    assert PrivateData.verify_multi_proof(private_data.root, proof)


def test_salted_roots_are_deterministic_with_secret(medical_record):
    assert create_root(medical_record, SALT_SECRET) == create_root(medical_record, SALT_SECRET)
    assert create_root(medical_record, SALT_SECRET) != create_root(medical_record, "another-secret")


def test_random_salts_differ(medical_record):
    assert create_root(medical_record) != create_root(medical_record)


def test_explicit_salt_wins(medical_record):
    salt = "0x" + "11" * 32
    fields = [f.model_copy(update={"salt": salt}) for f in medical_record.fields]
    data = PrivateData(fields, salt_secret=SALT_SECRET)
    assert all(v.salt == salt for v in data.values)


def test_salt_depends_on_position():
    field = Field(type="string", name="x", value="y")
    assert derive_salt(SALT_SECRET, "doc", 0, field) != derive_salt(SALT_SECRET, "doc", 1, field)


def test_bad_salt_length():
    field = Field(type="string", name="x", value="y", salt="0x1234")
    with pytest.raises(SchemaError):
        PrivateData([field])


def test_value_type_mismatch():
    document = make_document("bad", [("uint256", "age", "not a number")])
    with pytest.raises(ValueError):
        PrivateData(document)


def test_empty_document():
    with pytest.raises(ValueError):
        PrivateData([])


def test_full_tree_round_trip(private_data):
    tree = private_data.get_full_tree()
    assert PrivateData.verify_full_tree(tree.model_dump()) == private_data.root

    values = list(tree.values)
    values[0] = values[0].model_copy(update={"value": "Bob"})
    with pytest.raises(ValueError):
        PrivateData.verify_full_tree(tree.model_copy(update={"values": values}))


def test_make_merkle_tree_shape():
    leaves = [bytes([i]) * 32 for i in range(3)]
    tree = make_merkle_tree(leaves)
    assert len(tree) == 5
    assert tree[4] == leaves[0]
    assert tree[1] == hash_pair(tree[3], tree[4])
    assert tree[0] == hash_pair(tree[1], tree[2])


def test_hash_pair_is_commutative():
    a, b = b"\x01" * 32, b"\x02" * 32
    assert hash_pair(a, b) == hash_pair(b, a)


class TestStandardMerkleTree:
    values = [["0x1111111111111111111111111111111111111111", 5000], ["0x2222222222222222222222222222222222222222", 2500],
              ["0x3333333333333333333333333333333333333333", 1]]
    encoding = ["address", "uint256"]

    def test_single_proofs(self):
        tree = StandardMerkleTree.of(self.values, self.encoding)
        for i, value in enumerate(self.values):
            proof = tree.get_proof(i)
            assert tree.verify(i, proof)
            assert StandardMerkleTree.verify_leaf(tree.root, self.encoding, value, proof)

    def test_leaf_lookup(self):
        tree = StandardMerkleTree.of(self.values, self.encoding)
        assert tree.leaf_lookup(self.values[2]) == 2
        with pytest.raises(ValueError):
            tree.leaf_lookup(["0x4444444444444444444444444444444444444444", 7])

    def test_order_independent_root(self):
        forward = StandardMerkleTree.of(self.values, self.encoding)
        backward = StandardMerkleTree.of(list(reversed(self.values)), self.encoding)
        assert forward.root == backward.root

    def test_dump_and_load(self):
        tree = StandardMerkleTree.of(self.values, self.encoding)
        loaded = StandardMerkleTree.load(tree.dump())
        assert loaded.root == tree.root
        assert loaded.get_multi_proof([0, 2])["proof"] == tree.get_multi_proof([0, 2])["proof"]

    def test_load_rejects_tampered_tree(self):
        dumped = StandardMerkleTree.of(self.values, self.encoding).dump()
        dumped["values"][0]["value"][1] = "5001"
        with pytest.raises(ValueError):
            StandardMerkleTree.load(dumped)

    def test_multi_proof(self):
        tree = StandardMerkleTree.of(self.values, self.encoding)
        proof = tree.get_multi_proof([0, 1])
        assert StandardMerkleTree.verify_multi_proof(tree.root, self.encoding, proof)
