import hashlib

from idenawl.core.merkle import (
    MerkleTree,
    ProofStep,
    build_proof,
    build_root,
    leaf_hash,
    verify_proof,
)


def _addr(n: int) -> str:
    return "0x" + format(n, "040x")


def test_three_address_regression_vector():
    root = build_root([_addr(1), _addr(2), _addr(3)])
    assert root == "839d9a6ca43af7a125e9ece32839c12217469d40453b82e8a46b91da964f1e03"

    steps, found = build_proof([_addr(1), _addr(2), _addr(3)], _addr(2))
    assert found is True
    assert steps == [
        ProofStep(hash=leaf_hash(_addr(1)).hex(), left=True),
        ProofStep(hash=leaf_hash(_addr(3)).hex(), left=False),
    ]
    assert verify_proof(_addr(2), steps, "839d9a6ca43af7a125e9ece32839c12217469d40453b82e8a46b91da964f1e03")


def test_empty_set_has_empty_root():
    assert build_root([]) == ""
    steps, found = build_proof([], _addr(1))
    assert steps == []
    assert found is False


def test_single_address_root_is_leaf_hash():
    a = _addr(7)
    assert build_root([a]) == hashlib.sha256(a.encode()).hexdigest()
    steps, found = build_proof([a], a)
    assert found is True
    assert steps == []
    assert verify_proof(a, steps, build_root([a]))


def test_odd_node_is_carried_not_duplicated():
    a, b, c = _addr(1), _addr(2), _addr(3)
    ab = hashlib.sha256(leaf_hash(a) + leaf_hash(b)).digest()
    expected = hashlib.sha256(ab + leaf_hash(c)).hexdigest()
    assert build_root([a, b, c]) == expected

    steps, found = build_proof([a, b, c], c)
    assert found is True
    # c is carried past level 0 and only pairs with ab at level 1.
    assert steps == [ProofStep(hash=ab.hex(), left=True)]


def test_root_ignores_order_case_and_duplicates():
    mixed = "0x" + "ab" * 20
    addrs = [_addr(5), _addr(1), mixed, _addr(2)]
    shuffled = [mixed.upper().replace("0X", "0x"), _addr(2), _addr(5), _addr(1), _addr(1)]
    assert build_root(addrs) == build_root(shuffled)


def test_proofs_verify_for_every_member():
    addrs = [_addr(i) for i in range(1, 12)]
    tree = MerkleTree(addrs)
    for a in addrs:
        steps, found = tree.proof(a)
        assert found
        assert verify_proof(a, steps, tree.root)


def test_proof_for_missing_address():
    steps, found = build_proof([_addr(1), _addr(2)], _addr(9))
    assert found is False
    assert steps == []


def test_verify_rejects_tampering_and_never_raises():
    addrs = [_addr(i) for i in range(1, 6)]
    tree = MerkleTree(addrs)
    steps, _ = tree.proof(addrs[1])

    assert not verify_proof(_addr(42), steps, tree.root)
    assert not verify_proof(addrs[1], steps, "00" * 32)

    flipped = [ProofStep(hash=s.hash, left=not s.left) for s in steps]
    assert not verify_proof(addrs[1], flipped, tree.root)

    bad = [ProofStep(hash="zz-not-hex", left=True)]
    assert verify_proof(addrs[1], bad, tree.root) is False


def test_verify_accepts_uppercase_root():
    addrs = [_addr(1), _addr(2)]
    tree = MerkleTree(addrs)
    steps, _ = tree.proof(addrs[0])
    assert verify_proof(addrs[0], steps, tree.root.upper())


def test_proof_step_dict_shape():
    s = ProofStep(hash="ab" * 32, left=False)
    assert s.to_dict() == {"hash": "ab" * 32, "left": False}
    assert ProofStep.from_dict(s.to_dict()) == s
