import eth_abi
import pytest
from web3 import Web3

from rsk_attest import codec
from rsk_attest.codec import FieldKind, SchemaField
from rsk_attest.errors import EncodingError

ADDRESS = "0x" + "ab" * 20


def test_parse_schema_fields_in_order():
    fields = codec.parse_schema("string eventName, uint256 prize ,bool completed")
    assert fields == [
        SchemaField("string", "eventName"),
        SchemaField("uint256", "prize"),
        SchemaField("bool", "completed"),
    ]


def test_parse_schema_normalises_bare_uint():
    assert codec.parse_schema("uint count,int[] deltas") == [
        SchemaField("uint256", "count"),
        SchemaField("int256[]", "deltas"),
    ]


@pytest.mark.parametrize("definition", ["", "  ", "string", "string a b", "uint7 x", "bytes33 x", "float x"])
def test_parse_schema_rejects_malformed(definition):
    with pytest.raises(EncodingError):
        codec.parse_schema(definition)


@pytest.mark.parametrize(
    "value, kind",
    [
        (True, FieldKind.BOOL),
        (False, FieldKind.BOOL),
        (30, FieldKind.UINT256),
        (1.5, FieldKind.UINT256),
        (ADDRESS, FieldKind.ADDRESS),
        ("0x1234", FieldKind.BYTES32),
        ("0x" + "ab" * 32, FieldKind.BYTES32),
        ("Bob", FieldKind.STRING),
        ("42", FieldKind.STRING),
        (None, FieldKind.STRING),
        ([1, 2], FieldKind.STRING),
    ],
)
def test_infer_type(value, kind):
    assert codec.infer_type(value) == kind


def test_encode_matches_abi_layout():
    encoded = codec.encode("string name,uint256 age", {"name": "Bob", "age": 30})

    assert encoded == "0x" + eth_abi.encode(["string", "uint256"], ["Bob", 30]).hex()
    assert codec.encode("string name,uint256 age", {"age": 30, "name": "Bob"}) == encoded


def test_encode_ignores_extra_keys():
    assert codec.encode("string name", {"name": "Bob", "extra": 1}) == codec.encode("string name", {"name": "Bob"})


def test_encode_missing_field():
    with pytest.raises(EncodingError, match="name"):
        codec.encode("string name", {})


@pytest.mark.parametrize(
    "definition, values",
    [
        ("uint8 small", {"small": 256}),
        ("uint256 n", {"n": -1}),
        ("uint256 n", {"n": 1.5}),
        ("uint256 n", {"n": "twelve"}),
        ("uint256 n", {"n": True}),
        ("string s", {"s": 12}),
        ("address a", {"a": "0x1234"}),
        ("bool b", {"b": "yes"}),
        ("bytes32 h", {"h": "0x" + "00" * 33}),
        ("bytes32 h", {"h": "not hex"}),
        ("uint256[] xs", {"xs": 5}),
    ],
)
def test_encode_rejects_unrepresentable_values(definition, values):
    with pytest.raises(EncodingError):
        codec.encode(definition, values)


def test_encode_coerces_loose_input():
    loose = codec.encode(
        "uint256 n,bool b,address a,int8 d",
        {"n": "0x10", "b": "true", "a": ADDRESS, "d": -3},
    )
    strict = eth_abi.encode(
        ["uint256", "bool", "address", "int8"],
        [16, True, Web3.to_checksum_address(ADDRESS), -3],
    )
    assert loose == "0x" + strict.hex()


def test_encode_short_bytes32_is_right_padded():
    encoded = codec.encode("bytes32 h", {"h": "0x1234"})
    assert encoded == "0x1234" + "00" * 30


def test_encode_inferred_derives_definition():
    values = {"name": "Bob", "age": 30, "winner": True, "wallet": ADDRESS}
    assert codec.infer_definition(values) == "string name,uint256 age,bool winner,address wallet"
    assert codec.encode_inferred(values) == codec.encode(codec.infer_definition(values), values)


def test_encode_inferred_requires_values():
    with pytest.raises(EncodingError):
        codec.encode_inferred({})


def test_decode_inverts_encode():
    definition = "string eventName,uint256 prize,bool completed,bytes32 ref"
    values = {"eventName": "ETHGlobal", "prize": 5000, "completed": True, "ref": "0x" + "ef" * 32}

    assert codec.decode(definition, codec.encode(definition, values)) == values


def test_decode_rejects_garbage():
    with pytest.raises(EncodingError):
        codec.decode("string name", "0x1234")
