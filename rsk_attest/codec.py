# rsk_attest/codec.py
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping

import eth_abi
from eth_abi.exceptions import DecodingError, EncodingError as AbiEncodingError
from hexbytes import HexBytes
from web3 import Web3

from rsk_attest.errors import EncodingError
from rsk_attest.schemas import ADDRESS_PATTERN

log = logging.getLogger(__name__)

TYPE_RE = re.compile(r"^(address|bool|string|bytes(\d+)?|(u?int)(\d+)?)(\[\])?$")


class FieldKind(str, Enum):
    ADDRESS = "address"
    BYTES32 = "bytes32"
    STRING = "string"
    UINT256 = "uint256"
    BOOL = "bool"


@dataclass(frozen=True)
class SchemaField:
    type: str
    name: str

    @property
    def is_array(self) -> bool:
        return self.type.endswith("[]")

    @property
    def element_type(self) -> str:
        return self.type[:-2] if self.is_array else self.type


def infer_type(value: Any) -> FieldKind:
    """
    Map a raw value onto one of the primitive kinds.

    bool is checked before int since it is an int subclass. Numeric strings
    stay strings; anything unrecognised falls back to string.
    """
    if isinstance(value, bool):
        return FieldKind.BOOL
    if isinstance(value, (int, float)):
        return FieldKind.UINT256
    if isinstance(value, str):
        if ADDRESS_PATTERN.match(value):
            return FieldKind.ADDRESS
        if value.startswith("0x"):
            return FieldKind.BYTES32
        return FieldKind.STRING
    return FieldKind.STRING


def _check_type(type_str: str) -> str:
    m = TYPE_RE.match(type_str)
    if not m:
        raise EncodingError(f"Unsupported field type: {type_str}")
    if m.group(2) is not None and not 1 <= int(m.group(2)) <= 32:
        raise EncodingError(f"Unsupported field type: {type_str}")
    if m.group(3) is not None:
        bits = m.group(4)
        if bits is None:
            # bare uint/int are aliases for the 256-bit variants
            type_str = type_str.replace(m.group(3), m.group(3) + "256", 1)
        elif int(bits) % 8 or not 8 <= int(bits) <= 256:
            raise EncodingError(f"Unsupported field type: {type_str}")
    return type_str


def parse_schema(definition: str) -> List[SchemaField]:
    """Parse "string eventName,uint256 prize" into ordered fields."""
    if not definition or not definition.strip():
        raise EncodingError("Schema definition is empty")
    fields = []
    for part in definition.split(","):
        pieces = part.split()
        if len(pieces) != 2:
            raise EncodingError(f"Malformed schema field: {part.strip()!r}")
        fields.append(SchemaField(type=_check_type(pieces[0]), name=pieces[1]))
    return fields


def _to_int(name: str, type_str: str, value: Any) -> int:
    if isinstance(value, bool):
        raise EncodingError(f"Field {name}: boolean is not a valid {type_str}")
    if isinstance(value, float):
        if not value.is_integer():
            raise EncodingError(f"Field {name}: {value} is not an integer")
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value, 16) if value.lower().startswith("0x") else int(value)
        except ValueError:
            raise EncodingError(f"Field {name}: {value!r} is not a valid {type_str}")
    elif not isinstance(value, int):
        raise EncodingError(f"Field {name}: {type(value).__name__} is not a valid {type_str}")

    bits = int(type_str.lstrip("uint") or 256)
    if type_str.startswith("uint"):
        low, high = 0, 2 ** bits - 1
    else:
        low, high = -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
    if not low <= value <= high:
        raise EncodingError(f"Field {name}: {value} out of range for {type_str}")
    return value


def _to_bytes(name: str, type_str: str, value: Any) -> bytes:
    try:
        if isinstance(value, (bytes, bytearray, HexBytes)):
            b = bytes(value)
        elif isinstance(value, str) and value.startswith("0x"):
            b = bytes(HexBytes(value))
        else:
            raise EncodingError(f"Field {name}: expected 0x-prefixed hex for {type_str}")
    except ValueError:
        raise EncodingError(f"Field {name}: {value!r} is not valid hex")
    if type_str != "bytes" and len(b) > int(type_str[5:]):
        raise EncodingError(f"Field {name}: {len(b)} bytes do not fit {type_str}")
    return b


def _coerce(name: str, type_str: str, value: Any) -> Any:
    if type_str.endswith("[]"):
        if not isinstance(value, (list, tuple)):
            raise EncodingError(f"Field {name}: expected a list for {type_str}")
        return [_coerce(name, type_str[:-2], v) for v in value]
    if type_str == "address":
        if not isinstance(value, str) or not ADDRESS_PATTERN.match(value):
            raise EncodingError(f"Field {name}: {value!r} is not a valid address")
        return Web3.to_checksum_address(value)
    if type_str == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise EncodingError(f"Field {name}: {value!r} is not a valid bool")
    if type_str == "string":
        if not isinstance(value, str):
            raise EncodingError(f"Field {name}: {type(value).__name__} is not a valid string")
        return value
    if type_str.startswith("bytes"):
        return _to_bytes(name, type_str, value)
    return _to_int(name, type_str, value)


def encode(definition: str, values: Mapping[str, Any]) -> str:
    """
    ABI-encode `values` following the field layout in `definition`.

    Every declared field must be present; extra keys are ignored.
    Returns 0x-prefixed hex.
    """
    fields = parse_schema(definition)
    types, args = [], []
    for f in fields:
        if f.name not in values:
            raise EncodingError(f"Missing value for field: {f.name}")
        types.append(f.type)
        args.append(_coerce(f.name, f.type, values[f.name]))

    try:
        encoded = eth_abi.encode(types, args)
    except (AbiEncodingError, TypeError, ValueError) as e:
        log.error("Failed to encode attestation data: %s", e)
        raise EncodingError(f"Failed to encode attestation data: {e}") from e

    log.debug("Attestation data encoded successfully")
    return "0x" + encoded.hex()


def infer_definition(values: Mapping[str, Any]) -> str:
    return ",".join(f"{infer_type(v).value} {k}" for k, v in values.items())


def encode_inferred(values: Mapping[str, Any]) -> str:
    """Encode raw values with a layout derived from their inferred kinds."""
    if not values:
        raise EncodingError("No values to encode")
    return encode(infer_definition(values), values)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def decode(definition: str, data: str) -> Dict[str, Any]:
    fields = parse_schema(definition)
    try:
        raw = bytes(HexBytes(data))
        decoded = eth_abi.decode([f.type for f in fields], raw)
    except (DecodingError, ValueError) as e:
        raise EncodingError(f"Failed to decode attestation data: {e}") from e
    return {f.name: _jsonable(v) for f, v in zip(fields, decoded)}
