# rsk_attest/blockchain.py
import json
import logging
import os
import time
from typing import Any, Mapping, Optional, Union

from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3
from web3.logs import DISCARD

from rsk_attest import codec
from rsk_attest.errors import ConfigurationError, EncodingError, RegistryError
from rsk_attest.schemas import AttestationReceipt, OnChainAttestation, SchemaRecord, ZERO_UID
from rsk_attest.settings import NetworkConfig

log = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "00" * 20

HERE = os.path.dirname(__file__)
ARTIFACTS_DIR = os.path.join(HERE, "artifacts")


def _load_abi(name: str) -> list:
    with open(os.path.join(ARTIFACTS_DIR, f"{name}.json")) as f:
        artifact = json.load(f)
    return artifact.get("abi", artifact)  # if the file is just the abi array


def _hex(value: Any) -> str:
    return "0x" + bytes(value).hex()


def _maybe_bytes32(value) -> bytes:
    """
    Accepts bytes, HexBytes, or hex string '0x...' and returns raw bytes (32 bytes).
    If given None or empty-like, returns 32 zero bytes.
    """
    if value is None or value == "":
        return b"\x00" * 32
    if isinstance(value, (bytes, bytearray, HexBytes)):
        b = bytes(value)
    elif isinstance(value, str):
        s = value[2:] if value.startswith("0x") else value
        b = bytes.fromhex(s)
    else:
        raise TypeError("Unsupported type for bytes32 conversion")
    # short values are left-padded, long values truncated
    return b.rjust(32, b"\x00") if len(b) < 32 else b[:32]


def schema_uid(definition: str, resolver: str = ZERO_ADDRESS, revocable: bool = True) -> str:
    """keccak256(abi.encodePacked(schema, resolver, revocable)), as the registry derives it."""
    raw = Web3.solidity_keccak(
        ["string", "address", "bool"],
        [definition, Web3.to_checksum_address(resolver), revocable],
    )
    return _hex(raw)


def prepare_attestation_data(
    registry: "RegistryClient", schema: str, data: Union[Mapping[str, Any], str, None]
) -> str:
    """
    Turn user-supplied attestation data into ABI-encoded bytes.

    A 0x string is taken as already encoded. A mapping, or a string holding a
    JSON object, is encoded against the schema's on-chain definition.
    """
    if data is None or data == "":
        return "0x"
    if isinstance(data, str):
        if data.startswith("0x"):
            return data
        try:
            data = json.loads(data)
        except ValueError:
            raise EncodingError("Attestation data must be a JSON object or 0x-prefixed hex") from None
        if not isinstance(data, dict):
            raise EncodingError("Attestation data must be a JSON object or 0x-prefixed hex")
    record = registry.get_schema(schema)
    if not record.schema_:
        raise EncodingError(f"Schema {schema} has no definition to encode against")
    return registry.encode_attestation_data(record.schema_, data)


class RegistryClient:
    """
    Reads and writes the EAS contract and its SchemaRegistry through web3.

    Every failure coming out of the provider or the contracts is re-raised as
    RegistryError. Writes need a signer (private key or mnemonic).
    """

    def __init__(
        self,
        network: NetworkConfig,
        private_key: Optional[str] = None,
        mnemonic: Optional[str] = None,
        w3: Optional[Web3] = None,
    ) -> None:
        self.network = network
        self.w3 = w3 or Web3(Web3.HTTPProvider(network.rpc_url))
        self.eas = self.w3.eth.contract(
            address=Web3.to_checksum_address(network.eas_contract_address), abi=_load_abi("EAS")
        )
        self.schema_registry = self.w3.eth.contract(
            address=Web3.to_checksum_address(network.schema_registry_address),
            abi=_load_abi("SchemaRegistry"),
        )
        # the signer is only derived when a write needs it; reads work without one
        self._private_key = private_key
        self._mnemonic = mnemonic
        self._account = None
        log.info("Connected to %s at %s", network.name, network.rpc_url)

    # ---------- SIGNER ----------
    def _require_account(self):
        if self._account is not None:
            return self._account
        try:
            if self._private_key:
                self._account = Account.from_key(self._private_key)
            elif self._mnemonic:
                Account.enable_unaudited_hdwallet_features()
                self._account = Account.from_mnemonic(self._mnemonic)
        except Exception as e:
            # the key material itself must never reach the message
            raise ConfigurationError(f"Invalid wallet configuration: {type(e).__name__}") from None
        if self._account is None:
            raise ConfigurationError("No valid wallet configuration found")
        return self._account

    def get_signer_address(self) -> str:
        return self._require_account().address

    def get_balance(self) -> str:
        address = self.get_signer_address()
        try:
            balance = self.w3.eth.get_balance(address)
        except Exception as e:
            raise RegistryError(f"Failed to fetch balance: {e}") from e
        return str(Web3.from_wei(balance, "ether"))

    def estimate_gas_price(self) -> str:
        try:
            return str(Web3.from_wei(self.w3.eth.gas_price, "gwei"))
        except Exception as e:
            raise RegistryError(f"Failed to fetch gas price: {e}") from e

    def _send_signed_transaction_and_wait(self, signed_tx):
        """
        Helper that works with both eth-account return shapes:
          - signed_tx.rawTransaction  (older)
          - signed_tx.raw_transaction (newer)
        Returns the transaction receipt.
        """
        raw = getattr(signed_tx, "raw_transaction", None) or getattr(signed_tx, "rawTransaction", None)
        if raw is None:
            raise RegistryError("Signed transaction object does not contain raw tx bytes")
        tx_hash = self.w3.eth.send_raw_transaction(raw)
        log.info("Waiting for transaction confirmation: %s", _hex(tx_hash))
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        log.info("Transaction confirmed in block %s", receipt["blockNumber"])
        return receipt

    def _transact(self, fn, value: int = 0):
        acct = self._require_account()
        params = {"from": acct.address, "value": value}
        gas = fn.estimate_gas(params)
        log.debug("Estimated gas: %s", gas)
        tx = fn.build_transaction({
            **params,
            "nonce": self.w3.eth.get_transaction_count(acct.address),
            "gas": gas,
            "gasPrice": self.w3.eth.gas_price,
        })
        signed = acct.sign_transaction(tx)
        return self._send_signed_transaction_and_wait(signed)

    # ---------- READS ----------
    def get_attestation(self, uid: str) -> OnChainAttestation:
        try:
            row = self.eas.functions.getAttestation(_maybe_bytes32(uid)).call()
        except Exception as e:
            log.error("Failed to get attestation %s: %s", uid, e)
            raise RegistryError(f"Failed to get attestation {uid}: {e}") from e

        (a_uid, a_schema, a_time, expiration, revocation, ref_uid,
         recipient, attester, revocable, data) = row
        return OnChainAttestation(
            uid=_hex(a_uid),
            schema=_hex(a_schema),
            time=int(a_time),
            expiration_time=int(expiration),
            revocation_time=int(revocation),
            ref_uid=_hex(ref_uid),
            recipient=recipient,
            attester=attester,
            revocable=bool(revocable),
            data=_hex(data),
        )

    def get_schema(self, uid: str) -> SchemaRecord:
        try:
            s_uid, resolver, revocable, definition = self.schema_registry.functions.getSchema(
                _maybe_bytes32(uid)
            ).call()
        except Exception as e:
            log.error("Failed to get schema %s: %s", uid, e)
            raise RegistryError(f"Failed to get schema {uid}: {e}") from e
        return SchemaRecord(uid=uid, schema=definition, resolver=resolver, revocable=bool(revocable))

    # ---------- WRITES ----------
    def attest(
        self,
        schema: str,
        recipient: str,
        data: str = "0x",
        expiration_time: int = 0,
        revocable: bool = True,
        value: str = "0",
        ref_uid: Optional[str] = None,
    ) -> AttestationReceipt:
        self._require_account()
        log.info("Creating attestation...")
        log.debug("Schema: %s", schema)
        log.debug("Recipient: %s", recipient)
        request = (
            _maybe_bytes32(schema),
            (
                Web3.to_checksum_address(recipient),
                int(expiration_time),
                revocable,
                _maybe_bytes32(ref_uid or ZERO_UID),
                HexBytes(data),
                Web3.to_wei(value, "ether"),
            ),
        )
        try:
            receipt = self._transact(self.eas.functions.attest(request), value=Web3.to_wei(value, "ether"))
            events = self.eas.events.Attested().process_receipt(receipt, errors=DISCARD)
        except ConfigurationError:
            raise
        except Exception as e:
            log.error("Failed to create attestation: %s", e)
            raise RegistryError(f"Failed to create attestation: {e}") from e

        if not events:
            raise RegistryError("Attestation transaction did not emit an Attested event")
        uid = _hex(events[0]["args"]["uid"])
        log.info("Attestation created with UID: %s", uid)
        return AttestationReceipt(
            uid=uid,
            tx_hash=_hex(receipt["transactionHash"]),
            block_number=receipt.get("blockNumber"),
            timestamp=int(time.time()),
        )

    def revoke(self, schema: str, uid: str) -> str:
        self._require_account()
        log.info("Revoking attestation: %s", uid)
        request = (_maybe_bytes32(schema), (_maybe_bytes32(uid), 0))
        try:
            receipt = self._transact(self.eas.functions.revoke(request))
        except ConfigurationError:
            raise
        except Exception as e:
            log.error("Failed to revoke attestation: %s", e)
            raise RegistryError(f"Failed to revoke attestation {uid}: {e}") from e
        log.info("Attestation revoked successfully")
        return _hex(receipt["transactionHash"])

    def register_schema(self, definition: str, resolver: str = ZERO_ADDRESS, revocable: bool = True) -> str:
        codec.parse_schema(definition)
        self._require_account()
        log.info("Creating new schema...")
        log.debug("Schema definition: %s", definition)
        fn = self.schema_registry.functions.register(
            definition, Web3.to_checksum_address(resolver), revocable
        )
        try:
            self._transact(fn)
        except ConfigurationError:
            raise
        except Exception as e:
            log.error("Failed to create schema: %s", e)
            raise RegistryError(f"Failed to create schema: {e}") from e
        uid = schema_uid(definition, resolver, revocable)
        log.info("Schema created with UID: %s", uid)
        return uid

    def encode_attestation_data(self, definition: str, data: Mapping[str, Any]) -> str:
        return codec.encode(definition, data)
