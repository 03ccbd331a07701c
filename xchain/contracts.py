import typing
from pathlib import Path
from typing import Any, Dict, List, Sequence

from eth_utils import to_hex
from eth_utils.abi import collapse_if_tuple, function_abi_to_4byte_selector
from hexbytes import HexBytes
from web3.auto import w3

from xchain.constants import DEFAULT_CONSTRUCTOR_ABI, UNKNOWN_ARGUMENT_NAME
from xchain.utils import _load_json


class ContractKind:
    """
    A deployable contract type: its name, ABI and deployment bytecode.
    """

    class Invalid(ValueError):
        """Raised when arguments do not match the contract ABI"""

    def __init__(self, name: str, abi: List[Dict[str, Any]], bytecode: typing.Union[bytes, str]):
        bytecode = bytes(HexBytes(bytecode or b""))
        if not bytecode:
            raise self.Invalid(f"No deployment bytecode for {name}.")
        self.name = name
        self.abi = list(abi)
        self.bytecode = bytecode

    def __repr__(self) -> str:
        return f"ContractKind({self.name})"

    @classmethod
    def from_artifact(cls, filepath: Path, name: typing.Optional[str] = None) -> "ContractKind":
        """Loads a compiled contract artifact (hardhat/foundry style JSON with abi + bytecode)."""
        data = _load_json(filepath)
        bytecode = data.get("bytecode")
        if isinstance(bytecode, dict):
            # foundry nests the bytecode object
            bytecode = bytecode.get("object")
        name = name or data.get("contractName") or filepath.stem
        return cls(name=name, abi=data["abi"], bytecode=bytecode)

    @property
    def constructor_abi(self) -> Dict[str, Any]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return entry
        return DEFAULT_CONSTRUCTOR_ABI

    @property
    def constructor_inputs(self) -> List[Dict[str, Any]]:
        return list(self.constructor_abi.get("inputs", []))

    def argument_names(self, count: int) -> List[str]:
        """Returns constructor input names, padded for arguments the ABI does not name."""
        names = [i.get("name") or UNKNOWN_ARGUMENT_NAME for i in self.constructor_inputs]
        names.extend([UNKNOWN_ARGUMENT_NAME] * (count - len(names)))
        return names[:count]

    def validate_constructor_args(self, args: Sequence[Any]) -> None:
        """Validates the constructor arguments against the constructor ABI."""
        abi_inputs = self.constructor_inputs
        if len(args) != len(abi_inputs):
            raise self.Invalid(
                f"Constructor parameters length mismatch - "
                f"{self.name} ABI requires {len(abi_inputs)}, Got {len(args)}."
            )

        for position, (abi_input, value) in enumerate(zip(abi_inputs, args)):
            abi_type = collapse_if_tuple(abi_input)
            if not w3.is_encodable(abi_type, value):
                raise self.Invalid(
                    f"{self.name} constructor param '{abi_input.get('name')}' at position "
                    f"{position} has a value '{value}' whose type does not match "
                    f"expected ABI type '{abi_type}'"
                )

    def deployment_data(self, args: Sequence[Any]) -> bytes:
        """Returns the contract creation payload: bytecode followed by encoded arguments."""
        types = [collapse_if_tuple(i) for i in self.constructor_inputs]
        if not types:
            return self.bytecode
        return self.bytecode + w3.codec.encode(types, list(args))

    def _method_abis(self, method_name: str) -> List[Dict[str, Any]]:
        return [
            entry
            for entry in self.abi
            if entry.get("type") == "function" and entry.get("name") == method_name
        ]

    def has_method(self, method_name: str, arg_count: int) -> bool:
        return any(
            len(abi.get("inputs", [])) == arg_count for abi in self._method_abis(method_name)
        )

    def encode_call(self, method_name: str, args: Sequence[Any]) -> str:
        """Encodes a call to ``method_name`` as hex calldata, selecting the matching overload."""
        method_abis = self._method_abis(method_name)
        if len(method_abis) == 0:
            raise self.Invalid(f"{self.name} has no method named '{method_name}'")

        candidates = [abi for abi in method_abis if len(abi.get("inputs", [])) == len(args)]
        for abi in candidates:
            types = [collapse_if_tuple(i) for i in abi["inputs"]]
            if all(w3.is_encodable(t, a) for t, a in zip(types, args)):
                selector = function_abi_to_4byte_selector(abi)
                return to_hex(selector + w3.codec.encode(types, list(args)))
        raise self.Invalid(
            f"Could not find ABI for '{method_name}' with {len(args)} arg(s) and given type(s)"
        )
