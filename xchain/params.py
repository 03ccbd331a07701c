import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, List, NamedTuple

from eth_typing import ChecksumAddress

from xchain.config import (
    CONTRACT_CONSTRUCTOR_PARAMETER_KEY,
    CONTRACT_TYPE_KEY,
    DeploymentConfigError,
    get_contract_entries,
)
from xchain.constants import SUPPORTED_CHAINS
from xchain.contracts import ContractKind


class AddressBook(NamedTuple):
    """Deployer and predicted contract addresses of both chains, keyed by chain then label."""

    deployers: Dict[str, ChecksumAddress]
    predicted: Dict[str, Dict[str, ChecksumAddress]]


class VariableContext:
    def __init__(
        self,
        chain: str,
        contract_labels: Dict[str, List[str]],
        contract_label: str,
        constants: typing.Dict[str, Any] = None,
        kinds: Dict[str, Dict[str, ContractKind]] = None,
    ):
        self.chain = chain
        self.contract_labels = contract_labels
        self.contract_label = contract_label
        self.constants = constants or dict()
        self.kinds = kinds or dict()


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"
    CHAIN_DELIMITER = "."

    @abstractmethod
    def resolve(self, addresses: AddressBook) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    def __init__(self, chain: str):
        self.chain = chain

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, addresses: AddressBook) -> Any:
        return addresses.deployers[self.chain]


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            self.constant_value = context.constants[constant_name]
        except KeyError:
            raise DeploymentConfigError(f"Constant '{constant_name}' not found in plan file.")

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self, addresses: AddressBook) -> Any:
        return self.constant_value


class PredictedAddress(Variable):
    """The predicted address of a labelled contract on either chain."""

    def __init__(self, chain: str, contract_label: str, context: VariableContext):
        if contract_label not in context.contract_labels.get(chain, []):
            raise DeploymentConfigError(
                f"Contract '{contract_label}' not found on chain '{chain}' "
                f"(referenced by {context.contract_label})"
            )
        self.chain = chain
        self.contract_label = contract_label

    def resolve(self, addresses: AddressBook) -> Any:
        return addresses.predicted[self.chain][self.contract_label]


class Encode(Variable):
    """Calldata for a method of a labelled contract, e.g. ``$encode:Token.initialize,$deployer``."""

    ENCODE_PREFIX = "encode:"

    def __init__(self, variable: str, context: VariableContext):
        variable = variable[len(self.ENCODE_PREFIX) :]
        target, *raw_args = variable.split(",")
        if Variable.CHAIN_DELIMITER not in target:
            raise DeploymentConfigError(
                f"Encoded call '{variable}' must be in the form 'Label.method,arg,...'"
            )
        self.contract_label, self.method_name = target.rsplit(Variable.CHAIN_DELIMITER, 1)

        try:
            self.kind = context.kinds[context.chain][self.contract_label]
        except KeyError:
            raise DeploymentConfigError(
                f"Contract '{self.contract_label}' not found on chain '{context.chain}' "
                f"(referenced by {context.contract_label})"
            )
        if not self.kind.has_method(self.method_name, len(raw_args)):
            raise DeploymentConfigError(
                f"{self.kind.name} has no method '{self.method_name}' "
                f"taking {len(raw_args)} argument(s)"
            )
        self.method_args = [_process_raw_value(_literal(arg), context) for arg in raw_args]

    @classmethod
    def is_encode(cls, value: str) -> bool:
        """Returns True if the variable is a variable that needs encoding to bytes"""
        return value.startswith(cls.ENCODE_PREFIX)

    def resolve(self, addresses: AddressBook) -> Any:
        resolved_method_args = [_resolve_param(arg, addresses) for arg in self.method_args]
        return self.kind.encode_call(self.method_name, resolved_method_args)


def _literal(value: str) -> Any:
    value = value.strip()
    if value.isdigit():
        return int(value)
    return value


def _resolve_param(value: Any, addresses: AddressBook) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v, addresses) for v in value]

    if isinstance(value, Variable):
        return value.resolve(addresses)

    return value  # literally a value


def _resolve_params(parameters: OrderedDict, addresses: AddressBook) -> OrderedDict:
    resolved_parameters = OrderedDict()
    for name, value in parameters.items():
        resolved_parameters[name] = _resolve_param(value, addresses)

    return resolved_parameters


def _variable_from_value(variable: Any, context: VariableContext) -> Variable:
    variable = variable.strip(Variable.VARIABLE_PREFIX)
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount(chain=context.chain)
    elif Encode.is_encode(variable):
        return Encode(variable, context)

    chain, delimiter, name = variable.partition(Variable.CHAIN_DELIMITER)
    if delimiter and chain in SUPPORTED_CHAINS:
        if DeployerAccount.is_deployer(name):
            return DeployerAccount(chain=chain)
        return PredictedAddress(chain=chain, contract_label=name, context=context)
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return PredictedAddress(chain=context.chain, contract_label=variable, context=context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def _process_raw_values(values: Dict, variable_context: VariableContext) -> OrderedDict:
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, variable_context)

    return processed_parameters


def _validate_constructor_names(
    label: str, kind: ContractKind, parameters: OrderedDict
) -> None:
    """Validates the constructor parameter names against the constructor ABI."""
    abi_inputs = kind.constructor_inputs
    if len(parameters) != len(abi_inputs):
        raise DeploymentConfigError(
            f"Constructor parameters length mismatch - "
            f"{label} ({kind.name}) ABI requires {len(abi_inputs)}, Got {len(parameters)}."
        )

    for position, (abi_input, name) in enumerate(zip(abi_inputs, parameters)):
        if abi_input.get("name") and abi_input["name"] != name:
            raise DeploymentConfigError(
                f"{label} constructor parameter '{name}' at position {position} does not "
                f"match the expected ABI name '{abi_input['name']}'."
            )


class ConstructorParameters:
    """Represents the constructor parameters for the contracts of both chains."""

    class ContractInfo(typing.NamedTuple):
        kind: ContractKind
        parameters: OrderedDict

    def __init__(self, contracts: Dict[str, "OrderedDict[str, ContractInfo]"]):
        self.contracts = contracts

    @classmethod
    def from_config(
        cls, config: typing.Dict, get_kind: Callable[[str], ContractKind]
    ) -> "ConstructorParameters":
        """Processes (and validates) the constructor parameters of a plan file."""
        print("Processing contract constructor parameters...")
        constants = config.get("constants")
        entries = {chain: get_contract_entries(config, chain) for chain in SUPPORTED_CHAINS}
        contract_labels = {chain: [label for label, _ in entries[chain]] for chain in entries}

        kinds = dict()
        for chain, chain_entries in entries.items():
            kinds[chain] = OrderedDict()
            for label, contract_data in chain_entries:
                contract_type = contract_data.get(CONTRACT_TYPE_KEY, label)
                try:
                    kinds[chain][label] = get_kind(contract_type)
                except (KeyError, ValueError) as e:
                    raise DeploymentConfigError(
                        f"Unknown contract type '{contract_type}' for {label}: {e}"
                    ) from e

        contracts = dict()
        for chain, chain_entries in entries.items():
            contracts[chain] = OrderedDict()
            for label, contract_data in chain_entries:
                context = VariableContext(
                    chain=chain,
                    contract_labels=contract_labels,
                    contract_label=label,
                    constants=constants,
                    kinds=kinds,
                )
                raw_parameters = contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or dict()
                parameters = _process_raw_values(raw_parameters, context)
                kind = kinds[chain][label]
                _validate_constructor_names(label, kind, parameters)
                contracts[chain][label] = cls.ContractInfo(kind=kind, parameters=parameters)

        return cls(contracts=contracts)

    def labels(self, chain: str) -> List[str]:
        return list(self.contracts[chain])

    def count(self, chain: str) -> int:
        return len(self.contracts[chain])

    def kind(self, chain: str, label: str) -> ContractKind:
        return self.contracts[chain][label].kind

    def resolve(self, chain: str, label: str, addresses: AddressBook) -> OrderedDict:
        """Resolves the constructor parameters for a single contract."""
        resolved_params = _resolve_params(self.contracts[chain][label].parameters, addresses)
        return resolved_params
