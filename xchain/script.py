import json
import threading
import typing
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, NamedTuple, Optional, Tuple

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address, to_hex

from xchain.constants import RESULTS_JSON_FORMAT
from xchain.contracts import ContractKind
from xchain.endpoints import ChainEndpoint
from xchain.utils import stringify_arg


class DeployedContract(NamedTuple):
    """Receipt of a single confirmed deployment step."""

    index: int
    label: str
    contract_name: str
    address: ChecksumAddress
    args: Tuple[Any, ...]
    txn_hash: str
    block_number: int
    deployer: ChecksumAddress
    chain_id: int


class DeployStep(NamedTuple):
    """
    One contract deployment with fully resolved constructor arguments.

    ``expected_address`` is the address predicted for this step; when set, the real
    deployment address must match it. ``after_deploy`` is called with the
    ``DeployedContract`` once the deployment is confirmed.
    """

    label: str
    kind: ContractKind
    args: Tuple[Any, ...] = ()
    after_deploy: Optional[Callable[[DeployedContract], None]] = None
    expected_address: Optional[ChecksumAddress] = None

    class Invalid(ValueError):
        """Raised when a step is built with malformed or missing arguments"""

    @property
    def contract_name(self) -> str:
        return self.kind.name

    def validate(self) -> "DeployStep":
        """Returns a normalized copy of the step, or raises DeployStep.Invalid."""
        if not self.label:
            raise self.Invalid("Deploy step label must not be empty.")
        if not isinstance(self.kind, ContractKind):
            raise self.Invalid(f"Step '{self.label}' has no contract kind.")
        args = tuple(self.args)
        try:
            self.kind.validate_constructor_args(args)
        except ContractKind.Invalid as e:
            raise self.Invalid(f"Step '{self.label}': {e}") from e

        expected_address = self.expected_address
        if expected_address is not None:
            if not is_address(expected_address):
                raise self.Invalid(
                    f"Step '{self.label}' expects an invalid address '{expected_address}'."
                )
            expected_address = to_checksum_address(expected_address)
        return self._replace(args=args, expected_address=expected_address)


class ScriptState(Enum):
    BUILDING = "building"
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _format_value(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return to_hex(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_format_value(v) for v in value) + "]"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int) or (isinstance(value, str) and value.startswith("0x")):
        return str(value)
    return f'"{value}"'


def _render_step(step: DeployStep, index: int, total: int, padding: int, prefix: str) -> str:
    pad = " " * padding
    lines = [f"{pad}{index + 1}/{total}: {prefix}{step.contract_name} ({step.label})"]
    names = step.kind.argument_names(len(step.args))
    for position, (name, value) in enumerate(zip(names, step.args)):
        lines.append(f"{pad}  {position}: {name}  {_format_value(value)}")
    if step.expected_address:
        lines.append(f"{pad}  -> {step.expected_address}")
    return "\n".join(lines)


def _render_steps(steps: typing.Sequence[DeployStep], padding: int = 2, prefix: str = "") -> str:
    total = len(steps)
    rendered = [_render_step(step, i, total, padding, prefix) for i, step in enumerate(steps)]
    return "\n\n".join(rendered)


class DeployScript:
    """
    Append-only plan of deployment steps for one account on one chain.

    Steps run in the order they were added. Call ``build`` to obtain the
    executable form; the builder cannot be extended afterwards.
    """

    class Sealed(Exception):
        """Raised when a built script is modified"""

    def __init__(
        self,
        endpoint: ChainEndpoint,
        deployer: str,
        start_nonce: Optional[int] = None,
        name: Optional[str] = None,
    ):
        self.endpoint = endpoint
        self.deployer = to_checksum_address(deployer)
        self.start_nonce = start_nonce
        self.name = name or f"chain {endpoint.chain_id}"
        self._steps: List[DeployStep] = list()
        self._sealed = False

    @property
    def steps(self) -> Tuple[DeployStep, ...]:
        return tuple(self._steps)

    @property
    def state(self) -> ScriptState:
        return ScriptState.PENDING if self._sealed else ScriptState.BUILDING

    def add_step(self, step: DeployStep) -> "DeployScript":
        if self._sealed:
            raise self.Sealed(
                f"Cannot add step '{step.label}'; {self.name} script is already built."
            )
        step = step.validate()
        if any(existing.label == step.label for existing in self._steps):
            raise DeployStep.Invalid(f"Duplicate step label '{step.label}' in {self.name} script.")
        self._steps.append(step)
        return self

    def render(self, padding: int = 2, prefix: str = "Deploy ") -> str:
        return _render_steps(self._steps, padding=padding, prefix=prefix)

    def print(self, padding: int = 2) -> None:
        print(self.render(padding=padding))

    def build(self) -> "ExecutableScript":
        if self._sealed:
            raise self.Sealed(f"{self.name} script is already built.")
        self._sealed = True
        return ExecutableScript(
            endpoint=self.endpoint,
            deployer=self.deployer,
            steps=self.steps,
            start_nonce=self.start_nonce,
            name=self.name,
        )


class ExecutableScript:
    """
    Frozen deployment script. ``run`` executes every step once, in order,
    waiting for each deployment to be mined before sending the next.
    """

    class NotRunnable(Exception):
        """Raised when a script is run (or previewed) outside of its pending state"""

    class StalePrediction(Exception):
        """Raised when the deployer nonce no longer matches the planned one"""

    class AddressMismatch(Exception):
        """Raised when a contract is deployed at an address other than the predicted one"""

    class StepFailed(Exception):
        """
        Raised when a deployment step fails; the script cannot be resumed.

        ``deployed`` is set when the contract was already confirmed on chain
        before a later check (address, code, ``after_deploy``) failed.
        """

        def __init__(
            self,
            index: int,
            step: DeployStep,
            reason: BaseException,
            deployed: Optional[DeployedContract] = None,
        ):
            self.index = index
            self.step = step
            self.reason = reason
            self.deployed = deployed
            super().__init__(
                f"Step {index + 1} ({step.contract_name} '{step.label}') failed: {reason}"
            )

    def __init__(
        self,
        endpoint: ChainEndpoint,
        deployer: ChecksumAddress,
        steps: Tuple[DeployStep, ...],
        start_nonce: Optional[int] = None,
        name: Optional[str] = None,
    ):
        self.endpoint = endpoint
        self.deployer = deployer
        self.steps = tuple(steps)
        self.start_nonce = start_nonce
        self.name = name or f"chain {endpoint.chain_id}"
        self.last_block_number = 0
        self._state = ScriptState.PENDING
        self._lock = threading.Lock()
        self._results: List[DeployedContract] = list()
        self._result_json = dict()

    @property
    def state(self) -> ScriptState:
        return self._state

    @property
    def results(self) -> Tuple[DeployedContract, ...]:
        return tuple(self._results)

    @property
    def result_json(self) -> typing.Dict[str, List[Any]]:
        return dict(self._result_json)

    def render(self, padding: int = 2, prefix: str = "Deploy ") -> str:
        if self._state in (ScriptState.COMPLETED, ScriptState.FAILED):
            raise self.NotRunnable(f"{self.name} script has already {self._state.value}.")
        return _render_steps(self.steps, padding=padding, prefix=prefix)

    def print(self, padding: int = 2) -> None:
        print(self.render(padding=padding))

    def _start(self) -> None:
        with self._lock:
            if self._state is not ScriptState.PENDING:
                raise self.NotRunnable(
                    f"{self.name} script is {self._state.value}; build a new plan to deploy again."
                )
            self._state = ScriptState.RUNNING

    def check_nonce(self) -> None:
        """Raises StalePrediction unless the deployer is still at the planned start nonce."""
        if self.start_nonce is None:
            return
        nonce = self.endpoint.get_nonce(self.deployer)
        if nonce != self.start_nonce:
            raise self.StalePrediction(
                f"{self.name} deployer {self.deployer} is at nonce {nonce}, but addresses were "
                f"predicted for nonce {self.start_nonce}."
            )

    def run(self) -> List[DeployedContract]:
        self._start()
        try:
            self.check_nonce()
        except Exception:
            self._state = ScriptState.FAILED
            raise

        total = len(self.steps)
        for index, step in enumerate(self.steps):
            print(_render_step(step, index, total, padding=0, prefix="Deploying "))
            deployed = None
            try:
                deployed = self._deploy(index, step)
                self._check_deployment(step, deployed)
            except Exception as e:
                self._state = ScriptState.FAILED
                raise self.StepFailed(index=index, step=step, reason=e, deployed=deployed) from e
            self._results.append(deployed)
            print()

        self._state = ScriptState.COMPLETED
        return list(self._results)

    def _deploy(self, index: int, step: DeployStep) -> DeployedContract:
        data = step.kind.deployment_data(step.args)
        handle = self.endpoint.send_transaction(sender=self.deployer, to=None, data=data, value=0)
        print("Waiting for confirmation...")
        confirmation = self.endpoint.await_confirmation(handle)
        print(f"Mined tx {confirmation.txn_hash} in block {confirmation.block_number}")
        if confirmation.failed:
            raise RuntimeError(f"Deployment transaction {confirmation.txn_hash} failed.")
        if not confirmation.contract_address:
            raise RuntimeError(f"No contract address in receipt of {confirmation.txn_hash}.")
        self.last_block_number = confirmation.block_number

        address = to_checksum_address(confirmation.contract_address)
        print(f"Contract {step.contract_name} deployed at: {address}")
        # recorded before the checks below; the contract exists either way
        self._result_json[address] = [stringify_arg(arg) for arg in step.args]
        return DeployedContract(
            index=index,
            label=step.label,
            contract_name=step.contract_name,
            address=address,
            args=step.args,
            txn_hash=confirmation.txn_hash,
            block_number=confirmation.block_number,
            deployer=self.deployer,
            chain_id=self.endpoint.chain_id,
        )

    def _check_deployment(self, step: DeployStep, deployed: DeployedContract) -> None:
        address = deployed.address
        if step.expected_address and address != step.expected_address:
            raise self.AddressMismatch(
                f"{step.contract_name} deployed at {address}, "
                f"but {step.expected_address} was predicted."
            )
        if not self.endpoint.get_code(address):
            raise RuntimeError(f"No code found at {address} after deploying {step.contract_name}.")
        if step.after_deploy:
            step.after_deploy(deployed)

    def get_contract_address(self, index: int) -> ChecksumAddress:
        return self._results[index].address

    def save_results(self, filepath: Path) -> Path:
        """Writes the deployed address -> constructor arguments mapping for later verification."""
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, "w") as file:
            json.dump(self._result_json, file, **RESULTS_JSON_FORMAT)
        print(f"(i) Deployment results written to {filepath}")
        return filepath

    def print_verification_info(self) -> None:
        for deployed in self._results:
            args = " ".join(f'"{arg}"' for arg in self._result_json[deployed.address])
            print(f"To verify {deployed.contract_name} on chain {deployed.chain_id}, use:")
            print(f"\t{deployed.address} {args}".rstrip())
