import typing
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

from eth_utils import to_checksum_address

from xchain.collisions import ChainSide, ResolvedAddresses, resolve_plan
from xchain.config import (
    get_max_burn_rounds,
    get_offset,
    validate_chain_id,
)
from xchain.constants import CHAIN_A, CHAIN_B, MAX_NONCE_BURN_ROUNDS
from xchain.contracts import ContractKind
from xchain.endpoints import ChainEndpoint
from xchain.params import AddressBook, ConstructorParameters
from xchain.registry import registry_from_deployments
from xchain.script import DeployedContract, DeployScript, DeployStep, ExecutableScript
from xchain.utils import verify_contracts


class DeploymentFailed(Exception):
    """Raised when a dual-chain run fails, or is refused, on either chain"""

    def __init__(self, errors: Dict[str, Exception]):
        self.errors = errors
        details = "; ".join(f"chain {chain.upper()}: {error}" for chain, error in errors.items())
        super().__init__(f"Deployment failed on {len(errors)} chain(s) - {details}")


def _outcome(run: Callable[[], List[DeployedContract]]):
    try:
        return run(), None
    except Exception as e:
        return None, e


class DualChainDeployment(NamedTuple):
    """The two executable scripts of a plan; each runs against its own chain only."""

    a: ExecutableScript
    b: ExecutableScript

    def scripts(self) -> Dict[str, ExecutableScript]:
        return {CHAIN_A: self.a, CHAIN_B: self.b}

    def render(self, padding: int = 6) -> str:
        sections = list()
        for chain, script in self.scripts().items():
            header = (
                f"  · Chain {chain.upper()} Deployment Actions "
                f"(chain id {script.endpoint.chain_id}, deployer {script.deployer}):"
            )
            sections.append(f"{header}\n{script.render(padding=padding)}")
        return "\n\n".join(sections)

    def print(self, padding: int = 6) -> None:
        print(self.render(padding=padding))

    def check_nonces(self) -> None:
        """Raises DeploymentFailed if the prediction of either chain has gone stale."""
        errors = dict()
        for chain, script in self.scripts().items():
            try:
                script.check_nonce()
            except ExecutableScript.StalePrediction as e:
                errors[chain] = e
        if errors:
            raise DeploymentFailed(errors) from list(errors.values())[0]

    def run(
        self, concurrently: bool = False
    ) -> Tuple[List[DeployedContract], List[DeployedContract]]:
        """
        Runs both scripts, one after the other or concurrently.

        Both deployers must still be at their planned nonces before either script
        sends anything. After that, a failing script does not stop its sibling;
        failures are raised once both are done.
        """
        scripts = self.scripts()
        self.check_nonces()
        if concurrently:
            with ThreadPoolExecutor(max_workers=len(scripts)) as executor:
                futures = {chain: executor.submit(_outcome, s.run) for chain, s in scripts.items()}
                outcomes = {chain: future.result() for chain, future in futures.items()}
        else:
            outcomes = {chain: _outcome(script.run) for chain, script in scripts.items()}

        errors = {chain: error for chain, (_, error) in outcomes.items() if error is not None}
        if errors:
            raise DeploymentFailed(errors) from list(errors.values())[0]
        return outcomes[CHAIN_A][0], outcomes[CHAIN_B][0]

    def finalize(
        self,
        registry_filepath: Optional[Path] = None,
        results_dir: Optional[Path] = None,
        verify: bool = False,
    ) -> None:
        """
        Publishes the deployments to the registry and optionally to block explorers.
        """
        deployments = [*self.a.results, *self.b.results]
        if registry_filepath:
            registry_from_deployments(deployments=deployments, output_filepath=registry_filepath)
        for script in self.scripts().values():
            if results_dir:
                filepath = results_dir / f"deployment-{script.endpoint.chain_id}.json"
                script.save_results(filepath)
            script.print_verification_info()
            if verify:
                verify_contracts(script.endpoint, script.results)


class DualChainPlan:
    """
    Builds a pair of deployment scripts whose constructor arguments reference the
    predicted addresses of contracts on both chains.

    Usage is strictly two-phase: ``plan()`` reads nonces and resolves address
    collisions, ``build(resolved)`` creates the scripts, which are then ``run``.
    """

    class Unresolved(Exception):
        """Raised when scripts are built from addresses that were not resolved by this plan"""

    def __init__(
        self,
        parameters: ConstructorParameters,
        endpoint_a: ChainEndpoint,
        deployer_a: str,
        endpoint_b: ChainEndpoint,
        deployer_b: str,
        offsets: Optional[Dict[str, int]] = None,
        max_burn_rounds: int = MAX_NONCE_BURN_ROUNDS,
    ):
        offsets = offsets or dict()
        self.parameters = parameters
        self.max_burn_rounds = max_burn_rounds
        self.side_a = ChainSide(
            endpoint=endpoint_a,
            account=to_checksum_address(deployer_a),
            count=parameters.count(CHAIN_A),
            offset=offsets.get(CHAIN_A, 0),
        )
        self.side_b = ChainSide(
            endpoint=endpoint_b,
            account=to_checksum_address(deployer_b),
            count=parameters.count(CHAIN_B),
            offset=offsets.get(CHAIN_B, 0),
        )

    @classmethod
    def from_config(
        cls,
        config: typing.Dict,
        get_kind: Callable[[str], ContractKind],
        endpoint_a: ChainEndpoint,
        deployer_a: str,
        endpoint_b: ChainEndpoint,
        deployer_b: str,
    ) -> "DualChainPlan":
        validate_chain_id(config, CHAIN_A, endpoint_a.chain_id)
        validate_chain_id(config, CHAIN_B, endpoint_b.chain_id)
        parameters = ConstructorParameters.from_config(config, get_kind=get_kind)
        return cls(
            parameters=parameters,
            endpoint_a=endpoint_a,
            deployer_a=deployer_a,
            endpoint_b=endpoint_b,
            deployer_b=deployer_b,
            offsets={chain: get_offset(config, chain) for chain in (CHAIN_A, CHAIN_B)},
            max_burn_rounds=get_max_burn_rounds(config),
        )

    @property
    def sides(self) -> Dict[str, ChainSide]:
        return {CHAIN_A: self.side_a, CHAIN_B: self.side_b}

    def predict(self) -> ResolvedAddresses:
        """Predicts both chains' addresses without sending anything; they may still collide."""
        return ResolvedAddresses(a=self.side_a.predict(), b=self.side_b.predict())

    def plan(self) -> ResolvedAddresses:
        """Predicts collision-free addresses for both chains, burning chain B nonces if needed."""
        return resolve_plan(self.side_a, self.side_b, max_rounds=self.max_burn_rounds)

    def _check_resolved(self, resolved: ResolvedAddresses) -> None:
        if not isinstance(resolved, ResolvedAddresses):
            raise self.Unresolved("Scripts can only be built from the result of plan().")
        if resolved.collisions:
            raise self.Unresolved(f"Predicted addresses collide: {sorted(resolved.collisions)}")
        predictions = {CHAIN_A: resolved.a, CHAIN_B: resolved.b}
        for chain, side in self.sides.items():
            prediction = predictions[chain]
            if prediction.account != side.account or len(prediction.addresses) != side.count:
                raise self.Unresolved(
                    f"Addresses for chain {chain.upper()} were not predicted for this plan."
                )

    def address_book(self, resolved: ResolvedAddresses) -> AddressBook:
        predictions = {CHAIN_A: resolved.a, CHAIN_B: resolved.b}
        predicted = {
            chain: dict(zip(self.parameters.labels(chain), predictions[chain].addresses))
            for chain in predictions
        }
        deployers = {chain: side.account for chain, side in self.sides.items()}
        return AddressBook(deployers=deployers, predicted=predicted)

    def build(self, resolved: ResolvedAddresses) -> DualChainDeployment:
        self._check_resolved(resolved)
        addresses = self.address_book(resolved)
        predictions = {CHAIN_A: resolved.a, CHAIN_B: resolved.b}

        scripts = dict()
        for chain, side in self.sides.items():
            script = DeployScript(
                endpoint=side.endpoint,
                deployer=side.account,
                start_nonce=predictions[chain].start_nonce,
                name=f"chain {chain.upper()}",
            )
            for label in self.parameters.labels(chain):
                params = self.parameters.resolve(chain, label, addresses)
                script.add_step(
                    DeployStep(
                        label=label,
                        kind=self.parameters.kind(chain, label),
                        args=tuple(params.values()),
                        expected_address=addresses.predicted[chain][label],
                    )
                )
            scripts[chain] = script.build()

        return DualChainDeployment(a=scripts[CHAIN_A], b=scripts[CHAIN_B])
