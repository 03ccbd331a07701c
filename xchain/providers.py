from typing import Iterator, Optional

from ape import networks, project
from ape.api import AccountAPI, ReceiptAPI
from ape.contracts import ContractContainer
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from xchain.contracts import ContractKind
from xchain.endpoints import ChainEndpoint, Confirmation


def _dependency_containers(name: str) -> Iterator[ContractContainer]:
    """Yields the containers named ``name`` found in the project's dependencies."""
    for dependency, versions in project.dependencies.items():
        if len(versions) != 1:
            raise ValueError(f"Expected exactly one version of '{dependency}' to look up {name}")
        (package,) = versions.values()
        container = getattr(package, name, None)
        if container is not None:
            yield container


def get_contract_container(name: str) -> ContractContainer:
    """Finds a contract type in the ape project, falling back to its dependencies."""
    container = getattr(project, name, None)
    if container is None:
        container = next(_dependency_containers(name), None)
    if container is None:
        raise ValueError(f"Contract type '{name}' is not in the project or its dependencies.")
    return container


def contract_kind_from_container(container: ContractContainer) -> ContractKind:
    contract_type = container.contract_type
    abi = [
        entry.model_dump(mode="json", by_alias=True, exclude_none=True)
        for entry in contract_type.abi
    ]
    return ContractKind(
        name=contract_type.name,
        abi=abi,
        bytecode=contract_type.get_deployment_bytecode(),
    )


def get_contract_kind(contract: str) -> ContractKind:
    """Looks up a contract type of the ape project (or its dependencies) by name."""
    return contract_kind_from_container(get_contract_container(contract))


class ApeChainEndpoint(ChainEndpoint):
    """
    Chain endpoint backed by an ape network choice (e.g. ``ethereum:sepolia:infura``)
    and an ape account that signs every transaction it sends.
    """

    def __init__(self, network_choice: str, account: AccountAPI):
        self.network_choice = network_choice
        self.account = account
        self._chain_id: Optional[int] = None

    def __repr__(self) -> str:
        return f"ApeChainEndpoint({self.network_choice})"

    def _connect(self):
        return networks.parse_network_choice(self.network_choice)

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            with self._connect() as provider:
                self._chain_id = provider.chain_id
        return self._chain_id

    def get_nonce(self, account: ChecksumAddress) -> int:
        with self._connect() as provider:
            return provider.get_nonce(account)

    def get_code(self, address: ChecksumAddress) -> bytes:
        with self._connect() as provider:
            return bytes(provider.get_code(address))

    def send_transaction(
        self,
        sender: ChecksumAddress,
        to: Optional[ChecksumAddress],
        data: bytes = b"",
        value: int = 0,
    ) -> ReceiptAPI:
        if to_checksum_address(sender) != self.account.address:
            raise ValueError(
                f"{self} can only send transactions from {self.account.address}, not {sender}"
            )
        with self._connect() as provider:
            txn = provider.network.ecosystem.create_transaction(
                sender=self.account.address, receiver=to, data=data, value=value
            )
            return self.account.call(txn)

    def await_confirmation(self, receipt: ReceiptAPI) -> Confirmation:
        with self._connect():
            receipt.await_confirmations()
        contract_address = receipt.contract_address
        return Confirmation(
            block_number=receipt.block_number,
            txn_hash=str(receipt.txn_hash),
            contract_address=to_checksum_address(contract_address) if contract_address else None,
            failed=receipt.failed,
        )

    def publish_contract(self, address: ChecksumAddress) -> None:
        with self._connect() as provider:
            explorer = provider.network.explorer
            if explorer is None:
                raise ValueError(
                    f"No explorer plugin configured for {self.network_choice}; "
                    "install ape-etherscan to verify contracts."
                )
            explorer.publish_contract(address)

    def describe(self) -> str:
        with self._connect() as provider:
            return "\n".join(
                [
                    f"Account: {self.account.address}",
                    f"Ecosystem: {provider.network.ecosystem.name}",
                    f"Network: {provider.network.name}",
                    f"Chain ID: {provider.chain_id}",
                    f"Gas Price: {provider.gas_price}",
                ]
            )
