from abc import ABC, abstractmethod
from typing import Any, NamedTuple, Optional

from eth_typing import ChecksumAddress


class Confirmation(NamedTuple):
    """The mined outcome of a transaction."""

    block_number: int
    txn_hash: str
    contract_address: Optional[ChecksumAddress] = None
    failed: bool = False


class ChainEndpoint(ABC):
    """
    Capability interface for the RPC calls the orchestrator makes against one chain.

    Implementations are expected to be used by a single submitter per account;
    the orchestrator never submits concurrently from the same account.
    """

    @property
    @abstractmethod
    def chain_id(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def get_nonce(self, account: ChecksumAddress) -> int:
        """Returns the number of transactions sent by ``account``."""
        raise NotImplementedError

    @abstractmethod
    def send_transaction(
        self,
        sender: ChecksumAddress,
        to: Optional[ChecksumAddress],
        data: bytes = b"",
        value: int = 0,
    ) -> Any:
        """Submits a transaction and returns a handle; ``to=None`` creates a contract."""
        raise NotImplementedError

    @abstractmethod
    def await_confirmation(self, handle: Any) -> Confirmation:
        raise NotImplementedError

    @abstractmethod
    def get_code(self, address: ChecksumAddress) -> bytes:
        raise NotImplementedError

    def publish_contract(self, address: ChecksumAddress) -> None:
        """Publishes (verifies) the contract source on a block explorer."""
        raise NotImplementedError(f"{type(self).__name__} does not support contract verification")

    def send_noop(self, account: ChecksumAddress) -> Confirmation:
        """Sends a zero-value self-transfer, consuming exactly one nonce of ``account``."""
        handle = self.send_transaction(sender=account, to=account, data=b"", value=0)
        return self.await_confirmation(handle)

    def describe(self) -> str:
        """Operator-facing summary of the connection."""
        return f"Chain ID: {self.chain_id}"
