from collections import defaultdict
from typing import Dict, List, NamedTuple, Optional

import pytest
from eth_utils import to_checksum_address

from xchain.addresses import compute_create_address
from xchain.contracts import ContractKind
from xchain.endpoints import ChainEndpoint, Confirmation

# Common constants
CHAIN_ID_A = 11155111
CHAIN_ID_B = 80002

DEPLOYER = to_checksum_address("0x" + "11" * 20)
OTHER_DEPLOYER = to_checksum_address("0x" + "22" * 20)

RUNTIME_CODE = b"\x60\x80\x60\x40"
BYTECODE = "0x6080604052348015600f57600080fd5b50"

REGISTRY_ABI = [
    {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "owner", "type": "address", "internalType": "address"},
            {"name": "delay", "type": "uint256", "internalType": "uint256"},
        ],
    }
]

PROXY_ABI = [
    {
        "type": "constructor",
        "stateMutability": "payable",
        "inputs": [
            {"name": "implementation", "type": "address", "internalType": "address"},
            {"name": "_data", "type": "bytes", "internalType": "bytes"},
        ],
    }
]

IMPLEMENTATION_ABI = [
    {
        "type": "function",
        "name": "initialize",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "admin", "type": "address", "internalType": "address"},
            {"name": "peer", "type": "address", "internalType": "address"},
        ],
        "outputs": [],
    }
]


class Transaction(NamedTuple):
    sequence: int
    sender: str
    to: Optional[str]
    data: bytes
    nonce: int
    contract_address: Optional[str]
    failed: bool


class FakeChainEndpoint(ChainEndpoint):
    """
    In-memory chain: every transaction is mined into its own block and
    contracts land at their real CREATE addresses.
    """

    def __init__(self, chain_id: int, nonces: Optional[Dict[str, int]] = None):
        self._chain_id = chain_id
        self.nonces = defaultdict(int)
        for account, nonce in (nonces or dict()).items():
            self.nonces[to_checksum_address(account)] = nonce
        self.code: Dict[str, bytes] = dict()
        self.transactions: List[Transaction] = list()
        self.published: List[str] = list()
        self.block_number = 100
        # failure injection
        self.failing_nonces = set()
        self.misplaced_nonces = set()
        self.send_error: Optional[Exception] = None

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def get_nonce(self, account) -> int:
        return self.nonces[to_checksum_address(account)]

    def get_code(self, address) -> bytes:
        return self.code.get(to_checksum_address(address), b"")

    def send_transaction(self, sender, to, data=b"", value=0) -> int:
        if self.send_error:
            raise self.send_error
        sender = to_checksum_address(sender)
        nonce = self.nonces[sender]
        self.nonces[sender] += 1

        failed = nonce in self.failing_nonces
        contract_address = None
        if to is None and not failed:
            contract_address = compute_create_address(sender, nonce)
            if nonce in self.misplaced_nonces:
                contract_address = compute_create_address(sender, nonce + 1000)
            self.code[contract_address] = RUNTIME_CODE

        transaction = Transaction(
            sequence=len(self.transactions),
            sender=sender,
            to=to,
            data=bytes(data),
            nonce=nonce,
            contract_address=contract_address,
            failed=failed,
        )
        self.transactions.append(transaction)
        return transaction.sequence

    def await_confirmation(self, handle: int) -> Confirmation:
        transaction = self.transactions[handle]
        self.block_number += 1
        return Confirmation(
            block_number=self.block_number,
            txn_hash=f"0x{self.chain_id:032x}{transaction.sequence:032x}",
            contract_address=transaction.contract_address,
            failed=transaction.failed,
        )

    def publish_contract(self, address) -> None:
        self.published.append(address)

    @property
    def deployments(self) -> List[Transaction]:
        return [t for t in self.transactions if t.to is None]

    @property
    def noops(self) -> List[Transaction]:
        return [t for t in self.transactions if t.to is not None]


# Fixtures
@pytest.fixture
def endpoint_a():
    return FakeChainEndpoint(chain_id=CHAIN_ID_A)


@pytest.fixture
def endpoint_b():
    return FakeChainEndpoint(chain_id=CHAIN_ID_B)


@pytest.fixture(scope="session")
def simple_kind():
    return ContractKind(name="Simple", abi=[], bytecode=BYTECODE)


@pytest.fixture(scope="session")
def registry_kind():
    return ContractKind(name="Registry", abi=REGISTRY_ABI, bytecode=BYTECODE)


@pytest.fixture(scope="session")
def proxy_kind():
    return ContractKind(name="Proxy", abi=PROXY_ABI, bytecode=BYTECODE)


@pytest.fixture(scope="session")
def implementation_kind():
    return ContractKind(name="Implementation", abi=IMPLEMENTATION_ABI, bytecode=BYTECODE)


@pytest.fixture(scope="session")
def kinds(simple_kind, registry_kind, proxy_kind, implementation_kind):
    return {
        kind.name: kind for kind in (simple_kind, registry_kind, proxy_kind, implementation_kind)
    }


@pytest.fixture(scope="session")
def get_kind(kinds):
    def _get_kind(name):
        return kinds[name]

    return _get_kind


@pytest.fixture
def plan_config():
    return {
        "deployment": {"name": "test-plan", "max_burn_rounds": 3},
        "constants": {"DELAY": 3600},
        "chain_a": {
            "chain_id": CHAIN_ID_A,
            "contracts": [
                {"Implementation": None},
                {
                    "RootProxy": {
                        "contract_type": "Proxy",
                        "constructor": {
                            "implementation": "$Implementation",
                            "_data": "$encode:Implementation.initialize,$deployer,$b.ChildRegistry",
                        },
                    }
                },
            ],
        },
        "chain_b": {
            "chain_id": CHAIN_ID_B,
            "contracts": [
                "Simple",
                {
                    "ChildRegistry": {
                        "contract_type": "Registry",
                        "constructor": {"owner": "$a.RootProxy", "delay": "$DELAY"},
                    }
                },
            ],
        },
    }
