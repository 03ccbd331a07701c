from typing import List, NamedTuple, Tuple

import rlp
from eth_typing import ChecksumAddress
from eth_utils import keccak, to_canonical_address, to_checksum_address


class Prediction(NamedTuple):
    """
    Addresses an account will deploy to, starting at its current nonce.

    ``reserved`` holds the ``offset`` addresses that follow the deployments;
    they are kept free of cross-chain collisions as well.
    """

    account: ChecksumAddress
    nonce: int
    offset: int
    addresses: List[ChecksumAddress]
    reserved: Tuple[ChecksumAddress, ...] = ()

    @property
    def start_nonce(self) -> int:
        return self.nonce

    @property
    def window(self) -> List[ChecksumAddress]:
        return list(self.addresses) + list(self.reserved)


def compute_create_address(sender: str, nonce: int) -> ChecksumAddress:
    """
    Returns the address of a contract created by ``sender`` at ``nonce``:

        keccak256(rlp([sender, nonce]))[12:]
    """
    if nonce < 0:
        raise ValueError(f"Nonce must be non-negative; got {nonce}")
    encoded = rlp.encode([to_canonical_address(sender), nonce])
    return to_checksum_address(keccak(encoded)[12:])


def predict_addresses(sender: str, nonce: int, count: int) -> List[ChecksumAddress]:
    """Predicts the addresses of the next ``count`` contracts deployed by ``sender``."""
    if count < 1:
        raise ValueError(f"Number of addresses to predict must be positive; got {count}")
    return [compute_create_address(sender, nonce + i) for i in range(count)]


def predict_from_endpoint(endpoint, account: str, count: int, offset: int = 0) -> Prediction:
    """
    Reads the current nonce of ``account`` and predicts ``count + offset`` addresses.
    The first ``count`` are the deployments; the remaining ``offset`` are reserved.

    The prediction is only valid while no other transaction is sent by the account.
    """
    if offset < 0:
        raise ValueError(f"Deploy offset must be non-negative; got {offset}")
    account = to_checksum_address(account)
    nonce = endpoint.get_nonce(account)
    window = predict_addresses(account, nonce, count + offset)
    return Prediction(
        account=account,
        nonce=nonce,
        offset=offset,
        addresses=window[:count],
        reserved=tuple(window[count:]),
    )
