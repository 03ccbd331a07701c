from typing import List, NamedTuple, Set

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from xchain.addresses import Prediction, predict_from_endpoint
from xchain.constants import MAX_NONCE_BURN_ROUNDS
from xchain.endpoints import ChainEndpoint


class AddressPredictionError(ValueError):
    """Raised when the predicted addresses of a single account are not unique"""


class CollisionResolutionError(Exception):
    """Raised when cross-chain address collisions cannot be resolved"""


class ChainSide(NamedTuple):
    """A deployer account on one chain, and how many contracts it will deploy there."""

    endpoint: ChainEndpoint
    account: ChecksumAddress
    count: int
    offset: int = 0

    def predict(self) -> Prediction:
        return predict_from_endpoint(
            endpoint=self.endpoint, account=self.account, count=self.count, offset=self.offset
        )


class ResolvedAddresses(NamedTuple):
    """Collision-free predictions for both chains."""

    a: Prediction
    b: Prediction
    burned: int = 0

    @property
    def addresses_a(self) -> List[ChecksumAddress]:
        return list(self.a.addresses)

    @property
    def addresses_b(self) -> List[ChecksumAddress]:
        return list(self.b.addresses)

    @property
    def collisions(self) -> Set[ChecksumAddress]:
        return find_collisions(self.a.window, self.b.window)


def _check_unique(prediction: Prediction) -> None:
    if len(set(prediction.window)) != len(prediction.window):
        raise AddressPredictionError(
            f"Duplicate predicted addresses for {prediction.account} "
            f"starting at nonce {prediction.start_nonce}."
        )


def find_collisions(addresses_a: List[str], addresses_b: List[str]) -> Set[ChecksumAddress]:
    """Returns the addresses predicted on both chains."""
    set_a = {to_checksum_address(a) for a in addresses_a}
    set_b = {to_checksum_address(b) for b in addresses_b}
    return set_a & set_b


def burn_nonces(endpoint: ChainEndpoint, account: ChecksumAddress, count: int) -> None:
    """
    Sends ``count`` no-op self-transfers from ``account``, one at a time.

    Each transfer is confirmed before the next is sent; any failure aborts.
    """
    for i in range(count):
        try:
            confirmation = endpoint.send_noop(account)
        except Exception as e:
            raise CollisionResolutionError(
                f"Failed to burn nonce {i + 1}/{count} for {account}: {e}"
            ) from e
        if confirmation.failed:
            raise CollisionResolutionError(
                f"No-op transaction {confirmation.txn_hash} from {account} failed."
            )


def resolve_plan(
    side_a: ChainSide, side_b: ChainSide, max_rounds: int = MAX_NONCE_BURN_ROUNDS
) -> ResolvedAddresses:
    """
    Predicts the deployment addresses of both sides and burns nonces on side B
    until none of side B's addresses, reserved ones included, coincides with one of
    side A's.

    Side A is never touched, so its predictions stay stable across rounds.
    """
    burned, rounds = 0, 0
    while True:
        prediction_a, prediction_b = side_a.predict(), side_b.predict()
        _check_unique(prediction_a)
        _check_unique(prediction_b)

        collisions = find_collisions(prediction_a.window, prediction_b.window)
        if not collisions:
            return ResolvedAddresses(a=prediction_a, b=prediction_b, burned=burned)

        if rounds >= max_rounds:
            raise CollisionResolutionError(
                f"Predicted addresses still collide after {rounds} round(s) of nonce burning: "
                f"{sorted(collisions)}"
            )
        print(
            f"NB: Num of clashed predicted addresses on both chains: {len(collisions)}. "
            f"Burning {len(collisions)} nonce(s) of {side_b.account} on chain "
            f"{side_b.endpoint.chain_id}..."
        )
        burn_nonces(endpoint=side_b.endpoint, account=side_b.account, count=len(collisions))
        burned += len(collisions)
        rounds += 1
