import click
from eth_utils import is_address, to_checksum_address


class MinInt(click.types.IntParamType):
    """An integer option with a lower bound (counts, nonces)."""

    def __init__(self, min_value: int):
        self.min_value = min_value

    def convert(self, value, param, ctx) -> int:
        number = super().convert(value, param, ctx)
        if number < self.min_value:
            self.fail(f"{number} is below the minimum of {self.min_value}", param, ctx)
        return number


class ChecksumAddress(click.ParamType):
    name = "checksum_address"

    def convert(self, value, param, ctx) -> str:
        if not is_address(value):
            self.fail(f"'{value}' is not an ethereum address", param, ctx)
        return to_checksum_address(value)
