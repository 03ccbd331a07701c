#!/usr/bin/python3

import click
from ape import networks

from xchain.addresses import predict_addresses
from xchain.options import account_address_option, count_option, nonce_option


@click.command()
@account_address_option
@count_option
@nonce_option
@click.option(
    "--network",
    help="ape network choice to read the account nonce from, e.g. ethereum:sepolia:infura",
    type=click.STRING,
    required=False,
)
def cli(account, count, nonce, network):
    """Print the next contract addresses an account will deploy to."""
    if (nonce is None) == (network is None):
        raise click.BadOptionUsage(
            option_name="--nonce",
            message=f"Provide either '--nonce' or '--network'; got {nonce}, {network}",
        )

    if nonce is None:
        with networks.parse_network_choice(network) as provider:
            nonce = provider.get_nonce(account)
            print(f"(i) {account} is at nonce {nonce} on chain {provider.chain_id}")

    for offset, address in enumerate(predict_addresses(account, nonce, count)):
        print(f"{nonce + offset}: {address}")


if __name__ == "__main__":
    cli()
