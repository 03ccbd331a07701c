from pathlib import Path

import click

from xchain.types import ChecksumAddress, MinInt

plan_option = click.option(
    "--plan",
    "-p",
    "plan_filepath",
    help="YAML plan file describing the contracts to deploy on both chains",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)

network_a_option = click.option(
    "--network-a",
    help="ape network choice for chain A, e.g. ethereum:sepolia:infura",
    type=click.STRING,
    required=True,
)

network_b_option = click.option(
    "--network-b",
    help="ape network choice for chain B, e.g. polygon:amoy:infura",
    type=click.STRING,
    required=True,
)

account_a_option = click.option(
    "--account-a",
    help="Alias of the ape account deploying on chain A",
    type=click.STRING,
    required=True,
)

account_b_option = click.option(
    "--account-b",
    help="Alias of the ape account deploying on chain B; defaults to the chain A account",
    type=click.STRING,
    required=False,
)

dry_run_option = click.option(
    "--dry-run",
    help="Only predict addresses and print the deployment actions",
    is_flag=True,
    default=False,
)

verify_option = click.option(
    "--verify",
    help="Publish the deployed contracts to the block explorers",
    is_flag=True,
    default=False,
)

results_dir_option = click.option(
    "--results-dir",
    help="Directory for the per-chain address -> constructor arguments files",
    type=click.Path(file_okay=False, path_type=Path),
    required=False,
)

account_address_option = click.option(
    "--account",
    "-a",
    help="Deployer address",
    type=ChecksumAddress(),
    required=True,
)

count_option = click.option(
    "--count",
    "-n",
    help="Number of addresses to predict",
    type=MinInt(1),
    default=1,
)

nonce_option = click.option(
    "--nonce",
    help="Starting nonce; read from the network when omitted",
    type=MinInt(0),
    required=False,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions without prompting for each one",
    is_flag=True,
    default=False,
)
