#!/usr/bin/python3

import click
from ape import accounts

from xchain.config import check_registry_filepath, load_plan_config
from xchain.constants import CHAIN_A, CHAIN_B
from xchain.options import (
    account_a_option,
    account_b_option,
    autosign_option,
    dry_run_option,
    network_a_option,
    network_b_option,
    plan_option,
    results_dir_option,
    verify_option,
)
from xchain.plan import DualChainPlan
from xchain.providers import ApeChainEndpoint, get_contract_kind


def _load_account(alias: str, autosign: bool):
    account = accounts.load(alias)
    if autosign:
        print(f"WARNING: Autosign is enabled for {alias}; transactions are signed automatically.")
        account.set_autosign(True)
    return account


@click.command()
@plan_option
@network_a_option
@network_b_option
@account_a_option
@account_b_option
@dry_run_option
@verify_option
@results_dir_option
@autosign_option
def cli(
    plan_filepath,
    network_a,
    network_b,
    account_a,
    account_b,
    dry_run,
    verify,
    results_dir,
    autosign,
):
    """Deploy contracts to two chains with collision-free predicted addresses."""
    config = load_plan_config(plan_filepath)
    registry_filepath = check_registry_filepath(config) if config.get("artifacts") else None

    deployer_a = _load_account(account_a, autosign)
    deployer_b = _load_account(account_b, autosign) if account_b else deployer_a
    endpoints = {
        CHAIN_A: ApeChainEndpoint(network_a, deployer_a),
        CHAIN_B: ApeChainEndpoint(network_b, deployer_b),
    }
    for chain, endpoint in endpoints.items():
        print(f"\nChain {chain.upper()}\n{endpoint.describe()}")

    dual_plan = DualChainPlan.from_config(
        config,
        get_kind=get_contract_kind,
        endpoint_a=endpoints[CHAIN_A],
        deployer_a=deployer_a.address,
        endpoint_b=endpoints[CHAIN_B],
        deployer_b=deployer_b.address,
    )

    if dry_run:
        resolved = dual_plan.predict()
        if resolved.collisions:
            print(
                f"NB: Num of clashed predicted addresses on both chains: "
                f"{len(resolved.collisions)}. A real run burns nonces on chain B first."
            )
            return
        print("\nDeployment actions (dry run):\n")
        dual_plan.build(resolved).print()
        return

    resolved = dual_plan.plan()
    if resolved.burned:
        print(f"(i) Burned {resolved.burned} nonce(s) on chain B to avoid address collisions.")
    deployment = dual_plan.build(resolved)
    print("\nDeployment actions:\n")
    deployment.print()
    print()

    deployment.run()
    deployment.finalize(
        registry_filepath=registry_filepath, results_dir=results_dir, verify=verify
    )


if __name__ == "__main__":
    cli()
