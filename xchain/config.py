import typing
from pathlib import Path
from typing import Dict, List

from xchain.constants import CHAIN_SECTIONS, MAX_NONCE_BURN_ROUNDS, SUPPORTED_CHAINS
from xchain.utils import _load_json, _load_yaml, get_artifact_filepath

CONTRACT_TYPE_KEY = "contract_type"
CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"


class DeploymentConfigError(ValueError):
    pass


def _get_chain_config(config: Dict, chain: str) -> Dict:
    try:
        return config[CHAIN_SECTIONS[chain]]
    except KeyError:
        section = CHAIN_SECTIONS.get(chain, chain)
        raise DeploymentConfigError(f"'{section}' is not set in plan file.")


def get_contract_entries(config: Dict, chain: str) -> List[typing.Tuple[str, Dict]]:
    """Returns (label, contract data) pairs in deployment order for one chain."""
    entries = list()
    for contract_info in _get_chain_config(config, chain).get("contracts") or []:
        if isinstance(contract_info, str):
            entries.append((contract_info, dict()))
        elif isinstance(contract_info, dict) and len(contract_info) == 1:
            label = list(contract_info.keys())[0]  # only one entry
            contract_data = contract_info[label] or dict()
            if not isinstance(contract_data, dict):
                raise DeploymentConfigError(f"Malformed contract entry for {label}.")
            entries.append((label, contract_data))
        else:
            raise DeploymentConfigError("Malformed contracts YAML.")
    return entries


def get_contract_labels(config: Dict, chain: str) -> List[str]:
    return [label for label, _ in get_contract_entries(config, chain)]


def get_chain_id(config: Dict, chain: str) -> int:
    chain_id = _get_chain_config(config, chain).get("chain_id")
    if not chain_id:
        raise DeploymentConfigError(f"chain_id is not set for {CHAIN_SECTIONS[chain]}.")
    return int(chain_id)


def get_offset(config: Dict, chain: str) -> int:
    offset = int(_get_chain_config(config, chain).get("offset", 0))
    if offset < 0:
        raise DeploymentConfigError(f"offset for {CHAIN_SECTIONS[chain]} must be non-negative.")
    return offset


def get_max_burn_rounds(config: Dict) -> int:
    deployment = config.get("deployment") or dict()
    return int(deployment.get("max_burn_rounds", MAX_NONCE_BURN_ROUNDS))


def validate_config(config: Dict) -> None:
    """Checks the structure of a dual-chain plan file."""
    print("Validating plan YAML...")

    if not isinstance(config, dict):
        raise DeploymentConfigError("Plan file must be a mapping.")

    deployment = config.get("deployment")
    if not deployment:
        raise DeploymentConfigError("deployment is not set in plan file.")

    constants = config.get("constants") or dict()
    if not isinstance(constants, dict):
        raise DeploymentConfigError("constants must be a mapping.")

    if get_max_burn_rounds(config) < 0:
        raise DeploymentConfigError("max_burn_rounds must be non-negative.")

    chain_ids = set()
    for chain in SUPPORTED_CHAINS:
        chain_ids.add(get_chain_id(config, chain))
        get_offset(config, chain)
        labels = get_contract_labels(config, chain)
        if not labels:
            raise DeploymentConfigError(f"{CHAIN_SECTIONS[chain]} has no 'contracts' to deploy.")
        duplicates = {label for label in labels if labels.count(label) > 1}
        if duplicates:
            raise DeploymentConfigError(
                f"Duplicate contract labels in {CHAIN_SECTIONS[chain]}: {sorted(duplicates)}"
            )

    if len(chain_ids) != len(SUPPORTED_CHAINS):
        raise DeploymentConfigError("chain_a and chain_b must have different chain ids.")


def validate_chain_id(config: Dict, chain: str, chain_id: int) -> None:
    config_chain_id = get_chain_id(config, chain)
    if config_chain_id != chain_id:
        raise DeploymentConfigError(
            f"chain_id in plan file for {CHAIN_SECTIONS[chain]} ({config_chain_id}) does not "
            f"match chain_id of its network ({chain_id})."
        )


def check_registry_filepath(config: Dict) -> Path:
    """
    Checks that the deployment has not already been published for
    the chain ids specified in the plan file.
    """
    registry_filepath = get_artifact_filepath(config=config)
    if not registry_filepath.exists():
        return registry_filepath

    registry_chain_ids = set(map(int, _load_json(registry_filepath).keys()))
    for chain in SUPPORTED_CHAINS:
        chain_id = get_chain_id(config, chain)
        if chain_id in registry_chain_ids:
            raise DeploymentConfigError(f"Deployment is already published for chain_id {chain_id}.")

    return registry_filepath


def load_plan_config(filepath: Path) -> Dict:
    """Loads and validates a dual-chain plan file."""
    config = _load_yaml(filepath)
    validate_config(config)
    return config
