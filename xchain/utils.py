import json
from pathlib import Path
from typing import Any, Dict, List

import yaml
from eth_utils import to_hex

from xchain.constants import ARTIFACTS_DIR


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def stringify_arg(value: Any) -> Any:
    """Converts a constructor argument to the JSON form used for verification records."""
    if isinstance(value, (bytes, bytearray)):
        return to_hex(value)
    if isinstance(value, (list, tuple)):
        return [stringify_arg(v) for v in value]
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def get_artifact_filepath(config: Dict) -> Path:
    """Registry location of a plan: ``artifacts.dir`` (or ARTIFACTS_DIR) and ``filename``."""
    artifacts = config.get("artifacts") or dict()
    if not artifacts.get("filename"):
        raise ValueError("artifact filename is not set in plan file.")
    return Path(artifacts.get("dir", ARTIFACTS_DIR)) / artifacts["filename"]


def verify_contracts(endpoint, deployments: List) -> None:
    for deployment in deployments:
        print(f"(i) Verifying {deployment.contract_name} at {deployment.address}...")
        endpoint.publish_contract(deployment.address)
