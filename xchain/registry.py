import json
from pathlib import Path
from typing import Any, Dict, List, NamedTuple

from eth_typing import ChecksumAddress

from xchain.utils import _load_json, stringify_arg

REGISTRY_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}

# registry layout: {"<chain id>": {"<label>": {<field>: value, ...}}}
RegistryData = Dict[str, Dict[str, Dict[str, Any]]]


class RegistryEntry(NamedTuple):
    """A deployed contract as recorded in a registry file."""

    chain_id: int
    name: str
    contract_name: str
    address: ChecksumAddress
    args: List[Any]
    tx_hash: str
    block_number: int
    deployer: str

    @classmethod
    def from_deployment(cls, deployment) -> "RegistryEntry":
        return cls(
            chain_id=deployment.chain_id,
            name=deployment.label,
            contract_name=deployment.contract_name,
            address=deployment.address,
            args=[stringify_arg(arg) for arg in deployment.args],
            tx_hash=deployment.txn_hash,
            block_number=deployment.block_number,
            deployer=deployment.deployer,
        )

    @classmethod
    def from_json(cls, chain_id: str, name: str, fields: Dict[str, Any]) -> "RegistryEntry":
        return cls(chain_id=int(chain_id), name=name, **fields)

    def to_json(self) -> Dict[str, Any]:
        fields = self._asdict()
        del fields["chain_id"], fields["name"]
        fields["args"] = list(self.args)
        fields["block_number"] = int(self.block_number)
        return fields


def _to_registry_data(entries: List[RegistryEntry]) -> RegistryData:
    data = dict()
    for entry in sorted(entries, key=lambda e: (str(e.chain_id), e.name)):
        data.setdefault(str(entry.chain_id), dict())[entry.name] = entry.to_json()
    return data


def read_registry(filepath: Path) -> List[RegistryEntry]:
    return [
        RegistryEntry.from_json(chain_id, name, fields)
        for chain_id, contracts in _load_json(filepath).items()
        for name, fields in contracts.items()
    ]


def write_registry(entries: List[RegistryEntry], filepath: Path, silent: bool = False) -> Path:
    """
    Writes ``entries`` to the registry at ``filepath``.

    An existing registry is extended with chains it does not list yet. When a chain
    is already present nothing is overwritten: the new entries go to a sibling
    ``.unmerged.json`` file instead, whose path is returned.
    """
    log = (lambda message: None) if silent else print
    if not entries:
        log("No registry entries to write.")
        return filepath

    data = _to_registry_data(entries)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    if not filepath.exists():
        log(f"Creating new registry at {filepath}.")
    else:
        existing = _load_json(filepath)
        overlap = sorted(set(existing) & set(data))
        if overlap:
            filepath = filepath.with_suffix(".unmerged.json")
            log(
                f"Registry already has entries for chain id(s) {', '.join(overlap)}; "
                f"writing to {filepath} instead."
            )
        else:
            log(f"Adding chain id(s) {', '.join(data)} to registry at {filepath}.")
            data = {**existing, **data}

    with open(filepath, "w") as file:
        json.dump(data, file, **REGISTRY_JSON_FORMAT)
    return filepath


def registry_from_deployments(deployments: List, output_filepath: Path) -> Path:
    """Creates a registry from the receipts of executed deployment scripts."""
    entries = [RegistryEntry.from_deployment(deployment) for deployment in deployments]
    output_filepath = write_registry(entries=entries, filepath=output_filepath)
    print(f"(i) Registry written to {output_filepath}!")
    return output_filepath
