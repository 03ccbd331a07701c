from pathlib import Path

import xchain

#
# Filesystem
#

XCHAIN_DIR = Path(xchain.__file__).parent
PLANS_DIR = XCHAIN_DIR.parent / "plans"
ARTIFACTS_DIR = XCHAIN_DIR.parent / "artifacts"

#
# Chains
#

CHAIN_A = "a"
CHAIN_B = "b"

SUPPORTED_CHAINS = [CHAIN_A, CHAIN_B]

CHAIN_SECTIONS = {
    CHAIN_A: "chain_a",
    CHAIN_B: "chain_b",
}

#
# Collision resolution
#

# upper bound on burn/re-predict rounds before giving up
MAX_NONCE_BURN_ROUNDS = 10

#
# Deployment
#

RESULTS_JSON_FORMAT = {"indent": 2, "separators": (",", ": ")}

DEFAULT_CONSTRUCTOR_ABI = {
    "type": "constructor",
    "stateMutability": "nonpayable",
    "inputs": [],
}

UNKNOWN_ARGUMENT_NAME = "<UNKNOWN>"
