"""ABI fragments for the two contracts the worker consumes."""

from __future__ import annotations

from typing import Any


def _view(name: str, inputs: list[tuple[str, str]], output: str) -> dict[str, Any]:
    """Build one ``view`` function ABI entry."""
    return {
        "inputs": [
            {"internalType": kind, "name": arg, "type": kind} for arg, kind in inputs
        ],
        "name": name,
        "outputs": [{"internalType": output, "name": "", "type": output}],
        "stateMutability": "view",
        "type": "function",
    }


def _write(name: str, inputs: list[tuple[str, str]]) -> dict[str, Any]:
    """Build one ``nonpayable`` function ABI entry."""
    return {
        "inputs": [
            {"internalType": kind, "name": arg, "type": kind} for arg, kind in inputs
        ],
        "name": name,
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    }


ERC721_ABI: list[dict[str, Any]] = [
    _view("balanceOf", [("owner", "address")], "uint256"),
]

MANAGER_ABI: list[dict[str, Any]] = [
    _view("getInventoryCount", [], "uint256"),
    _view("pendingRequestCount", [], "uint256"),
    _view("getInventory", [], "uint256[]"),
    _view("getUntrackedNFTs", [("startId", "uint256"), ("endId", "uint256")], "uint256[]"),
    _view("owner", [], "address"),
    _write("batchRecoverUntrackedNFTs", [("tokenIds", "uint256[]")]),
    _write("resetPendingRequestCount", []),
]


if __name__ == "__main__":
    names = {entry["name"] for entry in MANAGER_ABI}
    assert {"getUntrackedNFTs", "batchRecoverUntrackedNFTs", "owner"} <= names
    assert ERC721_ABI[0]["outputs"][0]["type"] == "uint256"
