"""
Chain deployment domain model.

Represents where the fundraiser contract lives on one chain.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class ChainDeployment:
    """Contract deployment for a chain selector."""

    chain: str  # Selector, e.g. "blockdag"
    chain_id: int
    rpc_url: str
    contract_address: str
    contract_version: str  # e.g. "v6"

    def __str__(self) -> str:
        return (
            f"ChainDeployment(chain={self.chain}, chain_id={self.chain_id}, "
            f"contract={self.contract_address}, version={self.contract_version})"
        )
