"""PriceSource: Configuration of a single price source.

A source is identified by a stable id derived from its label and the address
of the external contract it reads from (typically a liquidity pool). The id
is computed as:
    keccak256(label + "/" + checksummedExternalRef)

which keeps the id stable across restarts and independent of the order in
which sources were registered.

.. code-block:: python

    >>> source = PriceSourceConfig.create(
    ...     "uniswap-v2-eth-usdc", "0xb4e16d0168e52d35cacd2c6185b44281ec28c9dc", weight=100
    ... )
    >>> source.external_ref
    '0xB4e16d0168e52d35CaCD2c6185b44281Ec28C9Dc'
    >>> source.id.startswith("0x")
    True
"""

from __future__ import annotations

from dataclasses import dataclass

from web3 import Web3

from .errors import InvalidParametersError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_external_ref(external_ref: str) -> str:
    """Validate an external contract address and return it checksummed.

    :param external_ref: Hex address of the external contract.
    :returns: EIP-55 checksummed address.
    :raises InvalidParametersError: If the address is malformed or the zero address.
    """
    if not external_ref or not Web3.is_address(external_ref):
        raise InvalidParametersError(f"Invalid external reference '{external_ref}'")
    checksummed = Web3.to_checksum_address(external_ref)
    if checksummed == ZERO_ADDRESS:
        raise InvalidParametersError("External reference must not be the zero address")
    return checksummed


def compute_source_id(label: str, external_ref: str) -> str:
    """Compute the keccak256 source id for a label and external reference.

    :param label: Human-readable source label.
    :param external_ref: Hex address of the external contract.
    :returns: 0x-prefixed hex digest.
    """
    key_string = f"{label}/{normalize_external_ref(external_ref)}"
    return Web3.to_hex(Web3.keccak(text=key_string))


@dataclass
class PriceSourceConfig:
    """A registered price source.

    The engine only reads ``active`` and ``weight``; ``last_price`` and
    ``last_update_time`` are written back after each completed cycle as an
    audit trail.

    :ivar id: Stable source identifier.
    :ivar external_ref: Checksummed address of the external contract.
    :ivar label: Human-readable label.
    :ivar active: Whether the source takes part in aggregation.
    :ivar weight: Aggregation weight, always positive.
    :ivar last_price: Last price this source contributed.
    :ivar last_update_time: Time of the cycle that used last_price.
    """

    id: str
    external_ref: str
    label: str = ""
    active: bool = True
    weight: int = 1
    last_price: int = 0
    last_update_time: int = 0

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidParametersError("Source id must not be empty")
        if self.weight <= 0:
            raise InvalidParametersError(f"Source {self.id}: weight must be positive")
        self.external_ref = normalize_external_ref(self.external_ref)

    @classmethod
    def create(
        cls, label: str, external_ref: str, weight: int = 1, active: bool = True
    ) -> PriceSourceConfig:
        """Create a source whose id is derived from its label and reference.

        :param label: Human-readable label.
        :param external_ref: Hex address of the external contract.
        :param weight: Aggregation weight.
        :param active: Initial active flag.
        :returns: New PriceSourceConfig.
        :raises InvalidParametersError: On zero weight or an invalid address.
        """
        return cls(
            id=compute_source_id(label, external_ref),
            external_ref=external_ref,
            label=label,
            active=active,
            weight=weight,
        )

    def __str__(self) -> str:
        return self.label or self.id
