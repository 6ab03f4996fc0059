"""
Funding Strategy

How the test identity gets native currency on a chain:

- DirectTransferFunding: a funder key pays the shortfall in one transfer.
- ManualFunding: the operator is shown the address, a payment URI and its
  QR code, and is asked to confirm until the balance check passes.

Waiting for the L1 -> L2 deposit instead of funding L2 directly ("bridge")
is not a strategy here; stages 6 and 7 handle it.
"""

import io
from abc import ABC, abstractmethod
from typing import Callable, Optional

import click
import qrcode
from eth_account.signers.local import LocalAccount
from rich.console import Console
from rich.panel import Panel
from web3 import Web3

from ..chain.connector import ChainConnector
from ..exceptions import WalletFundingError
from ..logger import get_logger

logger = get_logger(__name__)


def payment_uri(address: str, chain_id: int, amount_wei: int) -> str:
    """EIP-681 URI: ethereum:<address>@<chainId>?value=<wei>"""
    return f"ethereum:{address}@{chain_id}?value={amount_wei}"


def render_qr(data: str) -> str:
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


class FundingStrategy(ABC):
    name: str = ""

    @abstractmethod
    def fund(self, chain: ChainConnector, address: str, amount: int, target: int) -> Optional[str]:
        """
        Bring `address` on `chain` to at least `target` wei by adding `amount`.

        Returns:
            Funding tx hash when the tool sent one, else None.

        Raises:
            WalletFundingError
        """


class DirectTransferFunding(FundingStrategy):
    name = "funder"

    def __init__(self, funder: LocalAccount):
        self.funder = funder

    @property
    def address(self) -> str:
        return self.funder.address

    def can_cover(self, chain: ChainConnector, amount: int) -> bool:
        return chain.balance(self.funder.address) >= amount

    def fund(self, chain: ChainConnector, address: str, amount: int, target: int) -> Optional[str]:
        available = chain.balance(self.funder.address)
        if available < amount:
            raise WalletFundingError(
                f"Funder {self.funder.address} has {Web3.from_wei(available, 'ether')} ETH on "
                f"{chain.name}, needs {Web3.from_wei(amount, 'ether')} ETH"
            )
        logger.info(
            "Sending %s ETH on %s from %s to %s",
            Web3.from_wei(amount, "ether"), chain.name, self.funder.address, address,
        )
        tx_hash = chain.transfer(self.funder, address, amount)
        receipt = chain.wait_for_receipt(tx_hash)
        if receipt["status"] != 1:
            raise WalletFundingError(f"Funding transfer {tx_hash} reverted on {chain.name}")
        return tx_hash


class ManualFunding(FundingStrategy):
    """
    Args:
        confirm: Prompt returning once the operator says the payment was sent.
        console: Where instructions and the QR code are printed.
        max_attempts: Failed balance checks tolerated; None for unlimited.
    """
    name = "manual"

    def __init__(
        self,
        confirm: Callable[[str], object] = lambda message: click.confirm(message, default=True),
        console: Optional[Console] = None,
        max_attempts: Optional[int] = None,
    ):
        self.confirm = confirm
        self.console = console or Console()
        self.max_attempts = max_attempts

    def instructions(self, chain: ChainConnector, address: str, amount: int) -> str:
        uri = payment_uri(address, chain.chain_id, amount)
        return (
            f"Please fund the following address with {Web3.from_wei(amount, 'ether')} ETH:\n"
            f"[cyan]{address}[/cyan]\n\n"
            f"ChainID: [cyan]{chain.chain_id}[/cyan]\n"
            f"Chain RPC: [cyan]{chain.rpc_url}[/cyan]\n"
            f"Payment URI: {uri}\n\n"
            f"Scan this QR code to fund the address:\n{render_qr(uri)}"
        )

    def fund(self, chain: ChainConnector, address: str, amount: int, target: int) -> Optional[str]:
        self.console.print(Panel(self.instructions(chain, address, amount), title=f"Fund {chain.name}"))
        attempts = 0
        while True:
            self.confirm("Done?")
            logger.info("Checking %s balance of %s...", chain.name, address)
            balance = chain.balance(address)
            if balance >= target:
                logger.info("Wallet balance: %s ETH", Web3.from_wei(balance, "ether"))
                return None
            attempts += 1
            if self.max_attempts is not None and attempts >= self.max_attempts:
                raise WalletFundingError(
                    f"{address} still holds {Web3.from_wei(balance, 'ether')} ETH on {chain.name} "
                    f"after {attempts} checks"
                )
            logger.warning(
                "Balance is only %s ETH. Please fund the wallet.", Web3.from_wei(balance, "ether"),
            )
