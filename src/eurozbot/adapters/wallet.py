from __future__ import annotations

import logging
from dataclasses import dataclass, field

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3

from eurozbot.config import WalletMode
from eurozbot.domain.errors import ConfigurationError
from eurozbot.security.redaction import forget_secret, register_secret
from eurozbot.security.secrets import normalize_private_key

logger = logging.getLogger(__name__)


@dataclass
class WalletSession:
    """The connected wallet: an address plus, in private-key mode, the signer.

    The key lives only in this object; ``discard()`` drops it and also
    removes it from the log redaction registry.
    """

    address: str
    mode: WalletMode
    _account: LocalAccount | None = field(default=None, repr=False)
    _private_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_private_key(cls, raw_key: str | None) -> WalletSession:
        key = normalize_private_key(raw_key)
        register_secret(key)
        account: LocalAccount = Account.from_key(key)
        logger.info(
            "wallet_connected",
            extra={"extra": {"mode": WalletMode.PRIVATE_KEY.value, "address": account.address}},
        )
        return cls(
            address=account.address,
            mode=WalletMode.PRIVATE_KEY,
            _account=account,
            _private_key=key,
        )

    @property
    def is_private_key_mode(self) -> bool:
        return self.mode is WalletMode.PRIVATE_KEY

    @property
    def connected(self) -> bool:
        return self.mode is WalletMode.EXTERNAL_SIGNER or self._account is not None

    @property
    def account(self) -> LocalAccount:
        if self._account is None:
            raise ConfigurationError("wallet has no in-memory signer (disconnected or external)")
        return self._account

    def require_private_key_mode(self) -> None:
        if not self.is_private_key_mode:
            raise ConfigurationError("Automation only works with private key mode")

    def discard(self) -> None:
        if self._private_key is not None:
            forget_secret(self._private_key)
        self._private_key = None
        self._account = None
        logger.info("wallet_discarded", extra={"extra": {"mode": self.mode.value}})


async def connect_external_signer(w3: AsyncWeb3, *, expected_chain_id: int) -> WalletSession:
    """Use the first account managed by the RPC node's own signer."""
    chain_id = int(await w3.eth.chain_id)
    if chain_id != expected_chain_id:
        raise ConfigurationError(
            f"Please switch to Sepolia network! (connected chain id {chain_id}, "
            f"expected {expected_chain_id})"
        )
    accounts = await w3.eth.accounts
    if not accounts:
        raise ConfigurationError("External signer exposes no accounts")
    address = Web3.to_checksum_address(accounts[0])
    logger.info(
        "wallet_connected",
        extra={"extra": {"mode": WalletMode.EXTERNAL_SIGNER.value, "address": address}},
    )
    return WalletSession(address=address, mode=WalletMode.EXTERNAL_SIGNER)
