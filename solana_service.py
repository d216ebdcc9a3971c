from dataclasses import dataclass
from typing import List, Optional
import httpx
from loguru import logger
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

RPC_ERRORS = (
    SolanaRpcException,
    RPCException,
    UnconfirmedTxError,
    TransactionExpiredBlockheightExceededError,
    httpx.HTTPError,
)


class RpcError(Exception):
    """A remote call failed. The message names the call that failed."""


def describe_error(e):
    """Readable cause of a client failure.

    solana-py exceptions keep their text in ``error_msg`` and stringify empty;
    the transport error they wrap is chained as ``__cause__``.
    """
    message = getattr(e, "error_msg", None) or str(e) or type(e).__name__
    cause = e.__cause__
    if cause is not None and str(cause) and str(cause) not in message:
        message = f"{message} ({cause})"
    return message


@dataclass(frozen=True)
class TokenBalance:
    amount: str
    decimals: int
    ui_amount: Optional[float]


@dataclass(frozen=True)
class LatestBlockhash:
    blockhash: Hash
    last_valid_block_height: int


class SolanaGateway:
    """Blocking access to the handful of RPC calls the janitor needs.

    Every method either returns a plain value or raises RpcError carrying a
    short description of the call that failed.
    """

    def __init__(self, endpoint, commitment='confirmed', timeout=30.0, client=None):
        self.commitment = Commitment(commitment)
        self.client = client or Client(endpoint, commitment=self.commitment, timeout=timeout)

    def check_connection(self):
        try:
            connected = self.client.is_connected()
        except RPC_ERRORS as e:
            raise RpcError(f"RPC endpoint unreachable: {describe_error(e)}") from e
        if not connected:
            raise RpcError("RPC endpoint unreachable")
        logger.debug("🌐 RPC endpoint is healthy")

    def get_token_accounts(self, owner: Pubkey, program_id: Pubkey) -> List[Pubkey]:
        try:
            resp = self.client.get_token_accounts_by_owner(owner, TokenAccountOpts(program_id=program_id))
        except RPC_ERRORS as e:
            raise RpcError(f"failed to get token accounts by owner: {describe_error(e)}") from e
        accounts = [keyed.pubkey for keyed in resp.value]
        logger.info(f"🔍 Found {len(accounts)} token accounts for {owner}")
        return accounts

    def get_token_balance(self, account: Pubkey) -> TokenBalance:
        try:
            resp = self.client.get_token_account_balance(account)
        except RPC_ERRORS as e:
            raise RpcError(f"failed to get token account balance for {account}: {describe_error(e)}") from e
        value = resp.value
        return TokenBalance(amount=value.amount, decimals=value.decimals, ui_amount=value.ui_amount)

    def get_latest_blockhash(self) -> LatestBlockhash:
        try:
            resp = self.client.get_latest_blockhash()
        except RPC_ERRORS as e:
            raise RpcError(f"failed to get latest blockhash: {describe_error(e)}") from e
        return LatestBlockhash(resp.value.blockhash, resp.value.last_valid_block_height)

    def send_and_confirm(self, transaction: Transaction, last_valid_block_height=None) -> Signature:
        """Submit a signed transaction and block until it reaches the configured commitment."""
        opts = TxOpts(skip_confirmation=True, preflight_commitment=self.commitment)
        try:
            signature = self.client.send_transaction(transaction, opts=opts).value
        except RPC_ERRORS as e:
            raise RpcError(f"failed to send transaction: {describe_error(e)}") from e

        logger.info(f"⏳ Waiting for confirmation of {signature}")
        try:
            resp = self.client.confirm_transaction(
                signature,
                commitment=self.commitment,
                last_valid_block_height=last_valid_block_height,
            )
        except RPC_ERRORS as e:
            raise RpcError(f"failed to confirm transaction {signature}: {describe_error(e)}") from e

        status = resp.value[0] if resp.value else None
        if status is not None and status.err is not None:
            raise RpcError(f"transaction {signature} failed: {status.err}")
        return signature
