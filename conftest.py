import json

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from solana_service import LatestBlockhash, RpcError, TokenBalance


def zero_balance(decimals=6):
    return TokenBalance(amount='0', decimals=decimals, ui_amount=0.0)


def balance_of(ui_amount, decimals=6):
    return TokenBalance(amount=str(int(ui_amount * 10 ** decimals)), decimals=decimals, ui_amount=ui_amount)


class FakeGateway:
    """In-memory stand-in for SolanaGateway.

    ``balances`` maps account -> TokenBalance (or an exception to raise) in
    listing order.
    """

    def __init__(self, balances, fail_blockhash=False, fail_send=False):
        self.balances = dict(balances)
        self.fail_blockhash = fail_blockhash
        self.fail_send = fail_send
        self.balance_queries = []
        self.sent = []
        self.blockhash = Hash.new_unique()

    def check_connection(self):
        pass

    def get_token_accounts(self, owner, program_id):
        return list(self.balances)

    def get_token_balance(self, account):
        self.balance_queries.append(account)
        value = self.balances[account]
        if isinstance(value, Exception):
            raise value
        return value

    def get_latest_blockhash(self):
        if self.fail_blockhash:
            raise RpcError("failed to get latest blockhash: connection refused")
        return LatestBlockhash(self.blockhash, 1000)

    def send_and_confirm(self, transaction, last_valid_block_height=None):
        if self.fail_send:
            raise RpcError("failed to send transaction: blockhash not found")
        self.sent.append(transaction)
        return transaction.signatures[0]

    def closed_accounts(self):
        """Token accounts named by the sent close instructions, in order."""
        closed = []
        for tx in self.sent:
            keys = tx.message.account_keys
            for ix in tx.message.instructions:
                closed.append(keys[ix.accounts[0]])
        return closed


@pytest.fixture
def wallet():
    return Keypair.from_seed(bytes(range(32)))


@pytest.fixture
def keypair_file(tmp_path, wallet):
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(wallet))))
    return path


@pytest.fixture
def unique_accounts():
    def make(count):
        return [Pubkey.new_unique() for _ in range(count)]
    return make
