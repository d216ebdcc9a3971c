"""Close zero-balance token accounts and return their rent to the owner.

The scan is split in two so the batching policy can be exercised without a
network: ``iter_close_batches`` walks the accounts and yields full batches,
``close_empty_accounts`` submits whatever it yields.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Iterator, List
from loguru import logger
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from spl.token.instructions import CloseAccountParams, close_account

from solana_service import TokenBalance
from utils import truncate_address

# Keeps a legacy transaction under the packet size limit.
MAX_CLOSE_INSTRUCTIONS = 15


class AmountConversionError(ValueError):
    pass


def ui_amount_to_amount(ui_amount, decimals: int) -> int:
    """Raw integer amount for a UI amount, truncated toward zero."""
    if ui_amount is None:
        raise AmountConversionError("could not parse amount: missing ui amount")
    try:
        value = Decimal(str(ui_amount))
    except InvalidOperation as e:
        raise AmountConversionError(f"could not parse amount: {ui_amount!r}") from e
    if not value.is_finite() or value < 0:
        raise AmountConversionError(f"could not parse amount: {ui_amount!r}")
    if decimals < 0:
        raise AmountConversionError(f"invalid decimals: {decimals}")
    return int(value.scaleb(decimals))


def build_close_instruction(account: Pubkey, owner: Pubkey, program_id: Pubkey) -> Instruction:
    return close_account(
        CloseAccountParams(
            program_id=program_id,
            account=account,
            dest=owner,
            owner=owner,
            signers=[],
        )
    )


class CloseBatch:
    """Pending close instructions for one transaction"""

    def __init__(self, capacity: int = MAX_CLOSE_INSTRUCTIONS):
        self.capacity = capacity
        self.accounts: List[Pubkey] = []
        self.instructions: List[Instruction] = []

    def __len__(self):
        return len(self.instructions)

    @property
    def is_full(self) -> bool:
        return len(self.instructions) >= self.capacity

    def add(self, account: Pubkey, instruction: Instruction):
        if self.is_full:
            raise OverflowError(f"batch already holds {self.capacity} instructions")
        self.accounts.append(account)
        self.instructions.append(instruction)


@dataclass
class CloseReport:
    scanned: int = 0
    skipped: int = 0
    closed: List[Pubkey] = field(default_factory=list)
    batch_sizes: List[int] = field(default_factory=list)
    signatures: List[Signature] = field(default_factory=list)


def iter_close_batches(
    accounts: Iterable[Pubkey],
    balance_of: Callable[[Pubkey], TokenBalance],
    owner: Pubkey,
    program_id: Pubkey,
    stats: CloseReport = None,
    capacity: int = MAX_CLOSE_INSTRUCTIONS,
) -> Iterator[CloseBatch]:
    """Yield batches of close instructions for the zero-balance accounts.

    A full batch is yielded before the next account's balance is queried, so
    whatever the consumer does with it (submit) happens in listing order.
    Balance and conversion errors propagate and end the scan; the pending
    batch is dropped.
    """
    batch = CloseBatch(capacity)
    for account in accounts:
        if batch.is_full:
            yield batch
            batch = CloseBatch(capacity)

        balance = balance_of(account)
        amount = ui_amount_to_amount(balance.ui_amount, balance.decimals)
        if stats is not None:
            stats.scanned += 1

        if amount != 0:
            logger.debug(f"Skipping {truncate_address(account)}: balance {amount}")
            if stats is not None:
                stats.skipped += 1
            continue

        instruction = build_close_instruction(account, owner, program_id)
        logger.info(f"🧹 Close account: {account} (program {truncate_address(program_id)})")
        batch.add(account, instruction)

    if len(batch):
        yield batch


def build_close_transaction(wallet: Keypair, batch: CloseBatch, blockhash) -> Transaction:
    message = Message.new_with_blockhash(list(batch.instructions), wallet.pubkey(), blockhash)
    tx = Transaction.new_unsigned(message)
    tx.sign([wallet], blockhash)
    return tx


def submit_batch(gateway, wallet: Keypair, batch: CloseBatch) -> Signature:
    """Sign one batch with the wallet as fee payer, send it and wait for confirmation."""
    latest = gateway.get_latest_blockhash()
    tx = build_close_transaction(wallet, batch, latest.blockhash)
    return gateway.send_and_confirm(tx, latest.last_valid_block_height)


def close_empty_accounts(gateway, wallet: Keypair, program_id: Pubkey, dry_run: bool = False) -> CloseReport:
    """Close every zero-balance token account of ``wallet`` under ``program_id``.

    Prints one ``Signature:`` line per submitted batch. Any failure aborts the
    run; batches already submitted stay submitted.
    """
    owner = wallet.pubkey()
    report = CloseReport()
    accounts = gateway.get_token_accounts(owner, program_id)

    for batch in iter_close_batches(accounts, gateway.get_token_balance, owner, program_id, stats=report):
        report.batch_sizes.append(len(batch))
        if dry_run:
            for account in batch.accounts:
                print(f"Would close: {account}")
        else:
            signature = submit_batch(gateway, wallet, batch)
            print(f"Signature: {signature}")
            report.signatures.append(signature)
        report.closed.extend(batch.accounts)

    logger.info(
        f"✅ Scanned {report.scanned} accounts: {len(report.closed)} empty, "
        f"{report.skipped} with balance, {len(report.batch_sizes)} transaction(s)"
        + (" (dry run)" if dry_run else "")
    )
    return report
