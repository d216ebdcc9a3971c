import argparse
import sys
from loguru import logger

from account_closer import AmountConversionError, close_empty_accounts
from config import Config, ConfigError
from solana_service import RpcError, SolanaGateway
from utils import (
    TOKEN_PROGRAMS,
    decode_base58,
    derive_associated_token_address,
    format_bytes,
    pubkey_arg,
    token_program_id,
)
from wallet_loader import WalletLoadError, load_wallet

# Failures that already carry a descriptive message.
KNOWN_ERRORS = (ConfigError, WalletLoadError, RpcError, AmountConversionError)

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


def build_parser():
    parser = argparse.ArgumentParser(
        prog='token-janitor',
        description="Associated token addresses, empty token account cleanup and base58 decoding.",
    )
    parser.add_argument('--rpc-url', help="RPC host or URL (env RPC_URL wins over this flag)")
    parser.add_argument('--api-key', help="RPC API key (env RPC_API_KEY)")
    parser.add_argument('--keypair', help="default wallet keypair file (env KEYPAIR_PATH)")
    parser.add_argument('--config', help="Solana CLI config file (default: ~/.config/solana/cli/config.yml)")
    parser.add_argument('--timeout', type=float, help="RPC timeout in seconds (env RPC_TIMEOUT)")
    parser.add_argument('--log-level', help="log level (env LOG_LEVEL, default INFO)")

    commands = parser.add_subparsers(dest='command', metavar='{ata,close,bytes}')
    commands.required = True

    ata = commands.add_parser('ata', help="print the associated token address of the wallet for a mint")
    ata.add_argument('mint', type=pubkey_arg)
    ata.add_argument('--program', choices=sorted(TOKEN_PROGRAMS), default='token')
    ata.add_argument('--offline', action='store_true', help="skip the RPC connectivity check")

    close = commands.add_parser('close', help="close every zero-balance token account of a wallet")
    close.add_argument('path', help="keypair file of the wallet to clean up")
    close.add_argument('--program', choices=sorted(TOKEN_PROGRAMS), default='token')
    close.add_argument('--dry-run', action='store_true', help="list the accounts without sending transactions")

    decode = commands.add_parser('bytes', help="print the base58-decoded bytes of a key")
    decode.add_argument('key')
    return parser


def setup_logging(level='INFO', log_file=None):
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB")


def build_context(settings, keypair_path=None, check_connection=True):
    """Load the signing wallet and connect the RPC gateway.

    Without the connectivity check no gateway is built and the endpoint is
    never resolved.
    """
    wallet = load_wallet(keypair_path or settings.KEYPAIR_PATH)
    if not check_connection:
        return wallet, None
    gateway = SolanaGateway(settings.endpoint, commitment=settings.COMMITMENT, timeout=settings.TIMEOUT)
    gateway.check_connection()
    return wallet, gateway


def cmd_ata(args, settings):
    wallet, _ = build_context(settings, check_connection=not args.offline)
    address = derive_associated_token_address(wallet.pubkey(), args.mint, token_program_id(args.program))
    print(address)


def cmd_close(args, settings):
    wallet, gateway = build_context(settings, keypair_path=args.path)
    logger.info(f"🔑 Cleaning up token accounts of {wallet.pubkey()}")
    close_empty_accounts(gateway, wallet, token_program_id(args.program), dry_run=args.dry_run)


def cmd_bytes(args, settings):
    print(format_bytes(decode_base58(args.key)))


COMMANDS = {
    'ata': cmd_ata,
    'close': cmd_close,
    'bytes': cmd_bytes,
}


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging()
    cli = {
        'RPC_URL': args.rpc_url,
        'API_KEY': args.api_key,
        'KEYPAIR_PATH': args.keypair,
        'TIMEOUT': args.timeout,
        'LOG_LEVEL': args.log_level,
    }
    try:
        settings = Config(cli, config_file=args.config)
        setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
        logger.debug(f"Settings: {settings.describe()}")
        COMMANDS[args.command](args, settings)
    except KNOWN_ERRORS as e:
        logger.error(f"❌ {e}")
        return 1
    except Exception:
        logger.exception(f"❌ {args.command} failed")
        return 1
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
