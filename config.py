import os
from urllib.parse import urlencode
import yaml
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

DEFAULT_CONFIG_FILE = os.path.join('~', '.config', 'solana', 'cli', 'config.yml')
DEFAULT_KEYPAIR_PATH = os.path.join('~', '.config', 'solana', 'id.json')

# Compiled defaults. The endpoint and API key are placeholders and must be
# supplied at runtime.
DEFAULTS = {
    'RPC_URL': '',
    'API_KEY': '',
    'KEYPAIR_PATH': DEFAULT_KEYPAIR_PATH,
    'COMMITMENT': 'confirmed',
    'TIMEOUT': 30.0,
    'LOG_LEVEL': 'INFO',
    'LOG_FILE': None,
}

# field -> environment variable
ENV_VARS = {
    'RPC_URL': 'RPC_URL',
    'API_KEY': 'RPC_API_KEY',
    'KEYPAIR_PATH': 'KEYPAIR_PATH',
    'COMMITMENT': 'COMMITMENT',
    'TIMEOUT': 'RPC_TIMEOUT',
    'LOG_LEVEL': 'LOG_LEVEL',
    'LOG_FILE': 'LOG_FILE',
}

# field -> key in the Solana CLI config file
FILE_KEYS = {
    'RPC_URL': 'json_rpc_url',
    'KEYPAIR_PATH': 'keypair_path',
    'COMMITMENT': 'commitment',
}

COMMITMENTS = ('processed', 'confirmed', 'finalized')


class ConfigError(Exception):
    """Raised when the resolved configuration cannot be used."""


def load_config_file(path=None):
    """Read the Solana CLI YAML config.

    A missing or unreadable file yields an empty mapping so the caller falls
    back to compiled defaults.
    """
    path = path or os.getenv('SOLANA_CONFIG') or DEFAULT_CONFIG_FILE
    path = os.path.expanduser(path)
    if not os.path.exists(path):
        logger.debug(f"Config file not found: {path}")
        return {}
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"⚠️ Ignoring unreadable config file {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"⚠️ Ignoring config file {path}: expected a mapping")
        return {}
    return data


class Config:
    """Resolved settings.

    Each field is taken from the first source that sets it:
    environment variable, then CLI flag, then config file, then default.
    """

    def __init__(self, cli=None, config_file=None):
        cli = cli or {}
        file_values = load_config_file(config_file)
        self.sources = {}

        for field, default in DEFAULTS.items():
            value, source = default, 'default'
            file_key = FILE_KEYS.get(field)
            if file_key and file_values.get(file_key) not in (None, ''):
                value, source = file_values[file_key], 'file'
            if cli.get(field) not in (None, ''):
                value, source = cli[field], 'cli'
            env_value = os.getenv(ENV_VARS[field])
            if env_value not in (None, ''):
                value, source = env_value, 'env'
            setattr(self, field, value)
            self.sources[field] = source

        self.KEYPAIR_PATH = os.path.expanduser(str(self.KEYPAIR_PATH))
        self.COMMITMENT = str(self.COMMITMENT).lower()
        if self.COMMITMENT not in COMMITMENTS:
            raise ConfigError(f"invalid commitment level: {self.COMMITMENT}")
        try:
            self.TIMEOUT = float(self.TIMEOUT)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid RPC timeout: {self.TIMEOUT}") from e
        if self.TIMEOUT <= 0:
            raise ConfigError(f"RPC timeout must be positive: {self.TIMEOUT}")
        self.LOG_LEVEL = str(self.LOG_LEVEL).upper()
        try:
            logger.level(self.LOG_LEVEL)
        except ValueError as e:
            raise ConfigError(f"invalid log level: {self.LOG_LEVEL}") from e

    @property
    def endpoint(self):
        return build_rpc_url(self.RPC_URL, self.API_KEY)

    def describe(self):
        """Settings with their origin, for debug logging. Never includes the API key."""
        return {
            field: (getattr(self, field), self.sources[field])
            for field in DEFAULTS
            if field != 'API_KEY'
        }


def build_rpc_url(rpc_url, api_key=''):
    """Compose the RPC endpoint.

    A bare host becomes ``https://<host>/?api-key=<key>``. A URL that already
    carries a scheme is kept and the key is appended as a query parameter.
    """
    rpc_url = (rpc_url or '').strip()
    api_key = (api_key or '').strip()
    if not rpc_url:
        raise ConfigError("RPC endpoint is not configured (set RPC_URL or --rpc-url)")

    if '://' not in rpc_url:
        url = f"https://{rpc_url.rstrip('/')}/"
        return f"{url}?{urlencode({'api-key': api_key})}" if api_key else url

    if not api_key:
        return rpc_url
    separator = '&' if '?' in rpc_url else '?'
    return f"{rpc_url}{separator}{urlencode({'api-key': api_key})}"
