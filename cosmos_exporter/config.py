import argparse
import os
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator
from yaml import load, SafeLoader, YAMLError

from cosmos_exporter.exceptions import ConfigError

DEFAULT_ADDRBOOK_PATH = '/root/.gaia/config/addrbook.json'
PEER_PORT = 26656

# Settings field -> environment variable
ENV_VARS = {
    'listen_address': 'LISTEN_ADDRESS',
    'addrbook_path': 'ADDRBOOK_PATH',
    'app_host': 'APP_HOST',
    'app_port': 'APP_PORT',
    'refresh_mode': 'REFRESH_MODE',
    'interval': 'INTERVAL',
    'request_timeout': 'REQUEST_TIMEOUT',
    'retry_attempts': 'RETRY_ATTEMPTS',
    'peer_port': 'PEER_PORT',
    'export_addrbook_size': 'EXPORT_ADDRBOOK_SIZE',
    'export_validator_count': 'EXPORT_VALIDATOR_COUNT',
}


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split a ``host:port`` listen address. An empty host binds all interfaces."""
    host, sep, port = (address or '').strip().rpartition(':')
    if not sep:
        raise ConfigError(f'Invalid listen address (missing port): {address!r}')
    host = host.strip('[]') or '0.0.0.0'
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigError(f'Invalid listen port: {address!r}') from None
    if not 0 < port_number < 65536:
        raise ConfigError(f'Listen port out of range: {address!r}')
    return host, port_number


class Settings(BaseModel):
    listen_address: str = ':8080'
    addrbook_path: str = DEFAULT_ADDRBOOK_PATH
    app_host: str = '127.0.0.1'
    app_port: int = 1317
    refresh_mode: Literal['interval', 'scrape'] = 'interval'
    interval: float = 5
    request_timeout: float = 5
    retry_attempts: int = 1
    peer_port: int = PEER_PORT
    export_addrbook_size: bool = False
    export_validator_count: bool = False

    @field_validator('app_port', mode='before')
    @classmethod
    def strip_port_colon(cls, value: Any) -> Any:
        # accepts the ":1317" form
        if isinstance(value, str):
            return value.strip().lstrip(':')
        return value

    @field_validator('listen_address')
    @classmethod
    def check_listen_address(cls, value: str) -> str:
        try:
            parse_listen_address(value)
        except ConfigError as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator('interval', 'request_timeout')
    @classmethod
    def check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError('must be greater than zero')
        return value

    @field_validator('retry_attempts')
    @classmethod
    def check_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError('must be at least 1')
        return value

    @property
    def api_url(self) -> str:
        return f'http://{self.app_host}:{self.app_port}'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cosmos-exporter',
        description='Prometheus exporter for Cosmos node height, block time skew and peers',
    )
    parser.add_argument('--listen-address', help='The address to listen on for HTTP requests (default ":8080")')
    parser.add_argument(
        '--addrbook-path', '--config-path',
        dest='addrbook_path',
        help=f'Path to the node address book (default "{DEFAULT_ADDRBOOK_PATH}")',
    )
    parser.add_argument('--app-host', help='Host of the exposed node API (default "127.0.0.1")')
    parser.add_argument('--app-port', help='Port of the exposed node API (default 1317)')
    parser.add_argument(
        '--refresh-mode',
        choices=['interval', 'scrape'],
        help='Refresh in background loops or on every scrape (default "interval")',
    )
    parser.add_argument('--interval', type=float, help='Seconds between background refreshes (default 5)')
    parser.add_argument('--config', dest='config_file', help='Optional YAML settings file')
    return parser


def read_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path) as file:
            data = load(file.read(), Loader=SafeLoader)
    except OSError as e:
        raise ConfigError(f'Cannot read config file "{path}": {e}') from e
    except YAMLError as e:
        raise ConfigError(f'Invalid YAML in "{path}": {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'Config file "{path}" must contain a mapping')
    return data


def load_settings(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Merge defaults, environment (.env included), the YAML file and CLI flags.

    Later sources win: flags override the file, the file overrides the environment.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    args = build_parser().parse_args(argv)

    values: Dict[str, Any] = {
        field: environ[name]
        for field, name in ENV_VARS.items()
        if environ.get(name)
    }

    config_file = args.config_file or environ.get('CONFIG_FILE')
    if config_file:
        values.update(read_config_file(config_file))

    values.update({
        key: value
        for key, value in vars(args).items()
        if key != 'config_file' and value is not None
    })

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
