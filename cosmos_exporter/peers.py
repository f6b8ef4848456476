import json
from ipaddress import IPv6Address, ip_address
from typing import Iterable, Optional, Set

import psutil
from pydantic import ValidationError

from cosmos_exporter.config import PEER_PORT
from cosmos_exporter.exceptions import ConnectionTableError, FileAccessError, FileFormatError
from cosmos_exporter.models import AddrBookEntry


def normalize_ip(text: Optional[str]) -> Optional[str]:
    """Canonical host address for ``text``, or None if it is not an IP literal.

    IPv4-mapped IPv6 addresses (``::ffff:10.0.0.1``) collapse to plain IPv4 so
    dual-stack sockets compare equal to address book entries.
    """
    if not text:
        return None
    try:
        address = ip_address(text.strip())
    except ValueError:
        return None
    if isinstance(address, IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return str(address)


def load_addrbook(path: str) -> Set[str]:
    try:
        with open(path, encoding='utf-8') as file:
            raw = file.read()
    except UnicodeDecodeError as e:
        raise FileFormatError(f'Address book "{path}" is not valid UTF-8: {e}') from e
    except OSError as e:
        raise FileAccessError(f'Cannot read address book "{path}": {e}') from e

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise FileFormatError(f'Invalid JSON in address book "{path}": {e}') from e

    if not isinstance(data, dict):
        raise FileFormatError(f'Address book "{path}" is not a JSON object')
    entries = data.get('addrs') or []
    if not isinstance(entries, list):
        raise FileFormatError(f'Address book "{path}": "addrs" is not a list')

    expected = set()
    skipped = 0
    for raw_entry in entries:
        try:
            entry = AddrBookEntry.model_validate(raw_entry)
        except ValidationError:
            skipped += 1
            continue
        ip = normalize_ip(entry.addr.ip)
        if ip is None:
            skipped += 1
            continue
        expected.add(ip)

    if skipped:
        print(f'Address book "{path}": skipped {skipped} malformed entries')
    return expected


def observed_peers(port: int = PEER_PORT) -> Set[str]:
    """Remote IPs of established TCP connections to ``port``."""
    try:
        connections = psutil.net_connections(kind='tcp')
    except (psutil.Error, OSError) as e:
        raise ConnectionTableError(f'Cannot read TCP connection table: {e!r}') from e

    observed = set()
    for conn in connections:
        if not conn.raddr or conn.raddr.port != port:
            continue
        if conn.status != psutil.CONN_ESTABLISHED:
            continue
        ip = normalize_ip(conn.raddr.ip)
        if ip is not None:
            observed.add(ip)
    return observed


def reconcile(observed: Iterable[str], expected: Iterable[str]) -> int:
    """Number of addresses present in both sets."""
    return len(set(observed) & set(expected))
