import json
from collections import namedtuple

import psutil
import pytest

from cosmos_exporter.exceptions import ConnectionTableError, FileAccessError, FileFormatError
from cosmos_exporter.peers import load_addrbook, normalize_ip, observed_peers, reconcile

Addr = namedtuple('Addr', ['ip', 'port'])
Conn = namedtuple('Conn', ['fd', 'family', 'type', 'laddr', 'raddr', 'status', 'pid'])


def conn(ip, port, status=psutil.CONN_ESTABLISHED):
    return Conn(-1, 2, 1, Addr('192.168.1.10', 40000), Addr(ip, port) if ip else (), status, None)


@pytest.mark.parametrize('text, expected', [
    ('10.0.0.1', '10.0.0.1'),
    (' 10.0.0.1 ', '10.0.0.1'),
    ('::ffff:10.0.0.2', '10.0.0.2'),
    ('2001:DB8::1', '2001:db8::1'),
    ('not-an-ip', None),
    ('10.0.0.256', None),
    ('', None),
    (None, None),
])
def test_normalize_ip(text, expected):
    assert normalize_ip(text) == expected


def test_load_addrbook(write_addrbook):
    path = write_addrbook(['10.0.0.1', '10.0.0.2', '10.0.0.2'])
    assert load_addrbook(path) == {'10.0.0.1', '10.0.0.2'}


def test_load_addrbook_skips_malformed_entries(write_addrbook, capsys):
    path = write_addrbook(raw=json.dumps({'addrs': [
        {'addr': {'ip': '10.0.0.1'}},
        {'addr': {'ip': 'not-an-ip'}},
        {'addr': {'id': 'f1a2b3c4d5'}},
        {'addr': None},
        'garbage',
        {'addr': {'ip': '10.0.0.3'}},
    ]}))
    assert load_addrbook(path) == {'10.0.0.1', '10.0.0.3'}
    assert 'skipped 4 malformed entries' in capsys.readouterr().out


def test_load_addrbook_without_addrs(write_addrbook):
    assert load_addrbook(write_addrbook(raw='{"key": "abc"}')) == set()


def test_load_addrbook_missing_file(tmp_path):
    with pytest.raises(FileAccessError):
        load_addrbook(str(tmp_path / 'missing.json'))


@pytest.mark.parametrize('raw', ['{"addrs": [', '[1, 2]', '{"addrs": {"ip": "10.0.0.1"}}'])
def test_load_addrbook_bad_format(write_addrbook, raw):
    with pytest.raises(FileFormatError):
        load_addrbook(write_addrbook(raw=raw))


def test_observed_peers_filters_port_and_state(monkeypatch):
    connections = [
        conn('10.0.0.2', 26656),
        conn('::ffff:10.0.0.9', 26656),
        conn('10.0.0.2', 26656),
        conn('10.0.0.3', 443),
        conn('10.0.0.4', 26656, status=psutil.CONN_TIME_WAIT),
        conn(None, 0, status=psutil.CONN_LISTEN),
    ]
    monkeypatch.setattr(psutil, 'net_connections', lambda kind: connections)
    assert observed_peers(26656) == {'10.0.0.2', '10.0.0.9'}


def test_observed_peers_access_denied(monkeypatch):
    def denied(kind):
        raise psutil.AccessDenied()

    monkeypatch.setattr(psutil, 'net_connections', denied)
    with pytest.raises(ConnectionTableError):
        observed_peers(26656)


def test_reconcile():
    a = {'10.0.0.1', '10.0.0.2'}
    b = {'10.0.0.2', '10.0.0.9'}
    assert reconcile(a, b) == reconcile(b, a) == 1
    assert reconcile(a, {'192.168.0.1'}) == 0
    assert reconcile(a, a | b) == len(a)
    assert reconcile(set(), b) == 0


def test_addrbook_against_live_connections(write_addrbook, monkeypatch):
    path = write_addrbook(raw='{"addrs":[{"addr":{"ip":"10.0.0.1"}},{"addr":{"ip":"10.0.0.2"}}]}')
    monkeypatch.setattr(
        psutil, 'net_connections',
        lambda kind: [conn('10.0.0.2', 26656), conn('10.0.0.9', 26656)],
    )
    assert reconcile(observed_peers(26656), load_addrbook(path)) == 1


def test_load_addrbook_not_utf8(tmp_path):
    path = tmp_path / 'addrbook.json'
    path.write_bytes(b'{"addrs": [{"addr": {"ip": "10.0.0.1\xff"}}]}')
    with pytest.raises(FileFormatError):
        load_addrbook(str(path))


def test_load_addrbook_ignores_unused_fields(write_addrbook):
    path = write_addrbook(raw=json.dumps({'addrs': [
        {'addr': {'id': 'f1a2b3c4d5', 'ip': '10.0.0.1', 'port': 'p2p'}, 'src': {'ip': '10.0.0.5'}},
        {'addr': {'id': 42, 'ip': '10.0.0.2', 'port': None}},
    ]}))
    assert load_addrbook(path) == {'10.0.0.1', '10.0.0.2'}
