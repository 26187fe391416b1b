"""Tests for caller address resolution."""

from unittest.mock import Mock

from aiohttp.test_utils import make_mocked_request

from discovery.client_address import resolve_client_address


def mocked_request(headers=None, peer='192.168.1.10'):
    transport = Mock()
    extra = {'peername': (peer, 54321)} if peer else {}
    transport.get_extra_info.side_effect = lambda name, default=None: extra.get(name, default)
    return make_mocked_request('GET', '/', headers=headers or {}, transport=transport)


class TestResolveClientAddress:
    """Test partition key resolution."""

    def test_peer_address_without_proxy_header(self):
        assert resolve_client_address(mocked_request(), trust_proxy=True) == '192.168.1.10'

    def test_left_most_forwarded_address(self):
        request = mocked_request({'X-Forwarded-For': '203.0.113.7, 10.0.0.2, 10.0.0.1'})

        assert resolve_client_address(request, trust_proxy=True) == '203.0.113.7'

    def test_blank_forwarded_entries_are_skipped(self):
        request = mocked_request({'X-Forwarded-For': ' , 203.0.113.7'})

        assert resolve_client_address(request, trust_proxy=True) == '203.0.113.7'

    def test_forwarded_header_ignored_when_proxy_not_trusted(self):
        request = mocked_request({'X-Forwarded-For': '203.0.113.7'})

        assert resolve_client_address(request, trust_proxy=False) == '192.168.1.10'

    def test_missing_peer(self):
        assert resolve_client_address(mocked_request(peer=None), trust_proxy=False) == 'unknown'
