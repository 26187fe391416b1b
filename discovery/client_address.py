#!/usr/bin/env python3
"""
Resolve the network address a request came from, honouring a trusted
reverse proxy's X-Forwarded-For header.
"""
from aiohttp import web

UNKNOWN_ADDRESS = 'unknown'


def resolve_client_address(request: web.Request, trust_proxy: bool) -> str:
    """Left-most forwarded address when the proxy is trusted, else the peer address"""
    if trust_proxy:
        forwarded = request.headers.get('X-Forwarded-For', '')
        for entry in forwarded.split(','):
            entry = entry.strip()
            if entry:
                return entry
    return request.remote or UNKNOWN_ADDRESS
