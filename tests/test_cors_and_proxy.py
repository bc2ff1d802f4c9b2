from __future__ import annotations

from fastapi.testclient import TestClient
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from shops_auth.main import create_app
from shops_auth.run import server_options
from shops_auth.store.ephemeral import MemoryStore
from tests._helpers.auth import FakeOAuthProvider, make_settings

PREFLIGHT = {
    'Origin': 'http://shop.test',
    'Access-Control-Request-Method': 'POST',
    'Access-Control-Request-Headers': 'content-type',
}


def test_preflight_from_storefront_is_allowed_with_credentials(client) -> None:
    r = client.options('/api/auth/login', headers=PREFLIGHT)
    assert r.status_code == 200
    assert r.headers['access-control-allow-origin'] == 'http://shop.test'
    assert r.headers['access-control-allow-credentials'] == 'true'
    assert 'POST' in r.headers['access-control-allow-methods']


def test_simple_request_from_storefront_carries_cors_headers(client) -> None:
    r = client.get('/api/auth/me', headers={'Origin': 'http://shop.test'})
    assert r.status_code == 401
    assert r.headers['access-control-allow-origin'] == 'http://shop.test'
    assert r.headers['access-control-allow-credentials'] == 'true'


def test_unknown_origin_gets_no_cors_grant(client) -> None:
    r = client.options('/api/auth/login', headers={**PREFLIGHT, 'Origin': 'http://evil.test'})
    assert r.status_code == 400
    assert 'access-control-allow-origin' not in r.headers
    r = client.get('/api/auth/me', headers={'Origin': 'http://evil.test'})
    assert 'access-control-allow-origin' not in r.headers


def test_extra_origins_are_allowed(tmp_path) -> None:
    settings = make_settings(tmp_path, CORS_ORIGINS='http://admin.test/, http://shop.test')
    assert settings.cors_origins == ['http://shop.test', 'http://admin.test']
    with TestClient(create_app(settings, oauth=FakeOAuthProvider(), store=MemoryStore())) as c:
        r = c.options('/api/auth/login', headers={**PREFLIGHT, 'Origin': 'http://admin.test'})
    assert r.status_code == 200
    assert r.headers['access-control-allow-origin'] == 'http://admin.test'


def test_rate_limit_keys_on_forwarded_client(tmp_path) -> None:
    settings = make_settings(tmp_path, RATE_LIMIT_ENABLED=True, RATE_LIMIT_MAX_REQUESTS=1)
    app = create_app(settings, oauth=FakeOAuthProvider(), store=MemoryStore())
    with TestClient(ProxyHeadersMiddleware(app, trusted_hosts='*')) as c:
        assert c.get('/api/auth/me', headers={'X-Forwarded-For': '1.1.1.1'}).status_code == 401
        assert c.get('/api/auth/me', headers={'X-Forwarded-For': '2.2.2.2'}).status_code == 401
        assert c.get('/api/auth/me', headers={'X-Forwarded-For': '1.1.1.1'}).status_code == 429


def test_server_trusts_forwarded_headers_from_configured_peers(tmp_path) -> None:
    settings = make_settings(tmp_path, FORWARDED_ALLOW_IPS='10.0.0.5', HOST='127.0.0.1', PORT=4001)
    options = server_options(settings)
    assert options['proxy_headers'] is True
    assert options['forwarded_allow_ips'] == '10.0.0.5'
    assert (options['host'], options['port']) == ('127.0.0.1', 4001)
    assert options['reload'] is False
