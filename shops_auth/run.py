import uvicorn

from shops_auth.core.config import Settings, get_settings


def server_options(settings: Settings) -> dict:
    # Behind a reverse proxy the socket peer is the proxy; uvicorn rewrites
    # request.client from X-Forwarded-For when the peer is in FORWARDED_ALLOW_IPS.
    return {
        'host': settings.HOST,
        'port': settings.PORT,
        'proxy_headers': True,
        'forwarded_allow_ips': settings.FORWARDED_ALLOW_IPS,
        'log_config': None,
        'reload': False,
    }


def main() -> None:
    uvicorn.run('shops_auth.main:app', **server_options(get_settings()))


if __name__ == '__main__':
    main()
