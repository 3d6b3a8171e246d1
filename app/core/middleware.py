import ipaddress

from starlette.middleware.base import BaseHTTPMiddleware


def _parse_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Expose client ip and user agent on ``request.state`` for rate limiting and auth logs."""

    async def dispatch(self, request, call_next):
        client_host = request.client.host if request.client else None
        forwarded = request.headers.get("x-forwarded-for")
        # First hop is the original client; anything that is not an address falls back to the peer
        ip = _parse_ip(forwarded.split(",")[0]) if forwarded else None
        request.state.ip = ip or _parse_ip(client_host)
        request.state.user_agent = request.headers.get("user-agent")
        return await call_next(request)
