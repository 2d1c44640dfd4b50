"""CORS for the API, leaving the public feed path alone."""
from starlette.middleware.cors import CORSMiddleware
from starlette.types import Receive, Scope, Send


class AppCORSMiddleware(CORSMiddleware):
    """CORSMiddleware that passes requests under ``exempt_prefixes`` straight through.

    The ICS feed answers its own preflights with ``Access-Control-Allow-Origin: *``
    for any origin. Without the exemption a restricted ``allowed_origins``
    would reject those preflights before the route is reached.
    """

    def __init__(self, app, exempt_prefixes: tuple[str, ...] = (), **options):
        super().__init__(app, **options)
        self.exempt_prefixes = exempt_prefixes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"].startswith(self.exempt_prefixes):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)
