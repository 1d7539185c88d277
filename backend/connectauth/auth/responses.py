"""Response and error shaping.

Browser flows (login, signup, link) always end in a 303 back to the app,
carrying either flow parameters or ``oAuthError``. API flows (unlink,
listConnections) answer with JSON.
"""

from urllib.parse import urlsplit

import httpx
from fastapi import status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response

from connectauth.auth.errors import ErrorMessages, OAuthError
from connectauth.auth.orchestrator import FlowResult, RequestContext, ResultKind
from connectauth.auth.providers import Flow
from connectauth.core.logging import get_logger

logger = get_logger(__name__)

REDIRECT_FLOWS = frozenset({Flow.LOGIN, Flow.SIGNUP, Flow.LINK})


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


class ResponseShaper:
    """Turns a ``FlowResult`` or an exception into an HTTP response."""

    def __init__(self, messages: ErrorMessages, frontend_url: str, allowed_origins: list[str]):
        self.messages = messages
        self.frontend_url = frontend_url
        self.allowed_origins = {_origin(o) for o in allowed_origins}

    def return_url(self, state: str | None) -> str:
        """Where the browser goes after a redirect flow.

        ``state`` carries the app's return URL. Paths are resolved against the
        frontend; absolute URLs must point at an allowed origin.
        """
        if not state:
            return self.frontend_url
        if state.startswith("/") and not state.startswith("//"):
            return self.frontend_url.rstrip("/") + state

        parts = urlsplit(state)
        if parts.scheme in ("http", "https") and _origin(state) in self.allowed_origins:
            return state

        logger.warning("Ignoring return URL outside the allowed origins", state=state)
        return self.frontend_url

    def _redirect(self, ctx: RequestContext, query: dict[str, str]) -> RedirectResponse:
        url = httpx.URL(self.return_url(ctx.state))
        if query:
            url = url.copy_merge_params(query)
        return RedirectResponse(str(url), status_code=status.HTTP_303_SEE_OTHER)

    def success(self, ctx: RequestContext, result: FlowResult) -> Response:
        if ctx.flow in REDIRECT_FLOWS or result.kind is ResultKind.REDIRECT:
            response = self._redirect(ctx, dict(result.query))
            for cookie in result.session_headers:
                response.headers.append("set-cookie", cookie)
            return response
        return JSONResponse(result.payload, status_code=status.HTTP_200_OK)

    def failure(self, ctx: RequestContext, error: Exception) -> Response:
        if isinstance(error, OAuthError):
            logger.info("OAuth flow refused", error_code=error.code, flow=ctx.flow.value)
        else:
            logger.error("Unexpected error in OAuth flow", flow=ctx.flow.value, error=str(error), exc_info=error)

        message = self.messages.for_error(error)
        if ctx.flow in REDIRECT_FLOWS:
            return self._redirect(ctx, {"oAuthError": message})
        return JSONResponse({"error": message}, status_code=status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def not_found(message: str) -> Response:
        return JSONResponse({"error": message}, status_code=status.HTTP_404_NOT_FOUND)
