"""OAuth Router.

One endpoint serves every account operation; the ``method`` parameter picks
the operation. A second endpoint lists the enabled providers with the
authorization URLs the app should send the browser to.
"""

from functools import lru_cache

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from connectauth.auth.dispatcher import MethodDispatcher, operation_name
from connectauth.auth.errors import ErrorMessages
from connectauth.auth.exchange import CredentialExchange, redirect_uri_for
from connectauth.auth.orchestrator import FlowOrchestrator
from connectauth.auth.providers import Flow, ProviderRegistry, build_registry
from connectauth.auth.responses import ResponseShaper
from connectauth.auth.session import SessionAuth
from connectauth.auth.store import AccountStore, UserSchema
from connectauth.config import Settings, get_settings
from connectauth.core.slowapi_limiter import limiter
from connectauth.database import get_db
from connectauth.schemas import ProviderLinks, ProvidersResponse

settings = get_settings()
router = APIRouter(prefix="/auth", tags=["auth"])


@lru_cache
def get_registry() -> ProviderRegistry:
    """Provider registry, built once from settings."""
    return build_registry(get_settings())


@lru_cache
def get_error_messages() -> ErrorMessages:
    return ErrorMessages(get_settings().error_messages)


def get_dispatcher(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    registry: ProviderRegistry = Depends(get_registry),
    messages: ErrorMessages = Depends(get_error_messages),
) -> MethodDispatcher:
    """Wire a dispatcher for one request."""
    store = AccountStore(db, UserSchema.from_settings(settings))
    session_auth = SessionAuth(settings, store)
    orchestrator = FlowOrchestrator(
        exchange=CredentialExchange(registry, settings.oauth_url),
        store=store,
        session_auth=session_auth,
    )
    shaper = ResponseShaper(messages, settings.frontend_url, settings.redirect_origins())
    return MethodDispatcher(registry, orchestrator, shaper, session_auth, settings.oauth_url)


@router.api_route("/oauth", methods=["GET", "POST", "DELETE"])
@limiter.limit(settings.oauth_rate_limit)
async def oauth(
    request: Request,
    dispatcher: MethodDispatcher = Depends(get_dispatcher),
):
    """Run the OAuth operation named by ``method``.

    Providers redirect back here after consent; the app calls it directly for
    unlinkAccount and getConnectedAccounts.
    """
    return await dispatcher.invoke(request)


@router.get("/oauth/providers", response_model=ProvidersResponse, response_model_by_alias=True)
async def list_providers(
    state: str | None = None,
    settings: Settings = Depends(get_settings),
    registry: ProviderRegistry = Depends(get_registry),
):
    """List enabled providers.

    Args:
        state: Return URL to come back to once the provider is done
    """
    state = state or settings.frontend_url
    providers = []
    for oauth_provider in registry.enabled_providers():
        urls = {
            flow: oauth_provider.get_authorization_url(
                redirect_uri=redirect_uri_for(settings.oauth_url, operation_name(flow, oauth_provider.provider)),
                state=state,
            )
            for flow in (Flow.LOGIN, Flow.SIGNUP, Flow.LINK)
        }
        providers.append(ProviderLinks(
            name=oauth_provider.provider.value,
            display_name=oauth_provider.display_name,
            login_url=urls[Flow.LOGIN],
            signup_url=urls[Flow.SIGNUP],
            link_url=urls[Flow.LINK],
        ))
    return ProvidersResponse(providers=providers)
