"""OAuth response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


class ConnectedAccountOut(BaseModel):
    """A provider identity connected to the current user."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    provider: str = Field(description="Provider id (apple, google, github)")
    provider_user_id: str = Field(description="Subject id of the user at the provider")
    user_id: str = Field(description="Local user id")
    provider_username: str = Field(description="Name the user is known by at the provider")
    created_at: datetime | None = Field(default=None, description="When the account was connected")


class UnlinkResponse(BaseModel):
    """Result of unlinking a provider."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider_record: ConnectedAccountOut


class ProviderLinks(BaseModel):
    """An enabled provider and where to send the browser for each flow."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    display_name: str
    login_url: str
    signup_url: str
    link_url: str


class ProvidersResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    providers: list[ProviderLinks]
