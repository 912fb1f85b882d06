"""OpenID provider configuration used by the bundled HTTP client.

Only the endpoints needed for the callback leg are modeled. Discovery and
key material are owned by whoever builds this configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

CLIENT_SECRET_BASIC = "client_secret_basic"
CLIENT_SECRET_POST = "client_secret_post"


class ProviderConfiguration(BaseModel):
    """Subset of OpenID Provider Metadata (OpenID Connect Discovery 1.0)."""

    issuer: str
    token_endpoint: str
    userinfo_endpoint: str | None = None
    token_endpoint_auth_methods_supported: list[str] = Field(
        default=[CLIENT_SECRET_BASIC]
    )

    @field_validator("token_endpoint_auth_methods_supported")
    @classmethod
    def validate_auth_methods(cls, v: list[str]) -> list[str]:
        if CLIENT_SECRET_BASIC not in v and CLIENT_SECRET_POST not in v:
            raise ValueError(
                "Provider must support client_secret_basic or client_secret_post"
            )
        return v

    def token_auth_method(self) -> str:
        """Pick the client authentication method for the token endpoint.

        client_secret_basic is the default in RFC 6749 and is preferred
        whenever the provider advertises it.
        """
        if CLIENT_SECRET_BASIC in self.token_endpoint_auth_methods_supported:
            return CLIENT_SECRET_BASIC
        return CLIENT_SECRET_POST
