"""OAuth provider port. Turns a provider callback into an identity assertion."""

from typing import Any, Protocol

from domain.model.assertion import AppleAssertion, GoogleAssertion


class OAuthProviderPort(Protocol):
    """Port for one OAuth/OpenID Connect provider.

    Token exchange and ID-token verification live behind this port;
    the service layer only sees the resulting assertion.
    """

    def authorization_url(self, state: str) -> str: ...

    async def assert_identity(
        self, code: str, form_user: dict[str, Any] | None = None,
    ) -> GoogleAssertion | AppleAssertion:
        """Exchange the authorization code and build the assertion.

        Raises:
            ValidationError: code rejected or identity could not be proven
        """
        ...
