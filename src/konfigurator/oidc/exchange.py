"""Authorization-code-for-identity-token exchange.

Each authorization code is single-use, so a failed exchange is never retried
here: the user has to go through the browser again to get a new code.
"""

from __future__ import annotations

from typing import Any

import httpx

from konfigurator.exceptions import ExchangeError
from konfigurator.models import IdentityToken


class TokenExchangeClient:
    """Exchanges authorization codes at the provider's token endpoint.

    Args:
        client: Preconfigured transport (custom CA trust, timeouts).
        token_endpoint: The provider's token endpoint URL.
        client_id: OAuth client identifier, sent in the form body.
        redirect_uri: The redirect URI used in the authorization request.
    """

    def __init__(
        self,
        client: httpx.Client,
        token_endpoint: str,
        client_id: str,
        redirect_uri: str,
    ) -> None:
        self._client = client
        self._token_endpoint = token_endpoint
        self._client_id = client_id
        self._redirect_uri = redirect_uri

    def exchange(self, code: str) -> IdentityToken:
        """Exchange *code* for the provider's ``id_token``.

        Args:
            code: The authorization code received on the callback route.

        Returns:
            The identity token from the response's ``id_token`` field.

        Raises:
            ExchangeError: If the code is empty, the provider rejects it, the
                request fails at the network/TLS level, or the response has
                no ``id_token``.
        """
        if not code:
            raise ExchangeError("No authorization code in callback")

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._redirect_uri,
            "client_id": self._client_id,
        }
        try:
            response = self._client.post(
                self._token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            token_data: Any = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExchangeError(
                f"Token exchange failed with status {exc.response.status_code}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExchangeError(f"Token exchange failed: {exc}") from exc
        except ValueError as exc:
            raise ExchangeError("Token response is not valid JSON") from exc

        raw = token_data.get("id_token") if isinstance(token_data, dict) else None
        if not isinstance(raw, str) or not raw:
            raise ExchangeError("Token response missing 'id_token' field")

        return IdentityToken(raw_value=raw)
