"""
Plex API client for library sharing.

This client handles:
- Sharing the configured library sections with a user by email
- Revoking a share by Plex user id
- Listing the users the server is shared with
- Accepting a pending share on behalf of the invited user

SECURITY:
- The admin token and user tokens are credentials and are never logged
- Response bodies are truncated before being logged
"""

import logging
from typing import Optional, List, Dict, Any, Iterable, Sequence, Set
from xml.etree import ElementTree

import httpx

from plexshare.config.settings import Settings
from plexshare.integrations.plex.exceptions import (
    PlexAuthenticationError,
    PlexBadRequestError,
    PlexUnexpectedStatusError,
    PlexConnectionError,
    PlexTimeoutError,
    PlexResponseError,
)
from plexshare.integrations.plex.models import (
    LibrarySection,
    PlexServerUser,
    ShareResult,
)

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CLIENTS_URL = "https://clients.plex.tv"
DEFAULT_PLEX_TV_URL = "https://plex.tv"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0
DEFAULT_PRODUCT_NAME = "plexshare"

# Conservative permissions applied to every share
DEFAULT_SHARE_SETTINGS: Dict[str, Any] = {
    "allowSync": False,
    "allowChannels": False,
    "allowSubtitleAdmin": False,
    "allowTuners": 0,
    "filterMovies": "",
    "filterMusic": "",
    "filterPhotos": "",
    "filterTelevision": "",
}


def _truncate(text: str, limit: int = 500) -> str:
    return text[:limit]


def _first_error_message(response: httpx.Response) -> Optional[str]:
    """Extract errors[0].message from a Plex error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        message = errors[0].get("message")
        if message:
            return str(message)
    return None


class PlexClient:
    """
    Async client for the plex.tv sharing API.

    All methods are async and should be used with async/await. Every
    request carries a bounded timeout; a timeout is reported as
    PlexTimeoutError, never as success.
    """

    def __init__(
        self,
        token: str,
        machine_identifier: str,
        client_identifier: str = "",
        shared_libraries: Sequence[str] = (),
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        clients_url: str = DEFAULT_CLIENTS_URL,
        plex_tv_url: str = DEFAULT_PLEX_TV_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Plex client.

        Args:
            token: Server owner's Plex token
            machine_identifier: Machine identifier of the server being shared
            client_identifier: Value for X-Plex-Client-Identifier
            shared_libraries: Library section titles included in every share
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            clients_url: Base URL for clients.plex.tv endpoints
            plex_tv_url: Base URL for plex.tv endpoints
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not token:
            raise ValueError("Plex token is required. Set PLEXSHARE_PLEX_TOKEN.")
        if not machine_identifier:
            raise ValueError(
                "Plex machine identifier is required. Set PLEXSHARE_PLEX_MACHINE_IDENTIFIER."
            )

        self._token = token
        self.machine_identifier = machine_identifier
        self.client_identifier = client_identifier or DEFAULT_PRODUCT_NAME
        self.shared_libraries = tuple(shared_libraries)
        self.clients_url = clients_url.rstrip("/")
        self.plex_tv_url = plex_tv_url.rstrip("/")

        headers = {
            "Accept": "application/json",
            "X-Plex-Client-Identifier": self.client_identifier,
            "X-Plex-Product": DEFAULT_PRODUCT_NAME,
        }

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "PlexClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        url: str,
        expected: Iterable[int] = (200,),
        token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make an HTTP request to Plex and classify the response status.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Absolute URL
            expected: Status codes treated as success
            token: Token to send instead of the admin token
            json: Request body as JSON
            headers: Extra headers

        Returns:
            The response, when its status is in `expected`

        Raises:
            PlexAuthenticationError: On 401
            PlexBadRequestError: On 400
            PlexUnexpectedStatusError: On any other status
            PlexTimeoutError: When the request times out
            PlexConnectionError: On network errors
        """
        request_headers = {"X-Plex-Token": token or self._token}
        if headers:
            request_headers.update(headers)

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json,
                headers=request_headers,
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Plex API timeout",
                extra={"method": method, "url": url, "error": str(e)},
            )
            raise PlexTimeoutError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error(
                "Plex API connection error",
                extra={"method": method, "url": url, "error": str(e)},
            )
            raise PlexConnectionError(f"Connection error: {e}")

        if response.status_code in expected:
            return response

        body = _truncate(response.text)

        if response.status_code == 401:
            logger.error(
                "Plex API authentication failed",
                extra={"status_code": 401, "url": url},
            )
            raise PlexAuthenticationError(response=body)

        if response.status_code == 400:
            message = _first_error_message(response) or body or "Bad request"
            logger.error(
                "Plex API rejected request",
                extra={"status_code": 400, "url": url, "response": body},
            )
            raise PlexBadRequestError(message=message, response=body)

        logger.error(
            "Plex API unexpected status",
            extra={"status_code": response.status_code, "url": url, "response": body},
        )
        raise PlexUnexpectedStatusError(response.status_code, response=body)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise PlexResponseError(
                f"Failed to parse JSON response: {e}",
                status_code=response.status_code,
                response=_truncate(response.text),
            )

    async def get_library_sections(self) -> List[LibrarySection]:
        """
        List the library sections of the configured server.

        Raises:
            PlexError: On API errors
        """
        response = await self._request(
            "GET", f"{self.plex_tv_url}/api/v2/servers/{self.machine_identifier}"
        )
        data = self._json(response)
        if not isinstance(data, dict):
            raise PlexResponseError("Unexpected server response shape", status_code=response.status_code)
        return [
            LibrarySection.from_dict(section)
            for section in data.get("librarySections") or []
            if isinstance(section, dict)
        ]

    async def get_section_ids_by_names(self, names: Sequence[str]) -> List[int]:
        """
        Resolve library titles to section ids.

        Matching is case-insensitive; names with no matching section are
        skipped. Result order follows `names`.

        Raises:
            PlexError: On API errors
        """
        sections = await self.get_library_sections()
        by_title = {section.title.lower(): section.id for section in sections}

        section_ids = []
        for name in names:
            section_id = by_title.get(name.lower())
            if section_id is None:
                logger.warning("Configured library section not found on server", extra={"section": name})
                continue
            section_ids.append(section_id)
        return section_ids

    async def share_library(self, email: str) -> ShareResult:
        """
        Share the configured libraries with a Plex account.

        Configured names missing on the server are skipped. The share is
        still sent when none of them resolve.

        Args:
            email: Email of the Plex account to invite

        Returns:
            ShareResult with the share id and the invited user's id

        Raises:
            PlexError: On API errors
        """
        section_ids = await self.get_section_ids_by_names(self.shared_libraries)
        if self.shared_libraries and not section_ids:
            logger.warning(
                "None of the configured library sections exist on the server",
                extra={"configured": list(self.shared_libraries)},
            )

        request_body = {
            "invitedEmail": email,
            "machineIdentifier": self.machine_identifier,
            "librarySectionIds": section_ids,
            "skipFriendship": True,
            "settings": dict(DEFAULT_SHARE_SETTINGS),
        }

        response = await self._request(
            "POST",
            f"{self.clients_url}/api/v2/shared_servers",
            expected=(200, 201),
            json=request_body,
        )
        data = self._json(response)
        if not isinstance(data, dict):
            raise PlexResponseError("Unexpected share response shape", status_code=response.status_code)

        result = ShareResult.from_dict(data)

        logger.info(
            "Plex library shared",
            extra={
                "share_id": result.id,
                "invited_id": result.invited_id,
                "section_count": len(section_ids),
            },
        )
        return result

    async def unshare_library(self, user_id: int) -> None:
        """
        Remove the share for a Plex user.

        Raises:
            PlexUnexpectedStatusError: On any status other than 200/204,
                including 404 when no share exists
            PlexError: On other API errors
        """
        await self._request(
            "DELETE",
            f"{self.plex_tv_url}/api/v2/sharings/{user_id}",
            expected=(200, 204),
        )
        logger.info("Plex library unshared", extra={"plex_user_id": user_id})

    async def list_users(self) -> List[PlexServerUser]:
        """
        List the users the owner account shares with.

        Raises:
            PlexError: On API errors
            PlexResponseError: If the XML cannot be parsed
        """
        response = await self._request(
            "GET",
            f"{self.clients_url}/api/users",
            headers={"Accept": "application/xml"},
        )
        try:
            root = ElementTree.fromstring(response.content)
        except ElementTree.ParseError as e:
            logger.error(
                "Failed to parse Plex users XML",
                extra={"error": str(e), "response_sample": _truncate(response.text)},
            )
            raise PlexResponseError(f"Failed to parse XML response: {e}", status_code=response.status_code)

        return [PlexServerUser.from_element(element) for element in root.iter("User")]

    async def get_user_ids_with_access(self) -> Set[int]:
        """Ids of every user whose server list includes the configured server."""
        users = await self.list_users()
        return {user.id for user in users if user.has_server(self.machine_identifier)}

    async def user_has_access(self, user_id: int) -> bool:
        """
        Check whether a user can access the configured server.

        A user missing from the list, or listed without this server,
        has no access; neither case is an error.
        """
        for user in await self.list_users():
            if user.id == int(user_id):
                return user.has_server(self.machine_identifier)
        return False

    async def accept_invite(self, user_token: str, invite_id: int) -> None:
        """
        Accept a pending share using the invited user's own token.

        Raises:
            PlexError: On API errors
        """
        await self._request(
            "POST",
            f"{self.plex_tv_url}/api/v2/shared_servers/{invite_id}/accept",
            expected=(200, 204),
            token=user_token,
        )
        logger.info("Plex invite accepted", extra={"invite_id": invite_id})


def get_plex_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PlexClient:
    """
    Factory function to create a PlexClient from settings.

    Args:
        settings: Application settings
        transport: Optional httpx transport override

    Returns:
        Configured PlexClient instance
    """
    return PlexClient(
        token=settings.plex_token.value(),
        machine_identifier=settings.plex_machine_identifier,
        client_identifier=settings.plex_client_id,
        shared_libraries=settings.plex_shared_libraries,
        timeout=settings.plex_timeout_seconds,
        transport=transport,
    )
