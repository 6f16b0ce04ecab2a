"""
Plex API response models.

Dataclasses for structured response handling. Share and server
responses are JSON; the users list is XML.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from xml.etree.ElementTree import Element


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class LibrarySection:
    """A library section on the server."""
    id: int
    key: int
    title: str
    type: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LibrarySection":
        return cls(
            id=_to_int(data.get("id")),
            key=_to_int(data.get("key")),
            title=data.get("title") or "",
            type=data.get("type") or "",
        )


@dataclass
class InvitedUser:
    """The account a share was sent to."""
    id: int
    username: str = ""
    uuid: str = ""
    title: str = ""
    status: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvitedUser":
        return cls(
            id=_to_int(data.get("id")),
            username=data.get("username") or "",
            uuid=data.get("uuid") or "",
            title=data.get("title") or "",
            status=data.get("status") or "",
        )


@dataclass
class ShareResult:
    """Response from the shared_servers endpoint."""
    id: int
    invited_id: int
    machine_identifier: str = ""
    accepted: bool = False
    invited_email: Optional[str] = None
    invited: Optional[InvitedUser] = None
    library_ids: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShareResult":
        invited = data.get("invited")
        invited_user = InvitedUser.from_dict(invited) if isinstance(invited, dict) else None
        invited_id = _to_int(data.get("invitedId"))
        if not invited_id and invited_user is not None:
            invited_id = invited_user.id
        return cls(
            id=_to_int(data.get("id")),
            invited_id=invited_id,
            machine_identifier=data.get("machineIdentifier") or "",
            accepted=bool(data.get("accepted", False)),
            invited_email=data.get("invitedEmail"),
            invited=invited_user,
            library_ids=[
                _to_int(library.get("id"))
                for library in data.get("libraries") or []
                if isinstance(library, dict)
            ],
        )


@dataclass
class PlexServerUser:
    """An entry of the account's users list, with the servers shared to it."""
    id: int
    username: str = ""
    email: str = ""
    title: str = ""
    server_machine_identifiers: List[str] = field(default_factory=list)

    @classmethod
    def from_element(cls, element: Element) -> "PlexServerUser":
        return cls(
            id=_to_int(element.get("id")),
            username=element.get("username") or "",
            email=element.get("email") or "",
            title=element.get("title") or "",
            server_machine_identifiers=[
                server.get("machineIdentifier") or ""
                for server in element.findall("Server")
            ],
        )

    def has_server(self, machine_identifier: str) -> bool:
        return machine_identifier in self.server_machine_identifiers
