"""Handles for Doarama resources.

Handles are cheap local references: creating one never talks to the API.
Each handle keeps the client or session it came from and uses it for any
later request, so a handle is only meaningful with that owner.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import quote, urlencode

from .errors import InvalidInputError

if TYPE_CHECKING:
    from .retry import Cancellation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityType:
    """A category of activity, e.g. ``Fly - Paraglide``."""
    id: int
    name: str


@dataclass
class ActivityInfo:
    """Metadata attached to an activity after upload."""
    type_id: int

    def to_json(self) -> dict[str, Any]:
        return {"activityTypeId": self.type_id}


class Activity:
    """A GPS track uploaded to Doarama, identified by an integer id.

    Changing or deleting an activity needs a user session; a handle taken
    from a bare :class:`~doarama_client.client.Client` is a reference only.
    """

    def __init__(self, owner: Any, activity_id: int) -> None:
        self._owner = owner
        self.id = activity_id

    def __repr__(self) -> str:
        return f"Activity(id={self.id})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Activity):
            return NotImplemented
        return self._owner is other._owner and self.id == other.id

    def __hash__(self) -> int:
        return hash((id(self._owner), self.id))

    def _require_session(self, operation: str) -> None:
        if getattr(self._owner, "identity", None) is None:
            raise InvalidInputError(f"{operation} {self.id}: activity handle has no user session")

    def set_info(self, info: ActivityInfo, cancellation: Optional["Cancellation"] = None) -> None:
        self._require_session("set activity info")
        self._owner.request(
            "set activity info",
            "POST",
            f"/activity/{self.id}",
            json=info.to_json(),
            cancellation=cancellation,
        )
        logger.info("Set info on activity %s: %s", self.id, info)

    def delete(self, cancellation: Optional["Cancellation"] = None) -> None:
        self._require_session("delete activity")
        self._owner.request(
            "delete activity",
            "DELETE",
            f"/activity/{self.id}",
            cancellation=cancellation,
        )
        logger.info("Deleted activity %s", self.id)


@dataclass
class VisualisationURLOptions:
    """Optional rendering parameters for a visualisation URL.

    A field left at its default adds nothing to the URL, letting the service
    pick its own default.

    Attributes
    ----------
    names: list[str] | None
        One display name per activity, in visualisation order.
    avatars: list[str] | None
        One avatar image reference per activity, in visualisation order.
    avatar_base_url: str
        Prefix for relative avatar references.
    fixed_aspect: bool
        Lock the rendering aspect ratio.
    minimal_view: bool
        Request reduced chrome.
    dzml: str
        Reference to a DZML overlay document.
    """
    names: Optional[list[str]] = None
    avatars: Optional[list[str]] = None
    avatar_base_url: str = ""
    fixed_aspect: bool = False
    minimal_view: bool = False
    dzml: str = ""

    def query_params(self) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        for name in self.names or []:
            params.append(("name", name))
        for avatar in self.avatars or []:
            params.append(("avatar", avatar))
        if self.avatar_base_url:
            params.append(("avatarBaseUrl", self.avatar_base_url))
        if self.fixed_aspect:
            params.append(("fixedAspect", "true"))
        if self.minimal_view:
            params.append(("minimalView", "true"))
        if self.dzml:
            params.append(("dzml", self.dzml))
        return params


@dataclass
class Visualisation:
    """A composite of activities, identified by an opaque key."""
    key: str
    api_url: str = field(repr=False)

    def url(self, options: Optional[VisualisationURLOptions] = None) -> str:
        """Return the shareable URL for this visualisation. No request is made."""
        base = f"{self.api_url.rstrip('/')}/visualisation/{quote(self.key, safe='')}"
        params = options.query_params() if options is not None else []
        if not params:
            return base
        return f"{base}?{urlencode(params)}"
