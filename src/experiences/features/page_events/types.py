from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

POINTER_MOVE = "pointer_move"
POINTER_LEAVE = "pointer_leave"
SCROLL = "scroll"
RESIZE = "resize"
VISIBILITY_CHANGE = "visibility_change"

PAGE_EVENT_TYPES: set[str] = {POINTER_MOVE, POINTER_LEAVE, SCROLL, RESIZE, VISIBILITY_CHANGE}

Device = Literal["mobile", "tablet", "desktop"]

_MOBILE_UA = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.I)
_PHONE_UA = re.compile(r"Android|webOS|iPhone|iPod|BlackBerry|IEMobile|Opera Mini", re.I)
_TABLET_UA = re.compile(r"iPad|Android(?!.*Mobile)", re.I)


@dataclass(frozen=True, slots=True)
class PointerMove:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class PointerLeave:
    # None: pointer left the window into browser chrome
    # "html": pointer left onto the document root
    related_target: str | None = None

    @property
    def leaves_document(self) -> bool:
        return self.related_target is None or self.related_target.upper() == "HTML"


@dataclass(frozen=True, slots=True)
class ScrollMetrics:
    scroll_top: float
    scroll_height: float
    client_height: float


@dataclass(frozen=True, slots=True)
class VisibilityChange:
    hidden: bool


@dataclass(frozen=True, slots=True)
class PageEnvironment:
    """
    Static facts about the page the runtime is embedded in.
    """

    url: str = ""
    user_agent: str = ""
    viewport_width: int = 1280
    do_not_track: bool = False
    hidden_at_load: bool = False

    def is_mobile(self) -> bool:
        return bool(_MOBILE_UA.search(self.user_agent))

    def device(self) -> Device:
        # screen width first, user agent as fallback
        if self.viewport_width < 768:
            return "mobile"
        if self.viewport_width < 1024:
            return "tablet"
        if _PHONE_UA.search(self.user_agent):
            return "mobile"
        if _TABLET_UA.search(self.user_agent):
            return "tablet"
        return "desktop"
