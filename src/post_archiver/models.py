#!/usr/bin/env python3
"""
Data Models

Types shared by the extraction engine and the site variants: the supported
platforms, the interception decisions, the per-post record that ends up on disk
and the context handed to the per-site image and attachment strategies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List


class SiteVariant(Enum):
    """Supported creator platforms."""
    PATREON = "patreon"
    FANBOX = "pixivFanbox"
    SUBSTACK = "substack"


class Decision(Enum):
    """Outcome of the request interception policy for one outgoing request."""
    ABORT = "abort"
    FULFILL_EMPTY = "fulfill-empty"
    PASS_THROUGH = "pass-through"
    SERVE_FROM_CACHE = "serve-from-cache"
    FETCH_THEN_CACHE = "fetch-then-cache"


@dataclass
class PostRecord:
    """
    Everything collected for one post before it is written out.

    Attributes:
        url (str): Source URL of the post.
        name (str): Canonical post name, used as the output file stem.
        title (str): Post title.
        subtitle (str): Optional subtitle, empty when the site has none.
        tags (List[str]): Post tags.
        timestamp (datetime): Publish date, also applied to the output files.
        attachments (List[str]): File names of the saved attachments.
        image_map (Dict[str, str]): Asset id -> saved file name.
    """
    url: str
    name: str
    title: str = ""
    subtitle: str = ""
    tags: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)
    attachments: List[str] = field(default_factory=list)
    image_map: Dict[str, str] = field(default_factory=dict)

    def sidecar(self) -> Dict[str, Any]:
        """JSON sidecar payload: title and publish date in epoch milliseconds."""
        return {
            "title": self.title,
            "date": int(self.timestamp.timestamp() * 1000)
        }


@dataclass
class PostContext:
    """
    Per-post state handed to the site strategies while a post page is open.

    The extractor builds one of these after it has read the post's name, tags and
    date; strategies use the page handle and the shared services to save assets.
    """
    page: Any
    source: Any
    out_dir: str
    name: str
    post_id: str
    timestamp: datetime
    tags: List[str]
    downloader: Any
    checker: Any
    carousel_timeout: float = 120.0
