"""
Supported sites, one `PostSource` value per platform.
"""

from post_archiver.sources.base import PostSource, SelectorSet, Strategies
from post_archiver.sources.fanbox import FANBOX
from post_archiver.sources.patreon import PATREON
from post_archiver.sources.substack import SUBSTACK

SOURCES = {
    'patreon': PATREON,
    'fanbox': FANBOX,
    'substack': SUBSTACK,
}


def resolve_source(url: str) -> PostSource:
    """
    Pick the site for a target URL.

    Args:
        url (str): Feed or post URL.

    Returns:
        PostSource: The matching site.

    Raises:
        ValueError: If the URL belongs to no supported site.
    """
    for marker, source in SOURCES.items():
        if marker in (url or ''):
            return source
    raise ValueError(f"Unrecognized site: {url}")


__all__ = ['PostSource', 'SelectorSet', 'Strategies', 'SOURCES', 'resolve_source']
