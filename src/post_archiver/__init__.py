"""
Creator Post Archiver

Drives a browser session through a creator platform's post feed and saves every
post as Markdown with a JSON sidecar, caching static assets on disk so repeated
runs are cheap and resumable.
"""

__version__ = "1.0.0"
