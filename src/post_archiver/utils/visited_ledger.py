#!/usr/bin/env python3
"""
Visited Ledger Module

This module tracks which posts have already been archived into an output
directory. The ledger is an append-only newline-delimited file of absolute post
URLs plus an in-memory set; a URL is appended only after its post has been
written, so a crash mid-post leaves that post to be reprocessed on the next run.
"""

import os
import logging
from typing import Optional, Set, TextIO

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VISITED_FILE = "visited.txt"


class VisitedLedger:
    """
    Resume ledger of processed post URLs.

    Attributes:
        out_dir (str): Output directory holding the ledger file.
        ledger_file (str): Path to the ledger file.
        visited (Set[str]): URLs already processed.
    """

    def __init__(self, out_dir: str, file_name: str = VISITED_FILE):
        """
        Initialize the VisitedLedger.

        Args:
            out_dir (str): Output directory holding the ledger file.
            file_name (str, optional): Ledger file name. Defaults to "visited.txt".
        """
        self.out_dir = out_dir
        self.ledger_file = os.path.join(out_dir, file_name)
        self.visited: Set[str] = set()
        self._stream: Optional[TextIO] = None

    def __len__(self) -> int:
        return len(self.visited)

    def __contains__(self, url: str) -> bool:
        return self.has(url)

    def __enter__(self):
        """Context manager entry."""
        self.load()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def load(self) -> Set[str]:
        """
        Load the ledger from disk. A missing file yields an empty set.

        Returns:
            Set[str]: The loaded URLs.
        """
        try:
            with open(self.ledger_file, "r", encoding="utf-8") as f:
                self.visited = {line.strip() for line in f if line.strip()}
            logger.info(f"Loaded {len(self.visited)} entries")
        except FileNotFoundError:
            self.visited = set()
            logger.info("Created empty visited set")
        return self.visited

    def has(self, url: str) -> bool:
        """Check whether a post URL has already been processed."""
        return url in self.visited

    def mark_visited(self, url: str) -> None:
        """
        Append a URL to the ledger and flush it to disk before recording it in memory.

        Args:
            url (str): Absolute post URL.
        """
        if self._stream is None:
            os.makedirs(self.out_dir, exist_ok=True)
            self._stream = open(self.ledger_file, "a", encoding="utf-8")

        self._stream.write(url + "\n")
        self._stream.flush()
        os.fsync(self._stream.fileno())
        self.visited.add(url)

    def close(self) -> None:
        """Close the ledger file if it is open."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None
