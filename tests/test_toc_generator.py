#!/usr/bin/env python3
"""
Tests for the toc_generator module.
"""

import os
import shutil
import tempfile
import unittest

from post_archiver.utils.toc_generator import (
    TOC_FILE, TocEntry, extract_id_from_url, generate_toc, parse_markdown_file
)


def write_post(directory, file_name, title, url, date):
    with open(os.path.join(directory, file_name), "w", encoding="utf-8") as f:
        f.write(f"# [{title}]({url})\n\n*Date: {date}*\n\nBody\n")


class TestTocGenerator(unittest.TestCase):
    """Test cases for TOC generation."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        """Tear down test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_extract_id_from_url(self):
        self.assertEqual(extract_id_from_url("https://www.patreon.com/posts/my-post-12345"), 12345)
        self.assertEqual(extract_id_from_url("https://www.patreon.com/posts/my-post-12345?l=en"), 12345)
        self.assertEqual(extract_id_from_url("https://creator.fanbox.cc/posts/98765"), 98765)
        self.assertEqual(extract_id_from_url("https://x.substack.com/p/a-post"), 0)

    def test_parse_markdown_file(self):
        write_post(self.temp_dir, "my-post-12345.md", "My Post",
                   "https://www.patreon.com/posts/my-post-12345", "05 March 2024")

        entry = parse_markdown_file(os.path.join(self.temp_dir, "my-post-12345.md"))

        self.assertEqual(entry, TocEntry(
            id=12345,
            title="My Post",
            date="05 March 2024",
            file_name="my-post-12345.md",
            url="https://www.patreon.com/posts/my-post-12345"
        ))

    def test_parse_file_without_header(self):
        path = os.path.join(self.temp_dir, "notes.md")
        with open(path, "w", encoding="utf-8") as f:
            f.write("Just some notes\n")

        self.assertIsNone(parse_markdown_file(path))

    def test_generate_toc_newest_first(self):
        write_post(self.temp_dir, "older-100.md", "Older",
                   "https://www.patreon.com/posts/older-100", "01 January 2024")
        write_post(self.temp_dir, "newer-200.md", "Newer",
                   "https://www.patreon.com/posts/newer-200", "02 January 2024")
        with open(os.path.join(self.temp_dir, "newer-200.json"), "w") as f:
            f.write("{}")

        toc_file = generate_toc(self.temp_dir)

        self.assertEqual(toc_file, os.path.join(self.temp_dir, TOC_FILE))
        with open(toc_file, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
        self.assertEqual(lines, [
            "*02 January 2024* - [Newer](newer-200.md) [🔗](https://www.patreon.com/posts/newer-200)",
            "*01 January 2024* - [Older](older-100.md) [🔗](https://www.patreon.com/posts/older-100)",
        ])

    def test_regenerating_ignores_existing_toc(self):
        write_post(self.temp_dir, "post-1.md", "Post", "https://www.patreon.com/posts/post-1", "01 May 2024")

        generate_toc(self.temp_dir)
        toc_file = generate_toc(self.temp_dir)

        with open(toc_file, "r", encoding="utf-8") as f:
            self.assertEqual(len(f.read().splitlines()), 1)

    def test_missing_directory(self):
        with self.assertRaises(ValueError):
            generate_toc(os.path.join(self.temp_dir, "missing"))


if __name__ == "__main__":
    unittest.main()
