#!/usr/bin/env python3
"""
Tests for the asset_downloader module.
"""

import os
import shutil
import tempfile
import unittest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
from playwright.async_api import Error as PlaywrightError

from post_archiver.utils.asset_downloader import (
    AssetDownloader, FileChecker, detect_extension, has_image_extension, set_file_time,
    write_keywords
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeResponse:
    """Minimal aiohttp response usable as an async context manager."""

    def __init__(self, body):
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    def raise_for_status(self):
        pass

    async def read(self):
        return self.body


class TestHelpers(unittest.TestCase):
    """Test cases for module helpers."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_has_image_extension(self):
        self.assertTrue(has_image_extension("photo.JPG"))
        self.assertTrue(has_image_extension("my.post.webp"))
        self.assertFalse(has_image_extension("sheet.pdf"))
        self.assertFalse(has_image_extension("noext"))

    def test_detect_extension(self):
        self.assertEqual(detect_extension(PNG_BYTES), "png")
        self.assertEqual(detect_extension(b"plain text"), "file")

    def test_set_file_time(self):
        path = os.path.join(self.temp_dir, "a.txt")
        with open(path, "w") as f:
            f.write("a")
        timestamp = datetime(2020, 1, 2, 3, 4, 5)

        self.assertTrue(set_file_time(path, timestamp))
        self.assertEqual(int(os.path.getmtime(path)), int(timestamp.timestamp()))

    def test_set_file_time_failures(self):
        self.assertFalse(set_file_time(os.path.join(self.temp_dir, "missing"), datetime.now()))
        self.assertFalse(set_file_time(os.path.join(self.temp_dir, "missing"), None))

    @patch("post_archiver.utils.asset_downloader.exiftool.ExifToolHelper")
    def test_write_keywords(self, helper):
        et = helper.return_value.__enter__.return_value

        self.assertTrue(write_keywords("/tmp/a.png", ["art", "wip"]))

        et.set_tags.assert_called_once_with(
            "/tmp/a.png", {"Keywords": "art, wip"},
            params=["-overwrite_original", "-charset", "UTF8"]
        )

    @patch("post_archiver.utils.asset_downloader.exiftool.ExifToolHelper",
           side_effect=FileNotFoundError("exiftool not found"))
    def test_write_keywords_without_exiftool(self, helper):
        self.assertFalse(write_keywords("/tmp/a.png", ["art"]))


class TestFileChecker(unittest.TestCase):
    """Test cases for the FileChecker class."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        open(os.path.join(self.temp_dir, "my-post-abc123.png"), "w").close()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_find_existing(self):
        checker = FileChecker(self.temp_dir)

        self.assertEqual(checker.find("abc123"), "my-post-abc123.png")
        self.assertIsNone(checker.find("def456"))
        self.assertIsNone(checker.find(""))

    def test_add(self):
        checker = FileChecker(self.temp_dir)
        checker.add("my-post-def456.jpg")
        checker.add("my-post-def456.jpg")

        self.assertEqual(checker.find("def456"), "my-post-def456.jpg")
        self.assertEqual(len(checker.files), 2)

    def test_has_matches_exact_name(self):
        checker = FileChecker(self.temp_dir)

        self.assertTrue(checker.has("my-post-abc123.png"))
        self.assertFalse(checker.has("123.png"))
        self.assertFalse(checker.has(""))

    def test_creates_directory(self):
        directory = os.path.join(self.temp_dir, "2024")
        checker = FileChecker(directory)

        self.assertTrue(os.path.isdir(directory))
        self.assertEqual(checker.files, [])


class TestAssetDownloader(unittest.IsolatedAsyncioTestCase):
    """Test cases for the AssetDownloader class."""

    async def asyncSetUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.downloader = AssetDownloader(max_retries=2, retry_delay=0)
        self.page = MagicMock()
        self.page.evaluate = AsyncMock(return_value=list(PNG_BYTES))
        self.page.context.cookies = AsyncMock(return_value=[
            {"name": "session_id", "value": "abc"},
            {"name": "device", "value": "1"},
        ])

    async def asyncTearDown(self):
        await self.downloader.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    async def test_fetch_in_page(self):
        body = await self.downloader.fetch(self.page, "https://x.com/a.png")

        self.assertEqual(body, PNG_BYTES)
        self.page.evaluate.assert_awaited_once()

    async def test_fetch_falls_back_to_direct_request(self):
        self.page.evaluate = AsyncMock(side_effect=PlaywrightError("Failed to fetch"))

        with patch.object(self.downloader, "fetch_direct", AsyncMock(return_value=b"direct")) as direct:
            body = await self.downloader.fetch(self.page, "https://x.com/a.png")

        self.assertEqual(body, b"direct")
        self.assertEqual(self.page.evaluate.await_count, 2)
        direct.assert_awaited_once_with("https://x.com/a.png", "session_id=abc; device=1")

    async def test_fetch_direct_retries(self):
        session = MagicMock()
        session.get = MagicMock(side_effect=[aiohttp.ClientError("reset"), FakeResponse(b"data")])
        session.close = AsyncMock()
        self.downloader.session = session

        body = await self.downloader.fetch_direct("https://x.com/a.png", "session_id=abc")

        self.assertEqual(body, b"data")
        self.assertEqual(session.get.call_count, 2)
        self.assertEqual(session.get.call_args.kwargs["headers"], {"Cookie": "session_id=abc"})

    async def test_fetch_direct_uses_proxy(self):
        session = MagicMock()
        session.get = MagicMock(return_value=FakeResponse(b"data"))
        session.close = AsyncMock()
        self.downloader.session = session
        self.downloader.proxy = {"server": "http://proxy:8080", "username": "user", "password": "pw"}

        await self.downloader.fetch_direct("https://x.com/a.png")

        kwargs = session.get.call_args.kwargs
        self.assertEqual(kwargs["proxy"], "http://proxy:8080")
        self.assertEqual(kwargs["proxy_auth"], aiohttp.BasicAuth("user", "pw"))
        self.assertEqual(kwargs["headers"], {})

    async def test_fetch_direct_exhausted(self):
        session = MagicMock()
        session.get = MagicMock(side_effect=aiohttp.ClientError("reset"))
        session.close = AsyncMock()
        self.downloader.session = session

        with self.assertRaises(RuntimeError):
            await self.downloader.fetch_direct("https://x.com/a.png")

    async def test_download_file_detects_extension(self):
        timestamp = datetime(2023, 5, 6, 7, 8, 9)

        file_name = await self.downloader.download_file(
            self.page, "https://x.com/a", self.temp_dir, "my-post-abc", timestamp
        )

        path = os.path.join(self.temp_dir, file_name)
        self.assertEqual(file_name, "my-post-abc.png")
        with open(path, "rb") as f:
            self.assertEqual(f.read(), PNG_BYTES)
        self.assertEqual(int(os.path.getmtime(path)), int(timestamp.timestamp()))

    async def test_download_file_keeps_image_name(self):
        file_name = await self.downloader.download_file(
            self.page, "https://x.com/a.jpg", self.temp_dir, "sheet.jpg", body=b"not really a jpeg"
        )

        self.assertEqual(file_name, "sheet.jpg")
        self.page.evaluate.assert_not_awaited()

    @patch("post_archiver.utils.asset_downloader.write_keywords")
    async def test_download_file_tags_images(self, write_keywords_mock):
        timestamp = datetime(2023, 5, 6, 7, 8, 9)

        file_name = await self.downloader.download_file(
            self.page, "https://x.com/a", self.temp_dir, "my-post-abc", timestamp, tags=["art", "wip"]
        )

        path = os.path.join(self.temp_dir, file_name)
        write_keywords_mock.assert_called_once_with(path, ["art", "wip"])
        self.assertEqual(int(os.path.getmtime(path)), int(timestamp.timestamp()))

    @patch("post_archiver.utils.asset_downloader.write_keywords")
    def test_save_buffer_does_not_tag_other_files(self, write_keywords_mock):
        AssetDownloader.save_buffer(os.path.join(self.temp_dir, "notes.pdf"), b"%PDF", tags=["art"])
        AssetDownloader.save_buffer(os.path.join(self.temp_dir, "a.png"), PNG_BYTES)

        write_keywords_mock.assert_not_called()


if __name__ == "__main__":
    unittest.main()
