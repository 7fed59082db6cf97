#!/usr/bin/env python3
"""
Environment Variable Loader

This module loads environment variables from a .env file using the python-dotenv library.
It provides functions to access the proxy configuration and the general configuration
(cache locations, session files, timeouts and the recovery limit) of the archiver.
"""

import os
import logging
from typing import Dict, Any, Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = "./custom-cache"
DEFAULT_BROWSER_PROFILE = "./playwright-cache"
DEFAULT_COOKIES_FILE = "./cookies.json"
DEFAULT_FLAGS_FILE = "./flags.json"
DEFAULT_RECOVER_REPEATS = 50
DEFAULT_NAVIGATION_TIMEOUT_MS = 999999
DEFAULT_TIMEOUT_MS = 50000
DEFAULT_CACHE_REPORT_INTERVAL = 60


def load_env_vars(env_file: str = '.env') -> bool:
    """
    Load environment variables from a .env file.

    Args:
        env_file (str, optional): Path to the .env file. Defaults to '.env'.

    Returns:
        bool: True if the .env file was loaded successfully, False otherwise.
    """
    # Check if the .env file exists
    if not os.path.exists(env_file):
        logger.warning(f".env file not found at {env_file}")
        return False

    # Load the .env file
    load_dotenv(env_file)
    logger.info(f"Loaded environment variables from {env_file}")
    return True


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name, '')
    return int(value) if value and value.isdigit() else default


def get_proxy_config() -> Dict[str, str]:
    """
    Get the outbound proxy configuration from environment variables.

    Returns:
        Dict[str, str]: Dictionary with the proxy server, username and password.
    """
    return {
        'server': os.getenv('ARCHIVER_PROXY_SERVER', ''),
        'username': os.getenv('ARCHIVER_PROXY_USERNAME', ''),
        'password': os.getenv('ARCHIVER_PROXY_PASSWORD', '')
    }


def get_general_config() -> Dict[str, Any]:
    """
    Get general configuration from environment variables.

    Returns:
        Dict[str, Any]: Dictionary containing general configuration.
    """
    return {
        'cache_dir': os.getenv('ARCHIVER_CACHE_DIR', DEFAULT_CACHE_DIR),
        'browser_profile_dir': os.getenv('ARCHIVER_BROWSER_PROFILE', DEFAULT_BROWSER_PROFILE),
        'cookies_file': os.getenv('ARCHIVER_COOKIES_FILE', DEFAULT_COOKIES_FILE),
        'flags_file': os.getenv('ARCHIVER_FLAGS_FILE', DEFAULT_FLAGS_FILE),
        'recover_repeats': _int_from_env('ARCHIVER_RECOVER_REPEATS', DEFAULT_RECOVER_REPEATS),
        'navigation_timeout_ms': _int_from_env('ARCHIVER_NAVIGATION_TIMEOUT_MS', DEFAULT_NAVIGATION_TIMEOUT_MS),
        'default_timeout_ms': _int_from_env('ARCHIVER_DEFAULT_TIMEOUT_MS', DEFAULT_TIMEOUT_MS),
        'cache_report_interval': _int_from_env('ARCHIVER_CACHE_REPORT_INTERVAL', DEFAULT_CACHE_REPORT_INTERVAL)
    }


def build_playwright_proxy(server: Optional[str], username: Optional[str],
                           password: Optional[str]) -> Optional[Dict[str, str]]:
    """
    Build the proxy settings for the browser context.

    Args:
        server (Optional[str]): Proxy server, e.g. http://host:port.
        username (Optional[str]): Proxy username.
        password (Optional[str]): Proxy password.

    Returns:
        Optional[Dict[str, str]]: Playwright proxy settings, or None when no usable proxy is configured.
    """
    if not (server and username):
        return None

    logger.info(f"Provided proxy config: {server}, user={username}, password=<MASKED>")
    return {
        'server': server,
        'username': username,
        'password': password or ''
    }
