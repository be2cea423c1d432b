"""
Domain allow-list for authorization URLs.

The list lives in whitelist.json in the config directory:

    {"domains": ["login.microsoftonline.com", "accounts.google.com"]}

Matching is on the exact hostname, case-insensitive, without wildcards. A
missing, empty or unreadable file disables the allow-list.
"""

import logging
import os
import urllib.parse
from dataclasses import dataclass, field
from typing import Optional, Set

import yaml

from .paths import whitelistFilePath


logger = logging.getLogger(__name__)


@dataclass
class WhitelistConfig:
    enabled: bool = False
    domains: Set[str] = field(default_factory=set)
    config_path: str = ''

    def is_allowed(self, url: str) -> bool:
        """Check a URL against the allow-list; always True when disabled."""
        if not self.enabled:
            return True
        hostname = get_hostname(url)
        return hostname is not None and hostname in self.domains


def get_hostname(url: str) -> Optional[str]:
    """Lower-cased hostname of a URL, or None if it has none."""
    try:
        hostname = urllib.parse.urlsplit(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def load_whitelist(path: Optional[str] = None) -> WhitelistConfig:
    """
    Load the allow-list.

    Args:
        path: File to read, the whitelist.json in the config directory by default

    Returns:
        The allow-list, disabled when the file is absent, empty or malformed
    """
    path = path if path is not None else whitelistFilePath()
    if not os.path.isfile(path):
        return WhitelistConfig(config_path=path)

    try:
        # JSON is a subset of YAML.
        with open(path, 'rb') as f:
            data = yaml.safe_load(f.read())
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable whitelist file {path}: {e}")
        return WhitelistConfig(config_path=path)

    domains = data.get('domains') if isinstance(data, dict) else None
    if not isinstance(domains, list):
        if data is not None:
            logger.warning(f"Ignoring whitelist file {path}: expected a 'domains' list")
        return WhitelistConfig(config_path=path)

    normalized = {str(d).strip().lower() for d in domains if d is not None and str(d).strip()}
    return WhitelistConfig(enabled=len(normalized) > 0, domains=normalized, config_path=path)
