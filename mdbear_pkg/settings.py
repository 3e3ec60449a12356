#!/usr/bin/env python3
"""
Settings loader for the mdbear static site generator.
Supports configuration from config.toml, or YAML/JSON files with the same keys.
"""

import os
import json
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, Tuple

import yaml

from .errors import ConfigError


class NavKind(str, Enum):
    """What a navigation entry produces."""

    PAGE = 'page'
    SECTION = 'section'
    LINK = 'link'
    UNKNOWN = 'unknown'

    @classmethod
    def from_type(cls, type_name: str) -> 'NavKind':
        """Map a config ``type`` string to a kind; unrecognised names become UNKNOWN."""
        return NAV_TYPE_ALIASES.get(type_name.strip().lower(), cls.UNKNOWN)


# 'blog' is the older spelling of a section entry.
NAV_TYPE_ALIASES = {
    'page': NavKind.PAGE,
    'section': NavKind.SECTION,
    'blog': NavKind.SECTION,
    'link': NavKind.LINK,
}


@dataclass(frozen=True)
class NavEntry:
    """One item of the site navigation, in menu order."""

    name: str
    path: str
    kind: NavKind
    type: str = ''


@dataclass(frozen=True)
class SiteConfig:
    """Site-wide settings; read once per build and never modified."""

    site_name: str = 'My Site'
    site_icon: str = ''
    author: str = ''
    output_dir: str = 'public'
    content_dir: str = 'content'
    theme_dir: str = 'theme'
    nav: Tuple[NavEntry, ...] = field(default_factory=tuple)


class MdbearSettings:
    """Load and validate mdbear configuration files."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'site_name': 'My Site',
        'site_icon': '',
        'author': '',
        'output_dir': 'public',
        'content_dir': 'content',
        'theme_dir': 'theme',
    }

    DEFAULT_CONFIG_FILE = 'config.toml'

    SUPPORTED_EXTENSIONS = ('.toml', '.yml', '.yaml', '.json')

    NAV_FIELDS = ('name', 'path', 'type')

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize settings loader.

        Args:
            config_path: Path to the configuration file. Defaults to config.toml
                in the current directory.
        """
        self.config_path = config_path or os.path.join(os.getcwd(), self.DEFAULT_CONFIG_FILE)
        self.settings = self.DEFAULT_SETTINGS.copy()

    def load(self) -> SiteConfig:
        """
        Read, parse and validate the configuration file.

        Returns:
            The site configuration

        Raises:
            ConfigError: if the file cannot be read, parsed or validated
        """
        raw = self._load_config_file(self.config_path)
        if not isinstance(raw, dict):
            raise ConfigError(f"Configuration file {self.config_path} must contain a table of settings")

        for key in self.DEFAULT_SETTINGS:
            if key in raw:
                value = raw[key]
                if not isinstance(value, str):
                    raise ConfigError(f"'{key}' in {self.config_path} must be a string, got {type(value).__name__}")
                self.settings[key] = value

        if not self.settings['output_dir'].strip():
            raise ConfigError(f"'output_dir' in {self.config_path} must not be empty")

        nav = self._parse_nav(raw.get('nav', []))
        return SiteConfig(nav=nav, **self.settings)

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        file_ext = os.path.splitext(config_path)[1].lower()
        if file_ext not in self.SUPPORTED_EXTENSIONS:
            raise ConfigError(f"Unsupported config file format: {file_ext or config_path}")

        try:
            with open(config_path, 'rb') as f:
                data = f.read()
        except FileNotFoundError:
            raise ConfigError(f"Configuration file not found: {config_path}")
        except PermissionError:
            raise ConfigError(f"Permission denied reading configuration file: {config_path}")
        except OSError as e:
            raise ConfigError(f"Error reading configuration file {config_path}: {e}")

        try:
            text = data.decode('utf-8')
            if file_ext == '.toml':
                return tomllib.loads(text)
            elif file_ext == '.json':
                return json.loads(text) or {}
            return yaml.safe_load(text) or {}
        except UnicodeDecodeError as e:
            raise ConfigError(f"Configuration file {config_path} is not valid UTF-8: {e}")
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in configuration file {config_path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file {config_path}: {e}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file {config_path}: {e}")

    @staticmethod
    def _is_local_path(path: str) -> bool:
        """True if ``path`` stays inside the directory it is joined to."""
        if os.path.isabs(path) or path.startswith(('/', '\\')):
            return False
        normalized = os.path.normpath(path.replace('\\', '/'))
        return normalized != '..' and not normalized.startswith('..' + os.sep)

    def _parse_nav(self, nav_data: Any) -> Tuple[NavEntry, ...]:
        if not isinstance(nav_data, list):
            raise ConfigError(f"'nav' in {self.config_path} must be a list of entries")

        entries = []
        for index, item in enumerate(nav_data):
            if not isinstance(item, dict):
                raise ConfigError(f"nav entry #{index + 1} in {self.config_path} must be a table")
            for key in self.NAV_FIELDS:
                if not isinstance(item.get(key), str):
                    raise ConfigError(
                        f"nav entry #{index + 1} in {self.config_path} needs a string '{key}' field"
                    )
            kind = NavKind.from_type(item['type'])
            if kind in (NavKind.PAGE, NavKind.SECTION) and not self._is_local_path(item['path']):
                raise ConfigError(
                    f"nav entry #{index + 1} in {self.config_path} has path '{item['path']}' "
                    "outside the content directory"
                )
            entries.append(NavEntry(
                name=item['name'],
                path=item['path'],
                kind=kind,
                type=item['type'],
            ))
        return tuple(entries)


def load_config(config_path: str) -> SiteConfig:
    """Load the site configuration at ``config_path``."""
    return MdbearSettings(config_path).load()
