"""
mdbear - A small static site generator for Bear Blog style websites.

mdbear takes Markdown content with YAML front matter and a navigation list
from config.toml, and uses Jinja2 templates from the theme directory to
generate static HTML pages and per-section post listings. ``mdbear serve``
previews the site and rebuilds it whenever content, theme or config change.
"""

__version__ = "0.1.0"

from .core import Page, PageMeta, SiteBuilder, build_site, load_page
from .settings import NavEntry, NavKind, SiteConfig, load_config

__all__ = [
    'Page', 'PageMeta', 'SiteBuilder', 'build_site', 'load_page',
    'NavEntry', 'NavKind', 'SiteConfig', 'load_config',
]
