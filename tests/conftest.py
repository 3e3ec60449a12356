"""Test configuration and fixtures for mdbear tests."""

import logging
import pytest
import tempfile
import shutil
import os
from pathlib import Path

PAGE_TEMPLATE = """<title>{{ current_page.meta.title }}</title>
<p>root={{ root_path }}</p>
<p>site={{ config.site_name }}</p>
{{ content }}"""

LIST_TEMPLATE = """<h1>{{ section_title }}</h1>
<ol>
{% for post in posts %}<li data-slug="{{ post.slug }}"><a href="{{ post.url }}">{{ post.meta.title }}</a> {{ post.meta.date }}</li>
{% endfor %}</ol>
<p>root={{ root_path }}</p>"""

DEFAULT_NAV = [
    {'name': 'Home', 'path': 'index.md', 'type': 'page'},
    {'name': 'Blog', 'path': 'blog', 'type': 'section'},
]


def write_config(site_dir, nav=None, **settings):
    """Write a config.toml into ``site_dir`` and return its path."""
    values = {
        'site_name': 'Test Site',
        'site_icon': '🐻',
        'author': 'Tester',
        'output_dir': 'public',
    }
    values.update(settings)
    lines = [f'{key} = "{value}"' for key, value in values.items()]
    for entry in DEFAULT_NAV if nav is None else nav:
        lines.append('')
        lines.append('[[nav]]')
        for key, value in entry.items():
            lines.append(f'{key} = "{value}"')
    config_path = Path(site_dir) / 'config.toml'
    config_path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    return str(config_path)


def snapshot_tree(directory):
    """Map every file under ``directory`` to its bytes."""
    files = {}
    for root, _dirs, names in os.walk(directory):
        for name in names:
            path = os.path.join(root, name)
            files[os.path.relpath(path, directory)] = Path(path).read_bytes()
    return files


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def site_dir(temp_dir):
    """A project with a home page, a two-post blog section and a theme."""
    site = Path(temp_dir) / 'site'
    blog_dir = site / 'content' / 'blog'
    theme_dir = site / 'theme'
    blog_dir.mkdir(parents=True)
    theme_dir.mkdir(parents=True)

    (site / 'content' / 'index.md').write_text("""# Welcome

This is the home page.
""", encoding='utf-8')

    (blog_dir / 'a.md').write_text("""---
title: "A"
date: "2024-01-01"
---

First post.
""", encoding='utf-8')

    (blog_dir / 'b.md').write_text("""---
date: "2024-02-01"
---

Second post.
""", encoding='utf-8')

    (theme_dir / 'page.html').write_text(PAGE_TEMPLATE, encoding='utf-8')
    (theme_dir / 'list.html').write_text(LIST_TEMPLATE, encoding='utf-8')

    write_config(site)
    return str(site)


@pytest.fixture
def config_path(site_dir):
    return os.path.join(site_dir, 'config.toml')


@pytest.fixture
def output_dir(site_dir):
    return os.path.join(site_dir, 'public')


@pytest.fixture
def content_dir(site_dir):
    return os.path.join(site_dir, 'content')


@pytest.fixture(autouse=True)
def restore_mdbear_logger():
    """Undo handlers installed by setup_logging during a test."""
    logger = logging.getLogger('mdbear')
    handlers = list(logger.handlers)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
