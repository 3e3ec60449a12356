import os
import shutil
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, date
from typing import Callable, List, Optional, Tuple

import mistune
import yaml
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, TemplateSyntaxError
from jinja2 import TemplateError as JinjaTemplateError

from .errors import (
    ConfigError,
    ContentError,
    MetadataParseError,
    MissingDateError,
    MissingFrontmatterError,
    PageReadError,
    TemplateError,
)
from .settings import NavKind, SiteConfig, load_config

FRONTMATTER_OPEN = '---'
FRONTMATTER_CLOSE = ('---', '...')

PAGE_TEMPLATE = 'page.html'
LIST_TEMPLATE = 'list.html'

logger = logging.getLogger('mdbear')


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages (and every warning) on the console."""
    allowed_messages = [
        "Building site to",
        "Site build completed in",
        "Total pages generated:",
        "Total posts generated:",
        "Serving ",
        "Watching ",
        "Detected file change",
        "Rebuild completed",
        "Opened browser",
    ]

    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        return any(msg in record.getMessage() for msg in self.allowed_messages)


def setup_logging(log_to_file=True, logs_dir=None):
    """Set up the ``mdbear`` logger: filtered console output plus a full log file."""
    root_logger = logging.getLogger('mdbear')
    root_logger.setLevel(logging.DEBUG)

    if not root_logger.handlers:
        # Console handler with filter
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.addFilter(InfoFilter())
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        root_logger.addHandler(console_handler)

        if log_to_file:
            # File handler for all logs
            logs_dir = logs_dir or os.path.join(os.getcwd(), 'logs')
            os.makedirs(logs_dir, exist_ok=True)
            log_filename = datetime.now().strftime('mdbear_%Y-%m-%d_%H-%M-%S.log')
            file_handler = logging.FileHandler(os.path.join(logs_dir, log_filename), encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            root_logger.addHandler(file_handler)

    return root_logger


def log_file_dirs():
    """Directories the ``mdbear`` file handlers write into."""
    return [
        os.path.dirname(handler.baseFilename)
        for handler in logging.getLogger('mdbear').handlers
        if isinstance(handler, logging.FileHandler)
    ]


def create_markdown_renderer():
    """Create a Mistune markdown parser with a custom renderer."""
    class CustomRenderer(mistune.HTMLRenderer):
        def __init__(self):
            super().__init__(escape=False)

        def block_code(self, code, info=None):
            escaped_code = mistune.escape(code)
            if info and info.strip():
                lang = mistune.escape(info.strip().split(None, 1)[0])
                return '<pre><code class="language-{}">{}</code></pre>\n'.format(lang, escaped_code)
            return '<pre><code>{}</code></pre>\n'.format(escaped_code)

    return mistune.create_markdown(
        renderer=CustomRenderer(),
        plugins=['table', 'strikethrough', 'task_lists']
    )


def parse_frontmatter(text, source='<string>'):
    """
    Split a document into its YAML frontmatter and Markdown body.

    Returns ``(metadata, body)``. ``metadata`` is None when the document has no
    frontmatter block or the block is empty; otherwise it is whatever the YAML
    parses to. Raises MetadataParseError for an unterminated block or bad YAML.
    """
    if text.startswith('\ufeff'):
        text = text[1:]

    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != FRONTMATTER_OPEN:
        return None, text

    for index in range(1, len(lines)):
        if lines[index].rstrip() in FRONTMATTER_CLOSE:
            block = ''.join(lines[1:index])
            body = ''.join(lines[index + 1:])
            break
    else:
        raise MetadataParseError(source, "frontmatter block is not terminated with '---'")

    try:
        metadata = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise MetadataParseError(source, f"invalid YAML frontmatter: {e}") from e

    return metadata, body


@dataclass(frozen=True)
class PageMeta:
    title: Optional[str] = None
    date: Optional[str] = None


@dataclass(frozen=True)
class Page:
    """A loaded and rendered document."""
    meta: PageMeta
    content_html: str
    slug: str
    url: str


def _meta_value(key, value):
    if value is None or isinstance(value, str):
        return value
    # YAML turns unquoted dates into date/datetime objects.
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"'{key}' must be a string, got {type(value).__name__}")


def parse_page_meta(metadata, source='<string>'):
    """
    Build PageMeta from parsed frontmatter.

    Unknown keys are ignored. Metadata that is not a mapping, or a title/date
    of an unsupported type, falls back to an empty PageMeta with a warning so
    that one sloppy header does not stop the build.
    """
    if not isinstance(metadata, dict):
        logger.warning(f"Ignoring frontmatter in {source}: expected key/value pairs, got {type(metadata).__name__}")
        return PageMeta()
    try:
        return PageMeta(
            title=_meta_value('title', metadata.get('title')),
            date=_meta_value('date', metadata.get('date')),
        )
    except TypeError as e:
        logger.warning(f"Ignoring frontmatter in {source}: {e}")
        return PageMeta()


def page_url(slug, relative_path):
    """Output filename for a page: only a root-level ``index`` document maps to index.html."""
    at_root = '/' not in relative_path and os.sep not in relative_path
    if slug == 'index' and at_root:
        return 'index.html'
    return f"{slug}.html"


def load_page(content_root, relative_path, strict, markdown=None):
    """
    Load ``content_root/relative_path`` into a rendered Page.

    In strict mode (section posts) the document must have frontmatter with a
    ``date``; a missing title defaults to the slug.
    """
    full_path = os.path.join(content_root, relative_path)
    try:
        with open(full_path, 'r', encoding='utf-8') as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise PageReadError(full_path, f"cannot read file: {e}") from e

    metadata, body = parse_frontmatter(text, full_path)

    if metadata is None:
        if strict:
            raise MissingFrontmatterError(full_path, "missing frontmatter (title, date)")
        meta = PageMeta()
    else:
        meta = parse_page_meta(metadata, full_path)

    slug = os.path.splitext(os.path.basename(relative_path))[0]

    if strict and meta.title is None:
        meta = replace(meta, title=slug)

    if strict and meta.date is None:
        raise MissingDateError(full_path, "missing 'date' field")

    render = markdown or create_markdown_renderer()

    return Page(
        meta=meta,
        content_html=render(body),
        slug=slug,
        url=page_url(slug, relative_path),
    )


def nav_href(entry):
    """Link target of a nav entry, relative to the output root."""
    if entry.kind is NavKind.PAGE:
        slug = os.path.splitext(os.path.basename(entry.path))[0]
        return page_url(slug, entry.path)
    if entry.kind is NavKind.SECTION:
        return f"{entry.path.strip('/')}/index.html"
    return entry.path


def relative_root(path):
    """Relative prefix from ``output/path`` back to the output root ('..' one level down)."""
    depth = len([part for part in path.replace(os.sep, '/').split('/') if part and part != '.'])
    return '/'.join(['..'] * depth) or '.'


@dataclass(frozen=True)
class BuildContext:
    """Everything one build needs; created fresh for every build."""
    config: SiteConfig
    config_path: str
    project_dir: str
    content_dir: str
    theme_dir: str
    output_dir: str
    env: Environment
    markdown: Callable[[str], str]

    @classmethod
    def from_config_file(cls, config_path):
        config_path = os.path.abspath(config_path)
        config = load_config(config_path)
        project_dir = os.path.dirname(config_path)

        def resolve(path):
            return os.path.normpath(os.path.join(project_dir, os.path.expanduser(path)))

        content_dir = resolve(config.content_dir)
        theme_dir = resolve(config.theme_dir)
        output_dir = resolve(config.output_dir)
        check_output_dir(output_dir, [project_dir, content_dir, theme_dir])

        return cls(
            config=config,
            config_path=config_path,
            project_dir=project_dir,
            content_dir=content_dir,
            theme_dir=theme_dir,
            output_dir=output_dir,
            env=create_template_env(theme_dir),
            markdown=create_markdown_renderer(),
        )


def create_template_env(theme_dir):
    env = Environment(loader=FileSystemLoader(theme_dir))
    env.globals['nav_href'] = nav_href
    return env


def check_output_dir(output_dir, protected):
    """Refuse an output directory whose deletion would take source files with it."""
    output_real = os.path.realpath(output_dir)
    for path in protected:
        path_real = os.path.realpath(path)
        if path_real == output_real or path_real.startswith(output_real.rstrip(os.sep) + os.sep):
            raise ConfigError(
                f"Output directory {output_dir} would contain {path}; "
                "it is deleted on every build, choose another output_dir"
            )


@dataclass
class BuildReport:
    pages_generated: int = 0
    posts_generated: int = 0
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    elapsed: float = 0.0


class SiteBuilder:
    """Builds the whole site for one BuildContext."""

    def __init__(self, ctx):
        self.ctx = ctx
        self.logger = logger
        self.report = BuildReport()

    def check_templates(self):
        """Load the templates the navigation needs before anything is deleted."""
        kinds = {entry.kind for entry in self.ctx.config.nav}
        needed = []
        if kinds & {NavKind.PAGE, NavKind.SECTION}:
            needed.append(PAGE_TEMPLATE)
        if NavKind.SECTION in kinds:
            needed.append(LIST_TEMPLATE)
        for template_name in needed:
            self._get_template(template_name)

    def _get_template(self, template_name):
        try:
            return self.ctx.env.get_template(template_name)
        except TemplateNotFound as e:
            raise TemplateError(f"Template '{e.name}' not found in {self.ctx.theme_dir}") from e
        except TemplateSyntaxError as e:
            raise TemplateError(f"Syntax error in template {e.filename or template_name}, line {e.lineno}: {e.message}") from e

    def render_template(self, template_name, **context):
        """Render a Jinja2 template from the theme directory."""
        template = self._get_template(template_name)
        try:
            return template.render(**context)
        except JinjaTemplateError as e:
            raise TemplateError(f"Failed to render template {template_name}: {e}") from e

    def write_output(self, path, html):
        with open(path, 'w', encoding='utf-8') as output_file:
            output_file.write(html)
        self.logger.debug(f"Generated HTML: {path}")

    def create_output_dir(self):
        """Delete the output directory and recreate it empty."""
        output_dir = self.ctx.output_dir
        if os.path.isdir(output_dir) and not os.path.islink(output_dir):
            shutil.rmtree(output_dir)
        elif os.path.lexists(output_dir):
            os.remove(output_dir)
        os.makedirs(output_dir)

    def copy_assets_to_output(self):
        """Copy content/assets and theme/fonts into the output tree."""
        copies = [
            (os.path.join(self.ctx.content_dir, 'assets'), os.path.join(self.ctx.output_dir, 'assets')),
            (os.path.join(self.ctx.theme_dir, 'fonts'), os.path.join(self.ctx.output_dir, 'fonts')),
        ]
        for source, destination in copies:
            if os.path.isdir(source):
                shutil.copytree(source, destination, dirs_exist_ok=True)
                self.logger.debug(f"Copied {source} -> {destination}")

    def get_markdown_files(self, directory):
        """Direct-child markdown files of a directory, sorted by name."""
        if not os.path.isdir(directory):
            return []
        return sorted(
            name for name in os.listdir(directory)
            if name.endswith('.md') and os.path.isfile(os.path.join(directory, name))
        )

    def build_page(self, entry):
        """Render a top-level navigation page; any failure aborts the build."""
        page = load_page(self.ctx.content_dir, entry.path, strict=False, markdown=self.ctx.markdown)
        html = self.render_template(
            PAGE_TEMPLATE,
            config=self.ctx.config,
            current_page=page,
            content=page.content_html,
            root_path='.',
        )
        self.write_output(os.path.join(self.ctx.output_dir, page.url), html)
        self.report.pages_generated += 1
        return page

    def build_section(self, entry):
        """
        Render every post of a section plus its index page.

        Posts are loaded strictly; a post that fails to load is logged and
        skipped. The index lists posts newest first by their ``date`` string.
        """
        section_dir = os.path.join(self.ctx.content_dir, entry.path)
        section_output = os.path.join(self.ctx.output_dir, entry.path)
        os.makedirs(section_output, exist_ok=True)
        root_path = relative_root(entry.path)

        if not os.path.isdir(section_dir):
            self.logger.warning(f"Section '{entry.name}' has no directory at {section_dir}")

        posts = []
        for filename in self.get_markdown_files(section_dir):
            rel_path = f"{entry.path.rstrip('/')}/{filename}"
            try:
                page = load_page(self.ctx.content_dir, rel_path, strict=True, markdown=self.ctx.markdown)
            except ContentError as e:
                self.logger.warning(f"Skipping {rel_path}: {e}")
                self.report.skipped.append((rel_path, str(e)))
                continue

            html = self.render_template(
                PAGE_TEMPLATE,
                config=self.ctx.config,
                current_page=page,
                content=page.content_html,
                root_path=root_path,
            )
            self.write_output(os.path.join(section_output, page.url), html)
            posts.append(page)

        # Stable: posts with equal dates keep filename order.
        posts.sort(key=lambda page: page.meta.date, reverse=True)

        html = self.render_template(
            LIST_TEMPLATE,
            config=self.ctx.config,
            section_title=entry.name,
            posts=posts,
            root_path=root_path,
        )
        self.write_output(os.path.join(section_output, 'index.html'), html)
        self.report.posts_generated += len(posts)
        return posts

    def resolve_navigation(self):
        """Build every navigation entry in config order."""
        for entry in self.ctx.config.nav:
            if entry.kind is NavKind.PAGE:
                self.build_page(entry)
            elif entry.kind is NavKind.SECTION:
                self.build_section(entry)
            elif entry.kind is NavKind.LINK:
                continue
            else:
                self.logger.warning(f"Ignoring nav entry '{entry.name}' with unknown type '{entry.type}'")

    def build(self):
        """Main build process."""
        start_time = time.time()
        self.logger.info(f"Building site to {self.ctx.output_dir}")

        self.check_templates()
        self.create_output_dir()
        self.copy_assets_to_output()
        self.resolve_navigation()

        self.report.elapsed = time.time() - start_time
        self.logger.info(f"Site build completed in {self.report.elapsed:.6f} seconds.")
        self.logger.info(f"Total pages generated: {self.report.pages_generated}")
        self.logger.info(f"Total posts generated: {self.report.posts_generated}")
        if self.report.skipped:
            self.logger.warning(f"Skipped {len(self.report.skipped)} document(s) with errors")
        return self.report


def build_site(config_path):
    """Load the config at ``config_path`` and build the site from scratch."""
    ctx = BuildContext.from_config_file(config_path)
    return SiteBuilder(ctx).build()
