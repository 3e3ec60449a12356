"""
Exception types raised by the mdbear build pipeline.

Convention:
- ``ConfigError`` aborts a build before the output directory is touched.
- ``ContentError`` and its subclasses describe a single bad document. Section
  builds log and skip them; navigation pages treat them as fatal.
- ``TemplateError`` means the theme is broken and always aborts the build.
"""


class MdbearError(Exception):
    """Base class for every error mdbear raises on purpose."""


class ConfigError(MdbearError):
    """The site configuration is missing, unreadable or malformed."""


class ContentError(MdbearError):
    """A content document could not be loaded."""

    def __init__(self, path, message):
        self.path = path
        super().__init__(f"{path}: {message}")


class PageReadError(ContentError):
    """The document could not be read from disk.

    Raised from the underlying ``OSError``, which stays available as
    ``__cause__``.
    """


class MetadataParseError(ContentError):
    """The frontmatter block is unterminated or is not valid YAML."""


class MissingFrontmatterError(ContentError):
    """A strict-mode document has no frontmatter block at all."""


class MissingDateError(ContentError):
    """A strict-mode document has no ``date`` field."""


class TemplateError(MdbearError):
    """A theme template is missing or failed to render."""


class ScaffoldError(MdbearError):
    """A new project could not be created."""
