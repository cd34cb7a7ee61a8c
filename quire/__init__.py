"""Quire static blog generator.

Quire turns a directory of dated posts (Markdown or HTML with YAML front
matter) into a static site. A build is a three-stage pipeline:

- Content loading: files become ContentItems (front matter plus body).
- Rendering: bodies become HTML, with highlight/raw/comment directives
  expanded along the way.
- Site assembly: documents are wrapped in Jinja2 layouts and written to
  their permalinks, together with an index page and feeds.

The main entry point is the CLI module (``quire build SOURCE DESTINATION``).
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
