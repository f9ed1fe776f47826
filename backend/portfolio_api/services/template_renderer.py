"""
Jinja2 rendering for the contact email bodies.

Templates live in portfolio_api/templates. Autoescaping is on for .html
templates and off for .txt, so the HTML body escapes submitted text at
render time while the plain-text body shows it as typed.

Public API:
  render_template(name, context) -> str
  extract_placeholders(name) -> list[str]
  missing_keys(name, context) -> list[str]
"""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, meta, select_autoescape

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
    # A missing variable is a bug in the caller, not something to render blank
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render_template(name: str, context: dict) -> str:
    return env.get_template(name).render(context)


def extract_placeholders(name: str) -> list[str]:
    """Variable names the template reads, sorted."""
    source = env.loader.get_source(env, name)[0]
    return sorted(meta.find_undeclared_variables(env.parse(source)))


def missing_keys(name: str, context: dict) -> list[str]:
    return [key for key in extract_placeholders(name) if key not in context]
