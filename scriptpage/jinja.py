from __future__ import annotations

from jinja2 import Environment, StrictUndefined, Template

"""Jinja2 environment and the layout of generated template modules.

The environment is created once at import time and reused; only the module
skeleton goes through Jinja, the body lines are produced by the compiler.
"""

# Singleton environment reused across the process
JINJA_ENV: Environment = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    trim_blocks=True,
    keep_trailing_newline=True,
)

MODULE_SOURCE = '''\
# Generated by scriptpage from {{ origin }}. Do not edit.


def render({{ param }}=None):
    _buf = []
{% for line in body %}
{{ line }}
{% endfor %}
    return ''.join(_buf)


def _escape(value):
    if value is None:
        return ''
    if not isinstance(value, str):
        return _escape(str(value))
    if not _SPECIAL_CHARS.intersection(value):
        return value
    return value.translate(_HTML_ENTITIES)


_SPECIAL_CHARS = frozenset('&"<>')
_HTML_ENTITIES = str.maketrans({
    '&': '&amp;',
    '"': '&quot;',
    '<': '&lt;',
    '>': '&gt;',
})
'''


def compile_template(source: str) -> Template:
    """Compile a Jinja2 template from a string.
    """
    return JINJA_ENV.from_string(source)


MODULE_TEMPLATE: Template = compile_template(MODULE_SOURCE)


def render_module(param: str, body: list[str], origin: str = "<string>") -> str:
    """Lay out a generated module around already-indented body lines."""
    origin = " ".join(str(origin).splitlines())
    return MODULE_TEMPLATE.render(param=param, body=body, origin=origin)
