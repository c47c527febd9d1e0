"""Render the configured command and arguments from a webhook payload.

Templates use Jinja2 syntax with the payload fields as variables::

    command: /usr/local/bin/notify
    args:
      - "--status={{ status }}"
      - "{{ alerts[0].labels.alertname }}"
      - "{{ common_annotations.summary }}"

Strings without a template marker are used as-is and never compiled.
Undefined variables and missing keys are errors, not empty strings.
"""

from typing import Any, Sequence

import jinja2

from alertexec.alerts.payload import Payload
from alertexec.errors import TemplateRenderError

_MARKERS = ("{{", "{%")

_ENV = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


def is_template(raw: str) -> bool:
    """Return ``True`` when *raw* contains template syntax."""
    return any(marker in raw for marker in _MARKERS)


def _render_one(target: str, raw: str, context: dict[str, Any]) -> str:
    if not is_template(raw):
        return raw
    try:
        return _ENV.from_string(raw).render(context)
    except (
        jinja2.TemplateError,
        ArithmeticError,
        AttributeError,
        LookupError,
        TypeError,
        ValueError,
    ) as exc:
        raise TemplateRenderError(target, raw, exc) from exc


def render_command(
    command_template: str,
    arg_templates: Sequence[str],
    payload: Payload,
) -> tuple[str, list[str]]:
    """Produce the executable path and argument list for *payload*.

    Arguments are rendered in order and rendering stops at the first one
    that fails.

    Args:
        command_template: Executable path, possibly templated.
        arg_templates: Argument strings, each possibly templated.
        payload: The validated notification used as template data.

    Returns:
        ``(command, args)``.

    Raises:
        TemplateRenderError: Naming ``command`` or ``arg N`` and wrapping the
            underlying Jinja2 error.
    """
    context = payload.template_context()
    command = _render_one("command", command_template, context)
    args = [
        _render_one(f"arg {index}", raw, context)
        for index, raw in enumerate(arg_templates)
    ]
    return command, args
