"""Template rendering for email notifications using Jinja2."""

import logging
from typing import Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from .models import NotificationTemplateError, TemplateKind

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """Renders subject, HTML and plain text bodies for each template kind.

    Each kind has three files in the ``email_templates`` package directory:
    ``<kind>_subject.j2``, ``<kind>_body.html.j2`` and ``<kind>_body.txt.j2``.
    Only the HTML body is autoescaped. Missing variables raise instead of
    rendering as blanks.
    """

    def __init__(self, template_dir: str = "email_templates"):
        self.env = Environment(
            loader=PackageLoader("jobboard.notifications", template_dir),
            autoescape=select_autoescape(enabled_extensions=("html.j2",), default=False),
            undefined=StrictUndefined,
        )

        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    def render(self, kind: TemplateKind, context: Dict) -> Dict[str, str]:
        """Render all templates of ``kind`` with ``context``.

        Returns:
            Dictionary with ``subject`` (single line), ``html_body`` and ``text_body``

        Raises:
            NotificationTemplateError: If template rendering fails
        """
        kind = TemplateKind(kind)
        try:
            subject_template = self.env.get_template(f"{kind.value}_subject.j2")
            html_template = self.env.get_template(f"{kind.value}_body.html.j2")
            text_template = self.env.get_template(f"{kind.value}_body.txt.j2")

            subject = subject_template.render(context).strip().replace("\n", " ")
            html_body = html_template.render(context)
            text_body = text_template.render(context)

            return {
                "subject": subject,
                "html_body": html_body,
                "text_body": text_body,
            }

        except TemplateError as e:
            error_msg = f"Template rendering failed for {kind.value}: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e

