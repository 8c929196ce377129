"""HTML bodies for the confirmation mails sent to account owners."""

from __future__ import annotations

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError, select_autoescape

from ..errors import TemplateRenderError

_ENV = Environment(
    loader=BaseLoader(),
    autoescape=select_autoescape(default_for_string=True, default=True),
    undefined=StrictUndefined,
)

_BASE_CSS = """
  body { background-color: lightblue; }
  * { font-family: "Roboto", sans-serif; font-weight: 300; }
  div#main { max-width: 700px; background-color: white; margin: auto; padding: 80px; }
"""

ACCOUNT_CONFIRMATION_TEMPLATE = r"""
<!DOCTYPE html><html><head><meta charset="utf-8">
<link href="https://fonts.googleapis.com/css?family=Roboto:300,400" rel="stylesheet">
<style>{{ base_css }}</style></head>
<body>
  <div id="main">
    <p>Hola {{ name }}, gracias por registrarte!</p>
    <p>Para confirmar tu alta como usuario, haz clic <a href="{{ confirmation_url }}">AQUÍ</a>.</p>
    <p>Si no solicitaste esta cuenta, ignora este mensaje.</p>
  </div>
</body></html>
"""

PASSWORD_RESET_TEMPLATE = r"""
<!DOCTYPE html><html><head><meta charset="utf-8">
<link href="https://fonts.googleapis.com/css?family=Roboto:300,400" rel="stylesheet">
<style>{{ base_css }}</style></head>
<body>
  <div id="main">
    <p>Hola {{ name }}!</p>
    <p>Para continuar con el blanqueo de tu contraseña, haz clic <a href="{{ confirmation_url }}">AQUÍ</a>.</p>
    <p>Si no solicitaste el blanqueo de contraseña, ignora este mensaje.</p>
  </div>
</body></html>
"""


class ConfirmationTemplate:
    """Jinja2 template producing a mail body that links to a confirmation page.

    Parameters
    ----------
    source:
        Template text. It receives ``name``, ``confirmation_url`` and ``base_css``.
    base_path:
        Front-end URL of the page that redeems the code, e.g.
        ``https://app.example.com/#/auth/confirmar_usuario``.

    Raises
    ------
    jinja2.TemplateError
        When ``source`` does not compile.
    """

    def __init__(self, source: str, base_path: str) -> None:
        self._template = _ENV.from_string(source)
        self._base_path = base_path

    @property
    def base_path(self) -> str:
        return self._base_path

    def confirmation_url(self, confirmation_id: str) -> str:
        return f"{self._base_path}?id={confirmation_id}"

    def render(self, account_name: str, confirmation_id: str) -> str:
        """Render the body for ``account_name`` linking to ``confirmation_id``."""
        try:
            return self._template.render(
                name=account_name,
                confirmation_url=self.confirmation_url(confirmation_id),
                base_css=_BASE_CSS,
            )
        except TemplateError as exc:
            raise TemplateRenderError(
                f"rendering confirmation body failed: {exc}",
                confirmation_id=confirmation_id,
            ) from exc


def default_account_confirmation(base_path: str) -> ConfirmationTemplate:
    return ConfirmationTemplate(ACCOUNT_CONFIRMATION_TEMPLATE, base_path)


def default_password_reset(base_path: str) -> ConfirmationTemplate:
    return ConfirmationTemplate(PASSWORD_RESET_TEMPLATE, base_path)
