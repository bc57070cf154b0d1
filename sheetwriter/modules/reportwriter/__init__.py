"""Public entry points for generating workbooks from ``.xlsx`` templates."""

from __future__ import annotations

# Standard Libraries
import logging
import os
from datetime import date
from typing import Any, Optional

# Django Imports
from django.http import HttpResponse

# 3rd Party Libraries
import requests

# Sheetwriter Libraries
from sheetwriter.conf import get_setting
from sheetwriter.modules.reportwriter.base import TemplateFetchError, TemplateInputError
from sheetwriter.modules.reportwriter.base.xlsx_template import SheetwriterXlsxTemplate
from sheetwriter.modules.shared import add_content_disposition_header

logger = logging.getLogger(__name__)

_URL_SCHEMES = ("http://", "https://")


def load_template(template: Any) -> bytes:
    """Return the raw bytes of ``template``.

    ``template`` may be bytes-like, a binary file object, a filesystem path or
    an ``http(s)://`` URL. Fetch failures raise :class:`TemplateFetchError`.
    """

    if isinstance(template, (bytes, bytearray, memoryview)):
        return bytes(template)
    if hasattr(template, "read"):
        return bytes(template.read())
    if isinstance(template, str) and template.lower().startswith(_URL_SCHEMES):
        try:
            response = requests.get(template, timeout=get_setting("SHEETWRITER_FETCH_TIMEOUT"))
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Failed to fetch template from %s: %s", template, exc)
            raise TemplateFetchError(f"Could not fetch template from {template}", template) from exc
        return response.content
    if isinstance(template, (str, os.PathLike)):
        try:
            with open(template, "rb") as handle:
                return handle.read()
        except OSError as exc:
            logger.error("Failed to read template %s: %s", template, exc)
            raise TemplateFetchError(f"Could not read template {template}", os.fspath(template)) from exc
    raise TemplateInputError(f"Unsupported template source: {type(template).__name__}")


def generate_xlsx(template: Any, data: Any) -> bytes:
    """Fill ``template`` with ``data`` and return the new workbook bytes."""

    if not template or data is None:
        raise TemplateInputError("No template or data provided")
    blob = load_template(template)
    return SheetwriterXlsxTemplate(blob).render(data)


def xlsx_response(
    template: Any,
    data: Any,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> HttpResponse:
    """Generate a workbook and wrap it in a download response."""

    out = generate_xlsx(template, data)
    if filename is None:
        filename = get_setting("SHEETWRITER_FILENAME_TEMPLATE").format(date=date.today().isoformat())
    response = HttpResponse(out, content_type=content_type or get_setting("SHEETWRITER_MIME_TYPE"))
    add_content_disposition_header(response, filename)
    return response
