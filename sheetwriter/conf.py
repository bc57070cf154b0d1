"""Settings lookups with package defaults."""

# Standard Libraries
from typing import Any

# Django Imports
from django.conf import settings

XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

DEFAULTS = {
    "SHEETWRITER_FETCH_TIMEOUT": 30,
    "SHEETWRITER_WORKSHEET_PATTERN": "xl/worksheets/*.xml",
    "SHEETWRITER_SHARED_STRINGS_PART": "xl/sharedStrings.xml",
    "SHEETWRITER_FILENAME_TEMPLATE": "{date} - Report.xlsx",
    "SHEETWRITER_MIME_TYPE": XLSX_MIME_TYPE,
}


def get_setting(name: str) -> Any:
    """Return the project's value for ``name`` or the package default.

    Sheetwriter is usable without a Django project, so unconfigured settings
    fall back to :data:`DEFAULTS` instead of raising ``ImproperlyConfigured``.
    """

    default = DEFAULTS[name]
    if not settings.configured:
        return default
    return getattr(settings, name, default)
