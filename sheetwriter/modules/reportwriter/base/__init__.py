"""Errors raised while generating workbooks from templates."""

from __future__ import annotations


class XlsxTemplateError(Exception):
    """Base class for template generation failures."""


class TemplateInputError(XlsxTemplateError, ValueError):
    """The caller did not provide a template or data."""


class TemplateFetchError(XlsxTemplateError):
    """The template could not be fetched from its URL or path."""

    def __init__(self, message: str, source: str):
        super().__init__(message)
        self.source = source


class TemplatePackageError(XlsxTemplateError):
    """The template package is unreadable or a required part is broken."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path
