"""Helpers shared by the Django-facing parts of Sheetwriter."""

# Django Imports
from django.http import HttpResponse
from django.utils.http import content_disposition_header


def add_content_disposition_header(response: HttpResponse, filename: str) -> HttpResponse:
    """Mark ``response`` as a file download named ``filename``."""

    response["Content-Disposition"] = content_disposition_header(True, filename)
    return response
