"""Collaborator interfaces and the offline documents controller."""

from wallet_catalog.services.interfaces import (
    CatalogServices,
    DocumentsController,
    LocalizedTextProvider,
    build_default_services,
)
from wallet_catalog.services.json_controller import (
    JsonFileDocumentsController,
    classify_retry,
    load_documents_file,
    save_documents_file,
)

__all__ = [
    "CatalogServices",
    "DocumentsController",
    "JsonFileDocumentsController",
    "LocalizedTextProvider",
    "build_default_services",
    "classify_retry",
    "load_documents_file",
    "save_documents_file",
]
