"""Admin console test steps and their document fixtures."""

from adminprobe.suite.admin import AdminSuite, DocumentView
from adminprobe.suite.fixtures import DocumentFixtures, DocumentRef

__all__ = [
    "AdminSuite",
    "DocumentView",
    "DocumentFixtures",
    "DocumentRef",
]
