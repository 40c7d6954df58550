"""
Content component - add, edit, destroy and read posts and pages.
"""

from .component import (
    run_add,
    run_destroy,
    run_edit,
    run_get,
    run_list_revisions,
)
from .models import (
    AddContentInput,
    ContentOperationOutput,
    ContentOutput,
    ContentValidationError,
    DestroyContentInput,
    EditContentInput,
    GetContentInput,
    ListRevisionsInput,
    RevisionListOutput,
)
from .ports import ContentLifecyclePort

__all__ = [
    # Entry points
    "run_add",
    "run_destroy",
    "run_edit",
    "run_get",
    "run_list_revisions",
    # Input models
    "AddContentInput",
    "DestroyContentInput",
    "EditContentInput",
    "GetContentInput",
    "ListRevisionsInput",
    # Output models
    "ContentOperationOutput",
    "ContentOutput",
    "ContentValidationError",
    "RevisionListOutput",
    # Ports
    "ContentLifecyclePort",
]
