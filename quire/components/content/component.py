"""
Content component - lifecycle operations as result objects.

Wraps the ContentLifecycleEngine so callers that prefer explicit
success/error outputs over exceptions get them. Lifecycle errors become
`ContentValidationError` entries carrying the error code and field; any
other exception propagates.
"""

from __future__ import annotations

import logging

from quire.core.errors import LifecycleError

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

logger = logging.getLogger(__name__)


def _to_error(exc: LifecycleError) -> ContentValidationError:
    return ContentValidationError(code=exc.code, message=exc.message, field=exc.field)


def run_add(inp: AddContentInput, *, engine: ContentLifecyclePort) -> ContentOperationOutput:
    """Create a post or page."""
    try:
        item = engine.add(inp.data, inp.options)
    except LifecycleError as e:
        logger.info("add rejected: %s (%s)", e.message, e.code)
        return ContentOperationOutput(content=None, errors=[_to_error(e)], success=False)
    return ContentOperationOutput(content=item, errors=[], success=True)


def run_edit(inp: EditContentInput, *, engine: ContentLifecyclePort) -> ContentOperationOutput:
    """Edit an existing item."""
    try:
        item = engine.edit(inp.content_id, inp.data, inp.options)
    except LifecycleError as e:
        logger.info("edit of %s rejected: %s (%s)", inp.content_id, e.message, e.code)
        return ContentOperationOutput(content=None, errors=[_to_error(e)], success=False)
    return ContentOperationOutput(content=item, errors=[], success=True)


def run_destroy(
    inp: DestroyContentInput, *, engine: ContentLifecyclePort
) -> ContentOperationOutput:
    """Delete an item."""
    try:
        engine.destroy(inp.content_id, inp.options)
    except LifecycleError as e:
        logger.info("destroy of %s rejected: %s (%s)", inp.content_id, e.message, e.code)
        return ContentOperationOutput(content=None, errors=[_to_error(e)], success=False)
    return ContentOperationOutput(content=None, errors=[], success=True)


def run_get(inp: GetContentInput, *, engine: ContentLifecyclePort) -> ContentOutput:
    """
    Get one item plus its public representation in the requested formats.
    """
    try:
        item = engine.get(inp.content_id, inp.status)
        if item is None:
            return ContentOutput(
                content=None,
                errors=[ContentValidationError(code="not_found", message="Content not found")],
                success=False,
            )
        data = engine.serialize(item, inp.formats)
    except LifecycleError as e:
        return ContentOutput(content=None, errors=[_to_error(e)], success=False)
    return ContentOutput(content=item, data=data, errors=[], success=True)


def run_list_revisions(
    inp: ListRevisionsInput, *, engine: ContentLifecyclePort
) -> RevisionListOutput:
    """Revision log for an item, oldest first."""
    try:
        revisions = engine.list_revisions(inp.content_id)
    except LifecycleError as e:
        return RevisionListOutput(revisions=[], errors=[_to_error(e)], success=False)
    return RevisionListOutput(revisions=revisions, errors=[], success=True)
