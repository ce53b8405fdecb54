"""Worklist entry points: get-next-work and work item selection."""
import logging
from typing import Any, Dict, Mapping, Optional

from caseapi.errors import CaseApiError
from caseform.errors import Toast, is_no_assignments_error, toast_for_error
from caseform.events import CaseEvent, EventBus

logger = logging.getLogger(__name__)


async def get_next_work(service: Any, events: EventBus) -> Optional[Dict[str, Any]]:
    """Fetch the next assignment and announce it as the selected work item.

    Returns:
        ``{"assignmentId", "caseId"}`` of the next assignment, or None when
        there is none or the call failed (a toast has been emitted).
    """
    try:
        assignment = await service.fetch_next_assignment()
    except CaseApiError as e:
        if is_no_assignments_error(e):
            events.emit(CaseEvent.TOAST, Toast.info("No Assignments", e.first_error.get('message', '')).to_dict())
        else:
            logger.warning(f"Get next work failed: {e}")
            events.emit(CaseEvent.TOAST, toast_for_error(e).to_dict())
        return None

    if not (assignment and assignment.get('ID')):
        return None
    item = {'assignmentId': assignment['ID'], 'caseId': assignment.get('caseID')}
    events.emit(CaseEvent.WORK_ITEM_SELECTED, dict(item, caseUrl=None))
    return item


def select_work_item(row: Mapping, events: EventBus) -> Optional[Dict[str, Any]]:
    """Announce a worklist row (``pzInsKey``, ``pxRefObjectKey``, ``caseUrl``) as selected."""
    if not isinstance(row, Mapping) or not row.get('pzInsKey'):
        return None
    item = {
        'assignmentId': row['pzInsKey'],
        'caseId': row.get('pxRefObjectKey'),
        'caseUrl': row.get('caseUrl'),
    }
    events.emit(CaseEvent.WORK_ITEM_SELECTED, item)
    return item
