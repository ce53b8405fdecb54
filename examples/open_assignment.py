"""
Open one assignment against a live case engine and print its fields.

Usage:
    CASEAPI_BASE_URL=https://host/prweb/api/v1 CASEAPI_ACCESS_TOKEN=... \
        python examples/open_assignment.py "ASSIGN-WORKLIST ORG-APP-WORK C-12!FLOW" "ORG-APP-WORK C-12"

Reference=value pairs given after the ids are applied as edits, so dependent
lookups and mirrored inputs can be watched cascading.
"""

import asyncio
import logging
import sys

from caseapi import CaseService, ServiceConfig, set_service_config
from caseform import CaseContainer, CaseEvent

logger = logging.getLogger(__name__)


def print_fields(container: CaseContainer) -> None:
    for widget in container.widgets:
        options = f" ({len(widget.options)} options)" if widget.options else ""
        print(f"  [{widget.field.index}] {widget.field.reference} = {widget.value!r}{options}")


async def main(assignment_id: str, case_id: str, edits) -> int:
    config = ServiceConfig.from_env()
    set_service_config(config)
    async with CaseService.for_endpoint(config.base_url) as service:
        container = CaseContainer(service, assignment_id=assignment_id, case_id=case_id)
        container.events.on(CaseEvent.TOAST, lambda toast: print(f"! {toast['title']}: {toast['message']}"))
        if await container.load_assignment() is None:
            return 1

        print(f"{container.assignment.get('name')} / {container.current_action}")
        print_fields(container)

        for edit in edits:
            reference, _, value = edit.partition("=")
            field = container.session.registry.first_field(reference)
            if field is None:
                logger.warning(f"No field rendered for {reference!r}")
                continue
            await container.handle_field_changed(field, value)
            print(f"after {reference} = {value!r}:")
            print_fields(container)
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2], sys.argv[3:])))
