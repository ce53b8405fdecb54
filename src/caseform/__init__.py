"""
Headless engine for server-described case forms.

The case engine describes every form as a view tree. caseform turns that tree
into a dependency graph over the rendered fields and keeps field values
consistent as the user edits: mirrored inputs stay in sync, dependent option
lists re-fetch when the fields they are parameterized by change, and
configured field actions (set value, refresh, perform action, run script,
open URL) run in order before the change cascades.

Quick Start:
    >>> from caseapi import CaseService, ServiceConfig
    >>> from caseform import CaseContainer
    >>>
    >>> service = CaseService(ServiceConfig(base_url="https://host/prweb/api/v1/"))
    >>> container = CaseContainer(service, assignment_id=assignment_id, case_id=case_id)
    >>> await container.load_assignment()
    >>> field = container.session.registry.first_field("Customer.Country")
    >>> await container.handle_field_changed(field, "FR")
    >>> await container.submit()

Architecture:
    view JSON → ViewSession (fields, ReferenceStore, DependencyGraph)
              → widgets render and register (ComponentRegistry)
    user edit → ActionPipeline → PropagationEngine → store/widgets
              → or a refresh round trip returning a new view

Modules:
    - view_model: immutable field descriptors and the field kind table
    - reference_store: flat reference → value store, nested serialization
    - registry: index-keyed widget registrations
    - graph: dependency graph construction
    - propagation: cascading updates along the graph
    - options / option_cache: option list resolution and caching
    - actions: field action steps and their sequential execution
    - lifecycle: assignment state machine
    - container: CaseContainer orchestration
    - widgets: headless FieldWidget
    - events / errors: outbound events, toasts and error types
    - worklist: get-next-work and work item selection
"""

__version__ = "0.1.0"

from caseform.actions import ActionKind, ActionPipeline, build_steps
from caseform.container import CaseContainer
from caseform.errors import InvalidServerResponseError, InvalidTransitionError, Toast
from caseform.events import CaseEvent, EventBus
from caseform.graph import DependencyGraph
from caseform.lifecycle import AssignmentState, Lifecycle
from caseform.option_cache import CacheKey, OptionCache
from caseform.options import Option, OptionRefresh, OptionResolver
from caseform.propagation import PropagationEngine, PropagationResult
from caseform.reference_store import ReferenceStore
from caseform.registry import ComponentRegistry, Registration
from caseform.session import ViewSession
from caseform.view_model import FieldDescriptor, FieldKind, describe_fields
from caseform.widgets import FieldWidget, render_view
from caseform.worklist import get_next_work, select_work_item

__all__ = [
    '__version__',
    'ActionKind',
    'ActionPipeline',
    'build_steps',
    'CaseContainer',
    'InvalidServerResponseError',
    'InvalidTransitionError',
    'Toast',
    'CaseEvent',
    'EventBus',
    'DependencyGraph',
    'AssignmentState',
    'Lifecycle',
    'CacheKey',
    'OptionCache',
    'Option',
    'OptionRefresh',
    'OptionResolver',
    'PropagationEngine',
    'PropagationResult',
    'ReferenceStore',
    'ComponentRegistry',
    'Registration',
    'ViewSession',
    'FieldDescriptor',
    'FieldKind',
    'describe_fields',
    'FieldWidget',
    'render_view',
    'get_next_work',
    'select_work_item',
]
