"""
Option list resolution for list-bearing fields.

A field's first control mode names where its options come from:
- locallist: static ``options`` carried by the view
- pageList: rows of a page list inside the case content
- datapage: a remote data page, optionally parameterized by other fields

resolve() is the hook behind a widget's set_value(OptionRefresh): given
parameters it returns an option list or an empty list. Missing parameters
and fetch failures both resolve to [] and are never surfaced to the user.
"""

import html
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from caseform.option_cache import CacheKey, OptionCache
from caseform.reference_store import ReferenceStore
from caseform.view_model import ControlMode, DataPageParam, FieldDescriptor, ListSource, expand_relative_path

logger = logging.getLogger(__name__)

OptionFetcher = Callable[[str, Dict[str, Any]], Awaitable[Any]]


def decode_html(value: Any) -> Any:
    """Undo the HTML escaping the server applies to saved values."""
    if isinstance(value, str) and "&" in value:
        return html.unescape(value)
    return value


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


@dataclass(frozen=True)
class Option:
    label: Any
    value: Any


@dataclass(frozen=True)
class OptionRefresh:
    """Request to re-fetch a field's options after an upstream change.

    param_key names the data page parameter fed by the changed field and
    param_value is its new value. params are the lookup's declared parameters.
    """
    param_key: Optional[str]
    param_value: Any
    params: Tuple[DataPageParam, ...] = ()
    refresh: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'refresh': self.refresh,
            'paramKey': self.param_key,
            'paramValue': self.param_value,
            'params': [p.name for p in self.params],
        }


def resolve_params(
    mode: ControlMode,
    store: ReferenceStore,
    refresh: Optional[OptionRefresh] = None,
) -> Optional[Dict[str, Any]]:
    """Resolve the live parameter set of a data page lookup.

    Each parameter takes the store value at its value reference, else the
    reference's last saved value, else its static value. refresh.param_key is
    then overridden with refresh.param_value.

    Returns:
        The parameters, or None if any parameter has no value.
    """
    params: Dict[str, Any] = {}
    for param in mode.data_page_params:
        if not param.name:
            continue
        if param.value_reference is not None:
            value = store.get(param.value_reference.reference) if param.value_reference.reference else None
            if _is_missing(value):
                value = param.value_reference.last_saved_value
        else:
            value = param.value
        params[param.name] = decode_html(value)

    if refresh is not None and refresh.param_key:
        params[refresh.param_key] = refresh.param_value

    missing = [name for name, value in params.items() if _is_missing(value)]
    if missing:
        logger.debug(f"Data page {mode.data_page_id!r} missing parameter(s): {missing}")
        return None
    return params


def rows_to_options(data: Any, value_property: Optional[str], prompt_property: Optional[str]) -> List[Option]:
    """Map data page rows (``pxResults``) to options; rows without a value are dropped."""
    rows = data.get('pxResults') if isinstance(data, Mapping) else None
    if not isinstance(rows, list):
        return []
    value_key = expand_relative_path(value_property)
    prompt_key = expand_relative_path(prompt_property) or value_key
    options = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        value = row.get(value_key)
        if value:
            options.append(Option(label=row.get(prompt_key), value=value))
    return options


def options_from_local_list(mode: ControlMode) -> List[Option]:
    return [Option(label=label, value=key) for key, label in mode.options]


def options_from_page_list(mode: ControlMode, work_object: Optional[Mapping]) -> List[Option]:
    """Options drawn from a page list of the case content."""
    if not (mode.clipboard_page_id and mode.clipboard_page_prompt and mode.clipboard_page_value):
        return []
    content = work_object.get('content') if isinstance(work_object, Mapping) else None
    rows = content.get(expand_relative_path(mode.clipboard_page_id)) if isinstance(content, Mapping) else None
    if not isinstance(rows, list):
        return []
    prompt_key = expand_relative_path(mode.clipboard_page_prompt)
    value_key = expand_relative_path(mode.clipboard_page_value)
    return [
        Option(label=row.get(prompt_key), value=row.get(value_key))
        for row in rows
        if isinstance(row, Mapping)
    ]


class OptionResolver:
    """Resolves option lists for fields of one view.

    Args:
        store: The view's ReferenceStore (parameter values)
        fetch: Async data page fetcher, e.g. CaseService.fetch_options
        work_object: Callable returning the current case (page list sources)
        cache: Optional OptionCache shared across widgets of the view
    """

    def __init__(
        self,
        store: ReferenceStore,
        fetch: Optional[OptionFetcher] = None,
        work_object: Optional[Callable[[], Optional[Mapping]]] = None,
        cache: Optional[OptionCache] = None,
    ):
        self.store = store
        self._fetch = fetch
        self._work_object = work_object
        self._cache = cache

    async def resolve(self, field: FieldDescriptor, refresh: Optional[OptionRefresh] = None) -> List[Option]:
        """Option list for field; never raises."""
        mode = field.control.first_mode
        if mode is None:
            return []

        if refresh is None and mode.data_page_params and resolve_params(mode, self.store) is None:
            # Dependency not satisfied yet
            return options_from_local_list(mode)

        if mode.list_source == ListSource.DATAPAGE or (refresh is not None and mode.data_page_id):
            return await self.from_data_page(mode, refresh)
        if mode.list_source == ListSource.PAGELIST:
            work_object = self._work_object() if self._work_object else None
            return options_from_page_list(mode, work_object)
        if mode.list_source == ListSource.LOCAL_LIST:
            return options_from_local_list(mode)
        return []

    async def from_data_page(self, mode: ControlMode, refresh: Optional[OptionRefresh] = None) -> List[Option]:
        if not mode.data_page_id or self._fetch is None:
            return []
        params = resolve_params(mode, self.store, refresh)
        if params is None:
            return []

        try:
            if self._cache is not None:
                data = await self._cache.get_or_fetch(
                    CacheKey.for_lookup(mode.data_page_id, params),
                    lambda: self._fetch(mode.data_page_id, params),
                )
            else:
                data = await self._fetch(mode.data_page_id, params)
        except Exception as e:
            logger.warning(f"Data page {mode.data_page_id!r} fetch failed: {e}")
            return []

        return rows_to_options(data, mode.data_page_value, mode.data_page_prompt)
