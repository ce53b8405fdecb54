"""
Flat reference storage for case content.

ReferenceStore holds the current value of every field reference of one view
in a flat dict keyed by dotted paths, the same way it is displayed. The
server expects nested content, so to_content() rebuilds the nested shape at
the boundary (refresh, submit, save).

Reference syntax:
    Customer.Name            -> {"Customer": {"Name": ...}}
    Items(2).Price           -> {"Items": [{}, {"Price": ...}]}   (1-based page list)
    Addresses(Home).City     -> {"Addresses": {"Home": {"City": ...}}}  (page group)
"""

import copy
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from caseform.view_model import expand_relative_path

logger = logging.getLogger(__name__)

_SEGMENT_RE = re.compile(r"^(?P<name>[^()]*)(?:\((?P<subscript>[^()]*)\))?$")


class RepeatType:
    """Kinds of repeating structures addressed by list actions."""
    GROUP = "Group"
    LIST = "List"


@dataclass(frozen=True)
class PathSegment:
    name: str
    subscript: Optional[Union[int, str]] = None

    @property
    def is_list_item(self) -> bool:
        return isinstance(self.subscript, int)


def parse_reference(reference: str) -> List[PathSegment]:
    """Split a reference into segments.

    Raises:
        ValueError: if a segment is malformed (unbalanced parentheses).
    """
    reference = expand_relative_path(reference) or ""
    segments = []
    for part in reference.split("."):
        if not part:
            continue
        match = _SEGMENT_RE.match(part)
        if not match:
            raise ValueError(f"Malformed reference segment {part!r} in {reference!r}")
        subscript = match.group("subscript")
        if subscript is not None and subscript.isdigit():
            subscript = int(subscript)
        segments.append(PathSegment(match.group("name"), subscript))
    return segments


def _child(container: Any, segment: PathSegment, create: bool) -> Any:
    """Step into one segment, creating missing containers when asked."""
    if not isinstance(container, dict):
        return None
    if segment.subscript is None:
        if segment.name not in container and create:
            container[segment.name] = {}
        return container.get(segment.name)

    if segment.is_list_item:
        items = container.get(segment.name)
        if not isinstance(items, list):
            if not create:
                return None
            items = container[segment.name] = []
        position = segment.subscript - 1
        if position < 0:
            return None
        while create and len(items) <= position:
            items.append({})
        return items[position] if position < len(items) else None

    groups = container.get(segment.name)
    if not isinstance(groups, dict):
        if not create:
            return None
        groups = container[segment.name] = {}
    if segment.subscript not in groups and create:
        groups[segment.subscript] = {}
    return groups.get(segment.subscript)


def write_path(content: Dict[str, Any], reference: str, value: Any) -> None:
    """Write a value into nested content at a reference, creating parents."""
    segments = parse_reference(reference)
    if not segments:
        return
    container = content
    for segment in segments[:-1]:
        container = _child(container, segment, create=True)
        if not isinstance(container, dict):
            logger.debug(f"Cannot write {reference!r}: {segment.name!r} is not a page")
            return

    last = segments[-1]
    if last.subscript is None:
        container[last.name] = value
    elif last.is_list_item:
        items = container.setdefault(last.name, [])
        if not isinstance(items, list):
            return
        position = last.subscript - 1
        if position < 0:
            return
        while len(items) <= position:
            items.append(None)
        items[position] = value
    else:
        groups = container.setdefault(last.name, {})
        if isinstance(groups, dict):
            groups[last.subscript] = value


def read_path(content: Any, reference: str, default: Any = None) -> Any:
    """Read a value from nested content; missing paths return default."""
    try:
        segments = parse_reference(reference)
    except ValueError:
        return default
    node = content
    for segment in segments:
        node = _child(node, segment, create=False)
        if node is None:
            return default
    return node


def blank_row(template: Any) -> Any:
    """Build an empty row shaped like template (nested pages kept, leaves blanked).

    pxObjClass is copied so the server can instantiate the new row.
    """
    if isinstance(template, dict):
        return {
            key: value if key == "pxObjClass" else blank_row(value)
            for key, value in template.items()
        }
    if isinstance(template, list):
        return [blank_row(template[0])] if template else []
    return ""


class ReferenceStore:
    """
    Flat reference → value map for one view.

    Single source of truth posted back to the server. Created fresh for every
    loaded view and never reused across views.

    Example:
        store = ReferenceStore({"Customer.Name": "Ada"})
        store.set("Items(1).Price", 10)
        store.to_content()
        # {"Customer": {"Name": "Ada"}, "Items": [{"Price": 10}]}
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        for reference, value in (values or {}).items():
            self.set(reference, value)

    @staticmethod
    def _key(reference: str) -> str:
        return expand_relative_path(reference) or ""

    def get(self, reference: str, default: Any = None) -> Any:
        return self._values.get(self._key(reference), default)

    def set(self, reference: str, value: Any) -> None:
        key = self._key(reference)
        if not key:
            return
        self._values[key] = value

    def has(self, reference: str) -> bool:
        return self._key(reference) in self._values

    def delete(self, reference: str) -> None:
        self._values.pop(self._key(reference), None)

    def __contains__(self, reference: str) -> bool:
        return self.has(reference)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(self._values.items())

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def read(self, reference: str, default: Any = None) -> Any:
        """Read a reference, falling back to the nested content shape.

        Lets callers address a whole page (``Customer``) or list
        (``Items``) even though only leaves are stored flat.
        """
        key = self._key(reference)
        if key in self._values:
            return self._values[key]
        return read_path(self.to_content(), key, default)

    def to_content(self) -> Dict[str, Any]:
        """Serialize into the server's nested content shape."""
        content: Dict[str, Any] = {}
        for reference, value in self._values.items():
            try:
                write_path(content, reference, copy.deepcopy(value))
            except ValueError as e:
                logger.debug(f"Skipping unserializable reference {reference!r}: {e}")
        return content


def get_repeat(content: Dict[str, Any], reference: str, repeat_type: str) -> Union[List[Any], Dict[str, Any]]:
    """Locate (creating when missing) the page list or page group at reference."""
    segments = parse_reference(reference)
    if not segments:
        raise ValueError(f"Empty repeat reference {reference!r}")
    container = content
    for segment in segments[:-1]:
        container = _child(container, segment, create=True)
        if not isinstance(container, dict):
            raise ValueError(f"Repeat reference {reference!r} crosses a non-page value")

    last = segments[-1]
    if last.subscript is not None:
        return _child(container, last, create=True)

    expected = list if repeat_type == RepeatType.LIST else dict
    target = container.get(last.name)
    if not isinstance(target, expected):
        target = container[last.name] = expected()
    return target
