# src/singularity/adapters/dom.py
"""
In-process event targets: a window, its document and a tree of elements.

Only what the event service needs: listener bookkeeping, synchronous
dispatch and a small ``query_selector`` (tag, #id, .class, compound forms
and the descendant combinator).
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from singularity.core.contracts import CustomEvent

Listener = Callable[[Any], None]

_COMPOUND = re.compile(r"^(?P<tag>[a-zA-Z][\w-]*|\*)?(?P<rest>(?:[#.][\w-]+)*)$")
_PART = re.compile(r"([#.])([\w-]+)")


class EventTarget:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def add_event_listener(self, event_type: str, listener: Listener) -> None:
        listeners = self._listeners.setdefault(event_type, [])
        # the same function added twice is still one listener
        if any(existing is listener for existing in listeners):
            return
        listeners.append(listener)

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_type)
        if not listeners:
            return
        self._listeners[event_type] = [fn for fn in listeners if fn is not listener]
        if not self._listeners[event_type]:
            del self._listeners[event_type]

    def dispatch_event(self, event: CustomEvent | str) -> bool:
        """Call every listener for ``event.type`` in order. Listener errors propagate."""
        if isinstance(event, str):
            event = CustomEvent(event)
        event.target = self
        event.time_stamp = time.monotonic()
        for listener in list(self._listeners.get(event.type, ())):
            listener(event)
        return True

    def listener_count(self, event_type: Optional[str] = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, ()))
        return sum(len(v) for v in self._listeners.values())


Selector = Tuple[Optional[str], Optional[str], Tuple[str, ...]]


def parse_selector(selector: str) -> List[Selector]:
    """'div#main .item' -> [(tag, id, classes), ...]; ValueError if unsupported."""
    parts = selector.split()
    if not parts:
        raise ValueError(f"empty selector {selector!r}")
    out: List[Selector] = []
    for part in parts:
        m = _COMPOUND.match(part)
        if m is None:
            raise ValueError(f"unsupported selector {selector!r}")
        tag = m.group("tag")
        ident = None
        classes = []
        for kind, name in _PART.findall(m.group("rest")):
            if kind == "#":
                ident = name
            else:
                classes.append(name)
        out.append((None if tag in (None, "*") else tag.lower(), ident, tuple(classes)))
    return out


class Element(EventTarget):
    def __init__(self, tag: str, id: Optional[str] = None, classes: Tuple[str, ...] | List[str] = ()):
        super().__init__()
        self.tag = tag.lower()
        self.id = id
        self.classes = tuple(classes)
        self.parent: Optional[Element] = None
        self.children: List[Element] = []

    def append(self, child: "Element") -> "Element":
        child.parent = self
        self.children.append(child)
        return child

    def remove(self, child: "Element") -> None:
        self.children.remove(child)
        child.parent = None

    def iter_descendants(self) -> Iterator["Element"]:
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def matches_compound(self, sel: Selector) -> bool:
        tag, ident, classes = sel
        if tag is not None and tag != self.tag:
            return False
        if ident is not None and ident != self.id:
            return False
        return all(c in self.classes for c in classes)

    def matches(self, chain: List[Selector]) -> bool:
        if not self.matches_compound(chain[-1]):
            return False
        remaining = chain[:-1]
        node = self.parent
        while remaining and node is not None:
            if node.matches_compound(remaining[-1]):
                remaining = remaining[:-1]
            node = node.parent
        return not remaining

    def __repr__(self) -> str:
        ident = f"#{self.id}" if self.id else ""
        cls = "".join(f".{c}" for c in self.classes)
        return f"<{self.tag}{ident}{cls}>"


class Document(EventTarget):
    def __init__(self) -> None:
        super().__init__()
        self.document_element = Element("html")
        self.body = self.document_element.append(Element("body"))

    def query_selector(self, selector: str) -> Optional[Element]:
        chain = parse_selector(selector)
        root = self.document_element
        if root.matches(chain):
            return root
        for el in root.iter_descendants():
            if el.matches(chain):
                return el
        return None


class Window(EventTarget):
    def __init__(self, document: Optional[Document] = None) -> None:
        super().__init__()
        self.document = document or Document()


@dataclass
class Environment:
    """A window/document pair: what a target resolver looks things up in."""
    window: Window = field(default_factory=Window)

    @property
    def document(self) -> Document:
        return self.window.document
