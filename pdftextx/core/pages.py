"""Flatten the page tree into an ordered list of pages."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import PDFTextXError, StructuralCycleError
from .objects import PdfRef, PdfStream, as_number

if TYPE_CHECKING:
    from .document import Document

__all__ = ["Page", "PageTreeWalker", "INHERITABLE_KEYS", "DEFAULT_MEDIA_BOX"]

_LOGGER = logging.getLogger(__name__)

INHERITABLE_KEYS = ("Resources", "MediaBox", "CropBox", "Rotate")
DEFAULT_MEDIA_BOX = (0.0, 0.0, 612.0, 792.0)


@dataclass(slots=True)
class Page:
    """A leaf of the page tree with its inherited attributes filled in."""

    index: int
    ref: PdfRef | None
    dictionary: dict[str, Any]
    resources: dict[str, Any] = field(default_factory=dict)
    media_box: tuple[float, float, float, float] = DEFAULT_MEDIA_BOX
    crop_box: tuple[float, float, float, float] | None = None
    rotate: int = 0
    user_unit: float = 1.0

    @property
    def number(self) -> int:
        return self.index + 1

    @property
    def width(self) -> float:
        x0, _, x1, _ = self.crop_box or self.media_box
        return abs(x1 - x0) * self.user_unit

    @property
    def height(self) -> float:
        _, y0, _, y1 = self.crop_box or self.media_box
        return abs(y1 - y0) * self.user_unit

    def content_streams(self, document: Document) -> list[PdfStream]:
        """The page's content streams in drawing order."""

        contents = document.resolve(self.dictionary.get("Contents"))
        if isinstance(contents, PdfStream):
            return [contents]
        streams: list[PdfStream] = []
        if isinstance(contents, list):
            for item in contents:
                candidate = document.resolve(item)
                if isinstance(candidate, PdfStream):
                    streams.append(candidate)
        return streams


class PageTreeWalker:
    """Depth-first walk of ``/Pages`` with attribute inheritance.

    Cycles are cut at the node that repeats: the offending branch is dropped,
    a :class:`StructuralCycleError` is logged and kept in :attr:`issues`, and
    the walk continues with the remaining siblings.
    """

    def __init__(self, document: Document) -> None:
        self.document = document
        self.issues: list[PDFTextXError] = []

    def walk(self) -> list[Page]:
        document = self.document
        root_value = document.catalog.get("Pages")
        root = document.resolve(root_value)
        pages: list[Page] = []
        if isinstance(root, dict):
            pages = self._walk_from(root_value, root)
        else:
            _LOGGER.warning("Catalog has no usable /Pages entry")
        if not pages and not self.issues and not self._declared_empty(root):
            pages = self._scan_for_pages()
        return pages

    def _declared_empty(self, root: Any) -> bool:
        return isinstance(root, dict) and self.document.resolve(root.get("Kids")) == []

    def _walk_from(self, root_value: Any, root: dict[str, Any]) -> list[Page]:
        document = self.document
        pages: list[Page] = []
        visited: set[Any] = set()
        root_ref = root_value if isinstance(root_value, PdfRef) else None
        # Stack of (ref, node, inherited attributes); children are pushed in
        # reverse so they pop in document order.
        stack: list[tuple[PdfRef | None, Any, dict[str, Any]]] = [(root_ref, root, {})]
        while stack:
            ref, node, inherited = stack.pop()
            if not isinstance(node, dict):
                _LOGGER.debug("Skipping page tree node %s that is not a dictionary", ref)
                continue
            key = ref if ref is not None else id(node)
            if key in visited:
                issue = StructuralCycleError(f"Page tree node {ref or 'direct'} is reachable twice", ref=ref)
                _LOGGER.warning("%s; dropping the branch", issue)
                self.issues.append(issue)
                continue
            visited.add(key)

            attributes = dict(inherited)
            for name in INHERITABLE_KEYS:
                if name in node and node[name] is not None:
                    attributes[name] = node[name]

            kids = document.resolve(node.get("Kids"))
            node_type = node.get("Type")
            if node_type == "Page" or (node_type != "Pages" and not isinstance(kids, list)):
                pages.append(self._make_page(len(pages), ref, node, attributes))
                continue
            if not isinstance(kids, list):
                _LOGGER.debug("Intermediate page node %s has no /Kids", ref)
                continue
            for kid in reversed(kids):
                kid_ref = kid if isinstance(kid, PdfRef) else None
                stack.append((kid_ref, document.resolve(kid), attributes))
        return pages

    def _scan_for_pages(self) -> list[Page]:
        pages: list[Page] = []
        for ref, value in self.document.objects():
            if isinstance(value, dict) and value.get("Type") == "Page":
                pages.append(self._make_page(len(pages), ref, value, self._inherit_by_parent(value)))
        if pages:
            _LOGGER.warning("Page tree unusable; recovered %d pages by scanning objects", len(pages))
        return pages

    def _inherit_by_parent(self, page: dict[str, Any]) -> dict[str, Any]:
        attributes: dict[str, Any] = {}
        visited: set[int] = set()
        current: Any = page
        while isinstance(current, dict) and id(current) not in visited:
            visited.add(id(current))
            for name in INHERITABLE_KEYS:
                if name not in attributes and current.get(name) is not None:
                    attributes[name] = current[name]
            current = self.document.resolve(current.get("Parent"))
        return attributes

    def _make_page(
        self, index: int, ref: PdfRef | None, node: dict[str, Any], attributes: dict[str, Any]
    ) -> Page:
        document = self.document
        resources = document.resolve(attributes.get("Resources"))
        media_box = self._box(attributes.get("MediaBox")) or DEFAULT_MEDIA_BOX
        rotate = as_number(document.resolve(attributes.get("Rotate")), 0.0) or 0.0
        user_unit = as_number(document.resolve(node.get("UserUnit")), 1.0) or 1.0
        return Page(
            index=index,
            ref=ref,
            dictionary=node,
            resources=resources if isinstance(resources, dict) else {},
            media_box=media_box,
            crop_box=self._box(attributes.get("CropBox")),
            rotate=int(rotate) % 360,
            user_unit=user_unit,
        )

    def _box(self, value: Any) -> tuple[float, float, float, float] | None:
        box = self.document.resolve(value)
        if not isinstance(box, list) or len(box) != 4:
            return None
        numbers = [as_number(self.document.resolve(item)) for item in box]
        if any(number is None for number in numbers):
            return None
        x0, y0, x1, y1 = numbers  # type: ignore[misc]
        return (min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))
