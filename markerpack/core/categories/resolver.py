"""Category merging and template resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .template import EMPTY_ATTRIBUTES, Attributes
from .tree import Category, RawCategory, join_full_name

# Hook applied to a node's explicit attributes before registration
AttributeBinder = Callable[[Attributes, Optional[str]], Attributes]


@dataclass
class CategoryResolution:
    """Result of resolving the category forest.

    Attributes:
        categories: id -> Category, ids allocated in visit order
        by_full_name: dotted full name -> id
        templates: id -> fully resolved template
        roots: ids of root categories in visit order
    """

    categories: Dict[int, Category] = field(default_factory=dict)
    by_full_name: Dict[str, int] = field(default_factory=dict)
    templates: Dict[int, Attributes] = field(default_factory=dict)
    roots: List[int] = field(default_factory=list)

    def lookup(self, full_name: str) -> Optional[int]:
        """Find a category id by full name (case-insensitive)."""
        return self.by_full_name.get(full_name.strip().lower())

    def template_for(self, category_id: int) -> Attributes:
        return self.templates[category_id]


class CategoryResolver:
    """Merges raw category trees from all files into one forest.

    Walks every tree depth first carrying the dotted prefix and the parent's
    resolved template. The first occurrence of a full name allocates its id,
    stores its metadata and computes its template; later occurrences reuse
    the id and only contribute children.

    Parameters
    ----------
    bind_attributes : AttributeBinder, optional
        Transforms a node's explicit attributes before they are stored
        (e.g. binding texture paths to content handles).
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> resolver = CategoryResolver()
    >>> resolution = resolver.resolve(raw_trees)
    >>> resolution.lookup("tekkit.dailies")
    1
    """

    def __init__(
        self,
        bind_attributes: Optional[AttributeBinder] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.bind_attributes = bind_attributes
        self.logger = logger or logging.getLogger(__name__)

    def resolve(
        self,
        trees: Iterable[RawCategory],
        root_template: Attributes = EMPTY_ATTRIBUTES,
    ) -> CategoryResolution:
        """Resolve the concatenation of all raw category trees.

        Parameters
        ----------
        trees : Iterable[RawCategory]
            Root categories of every file, in file order
        root_template : Attributes
            Template that root categories inherit from

        Returns
        -------
        CategoryResolution
            Category table, full-name lookup and resolved templates
        """
        resolution = CategoryResolution()
        for tree in trees:
            self._visit(tree, "", root_template, None, resolution)

        self.logger.debug(
            "Resolved %d categories (%d roots)",
            len(resolution.categories),
            len(resolution.roots),
        )
        return resolution

    def _visit(
        self,
        node: RawCategory,
        prefix: str,
        parent_template: Attributes,
        parent_id: Optional[int],
        resolution: CategoryResolution,
    ) -> None:
        name = node.name.strip().lower()
        full_name = join_full_name(prefix, name)

        category_id = resolution.by_full_name.get(full_name)
        if category_id is not None:
            existing = resolution.categories[category_id]
            self.logger.debug(
                "Duplicate category '%s' in %s merged into definition from %s",
                full_name,
                node.source,
                existing.source,
            )
            template = resolution.templates[category_id]
        else:
            category_id = len(resolution.categories)
            attributes = node.attributes
            if self.bind_attributes is not None:
                attributes = self.bind_attributes(attributes, node.source)

            resolution.categories[category_id] = Category(
                id=category_id,
                name=name,
                full_name=full_name,
                display_name=node.display_name or node.name,
                is_separator=node.is_separator,
                default_enabled=node.default_enabled,
                parent_id=parent_id,
                attributes=attributes,
                source=node.source,
            )
            resolution.by_full_name[full_name] = category_id
            if parent_id is None:
                resolution.roots.append(category_id)
            else:
                resolution.categories[parent_id].children.append(category_id)

            template = attributes.inherit(parent_template)
            resolution.templates[category_id] = template

        for child in node.children:
            self._visit(child, full_name, template, category_id, resolution)


def resolve_categories(
    trees: Iterable[RawCategory],
    bind_attributes: Optional[AttributeBinder] = None,
) -> CategoryResolution:
    """Convenience function to resolve category trees."""
    return CategoryResolver(bind_attributes=bind_attributes).resolve(trees)
