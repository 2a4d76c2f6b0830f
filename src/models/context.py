"""
Context and registry models

Type-safe structures describing the target contexts of one maybe(...)
annotation, the shapes an annotated item can take, and the per-context
rewritten copies.
"""

import ast
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple, Union


class ItemShape(Enum):
    """
    Syntactic shapes an annotated item can take

    Python has a single class statement; the trait / impl split follows the
    class bases so the log and error messages speak the author's language.
    """
    FUNCTION = "function"              # def / async def
    TRAIT = "trait"                    # class with Protocol / ABC bases
    TRAIT_IMPL = "trait implementation"  # class with other bases
    INHERENT_IMPL = "inherent implementation"  # class without bases
    MODULE = "module"                  # with maybe(...): block


@dataclass(frozen=True)
class Context:
    """
    One named target variant of the annotated item

    Attributes:
        name: Context name, unique within its registry (e.g., "sync", "async")
        predicate: Gate expression attached to the copy, passed through
                   verbatim; None emits the copy ungated
        is_async: Whether the copy keeps (and adds) async markers
        renames: Context-local identifier renames (logical -> emitted)
        decorators: Extra decorators appended to the copy's top-level item
        drop_decorators: Decorator names removed from the copy's top-level item

    Example:
        Context(name="sync", predicate=<ast for "not ASYNC">, is_async=False,
                renames={"fetch": "fetch_sync"})
    """
    name: str
    predicate: Optional[ast.expr] = None
    is_async: bool = False
    renames: Mapping[str, str] = field(default_factory=dict)
    decorators: Tuple[ast.expr, ...] = ()
    drop_decorators: FrozenSet[str] = frozenset()

    def predicate_source(self) -> Optional[str]:
        """Predicate rendered back to Python source (None when ungated)"""
        if self.predicate is None:
            return None
        return ast.unparse(self.predicate)


# A global rename is either a template string ("{name}_{context}") applied to
# every context, or a per-context mapping {context name: identifier}.
GlobalRename = Union[str, Dict[str, str]]


@dataclass(frozen=True)
class ContextRegistry:
    """
    Ordered set of contexts declared by one maybe(...) annotation

    Contexts keep their declaration order, which is also the emission order.
    Construction goes through lib.registry.registry_parse(), which enforces
    the invariants (non-empty, unique names).

    Attributes:
        contexts: Contexts in declaration order
        global_renames: Default renames shared by every context
        disable: Emit the item unchanged instead of expanding it
    """
    contexts: Tuple[Context, ...]
    global_renames: Mapping[str, GlobalRename] = field(default_factory=dict)
    disable: bool = False

    def __iter__(self) -> Iterator[Context]:
        return iter(self.contexts)

    def __len__(self) -> int:
        return len(self.contexts)

    def names(self) -> List[str]:
        """Context names in declaration order"""
        return [ctx.name for ctx in self.contexts]

    def get(self, name: str) -> Optional[Context]:
        """Context by name, or None"""
        for ctx in self.contexts:
            if ctx.name == name:
                return ctx
        return None


@dataclass
class RewrittenCopy:
    """
    One context's rewritten copy of the annotated item

    Attributes:
        context: Context the copy was produced for
        shape: Shape of the template item
        statements: Rewritten statements; a single def/class, or the whole
                    body of a maybe-block
    """
    context: Context
    shape: ItemShape
    statements: List[ast.stmt]


@dataclass
class ExpansionResult:
    """
    Result of expanding one template module

    Attributes:
        source: Generated module text
        items_expanded: Number of annotated items found and expanded
        copies_emitted: Total number of gated copies written
    """
    source: str
    items_expanded: int = 0
    copies_emitted: int = 0
