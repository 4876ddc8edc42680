# registry.py
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Type

from .errors import UnknownWorkflowType
from .workflow import Workflow


Constructor = Callable[..., Workflow]


class WorkflowRegistry:
    """
    Maps stable type tags to workflow constructors.

    Populated once at process start (usually by the Gushfile) and handed to
    the client. Stored workflows keep the tag, never a Python import path.
    """

    def __init__(self) -> None:
        self._constructors: Dict[str, Constructor] = {}

    def __contains__(self, tag: str) -> bool:
        return tag in self._constructors

    def __len__(self) -> int:
        return len(self._constructors)

    def add(self, tag: str, constructor: Constructor) -> None:
        if tag in self._constructors and self._constructors[tag] is not constructor:
            raise ValueError(f"Workflow type {tag!r} is already registered")
        self._constructors[tag] = constructor

    def register(self, tag: Optional[str] = None) -> Callable[[Type[Workflow]], Type[Workflow]]:
        """Class decorator. The tag defaults to the class name."""
        def decorator(cls: Type[Workflow]) -> Type[Workflow]:
            self.add(tag or cls.__name__, cls)
            return cls
        return decorator

    def types(self) -> List[str]:
        return sorted(self._constructors)

    def build(self, tag: str, arguments: Sequence[Any] = ()) -> Workflow:
        try:
            constructor = self._constructors[tag]
        except KeyError:
            raise UnknownWorkflowType(
                f"Workflow type {tag!r} is not registered. Known types: {self.types()}"
            ) from None
        flow = constructor(*arguments)
        flow.klass = tag
        flow.arguments = list(arguments)
        return flow
