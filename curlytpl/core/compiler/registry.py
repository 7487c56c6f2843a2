from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Set
import structlog

from curlytpl.exceptions import TemplateRenderError

log = structlog.get_logger(__name__)

BlockProcedure = Callable[[Any, Dict[str, Any], List[str]], None]

class CompilerRegistry:
    """Process-scoped state shared by every compile and render of an engine.

    Holds the content-addressed block procedure table and the set of names
    that were classified as globals. Procedures are never evicted; a second
    definition under an existing name keeps the first one.
    """

    def __init__(self):
        self._blocks: Dict[str, BlockProcedure] = {}
        self._globals: Set[str] = set()

    def define(self, name: str, procedure: BlockProcedure) -> BlockProcedure:
        existing = self._blocks.get(name)
        if existing is not None:
            log.debug("block_procedure_already_defined", name=name)
            return existing
        self._blocks[name] = procedure
        log.debug("block_procedure_defined", name=name)
        return procedure

    def call(self, name: str, ctx: Any, variables: Dict[str, Any], out: List[str]) -> None:
        procedure = self.get(name)
        if procedure is None:
            raise TemplateRenderError(f"block procedure '{name}' is not defined")
        procedure(ctx, variables, out)

    def get(self, name: str) -> BlockProcedure | None:
        return self._blocks.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._blocks

    @property
    def block_names(self) -> List[str]:
        return sorted(self._blocks)

    def record_globals(self, names: Iterable[str]) -> None:
        self._globals.update(names)

    @property
    def globals_seen(self) -> FrozenSet[str]:
        return frozenset(self._globals)
