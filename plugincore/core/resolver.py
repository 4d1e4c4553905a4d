"""
依赖解析

根据 load_after / load_before 声明计算每个插件的前驱，并给出拓扑顺序
"""

from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..exceptions import PluginCycleError
from ..logger import logger
from ..utils.constants import CyclePolicy
from ..utils.types import PluginName
from .plugins import PluginDescriptor

_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2

Lookup = Callable[[PluginName], Optional[PluginDescriptor]]


class DependencyResolver:
    """加载顺序解析器

    前驱 = 插件自身 load_after 中能解析到的插件
         + 其他候选插件中 load_before 指向本插件的插件。
    无法解析的名称直接忽略。按发现顺序做深度优先遍历，先访问前驱，再输出节点。
    """

    def __init__(self, cycle_policy: CyclePolicy = CyclePolicy.TOLERATE):
        self.cycle_policy = cycle_policy

    def resolve_load_dependencies(
        self,
        candidates: Sequence[PluginDescriptor],
        lookup: Optional[Lookup] = None,
    ) -> Dict[int, List[PluginDescriptor]]:
        """计算每个候选插件的前驱列表

        Args:
            candidates: 候选插件
            lookup: 按名称查找已知插件，缺省时只在候选插件中查找

        Returns:
            id(插件) -> 前驱列表
        """
        by_name = {p.name: p for p in candidates}
        if lookup is None:
            lookup = by_name.get

        predecessors: Dict[int, List[PluginDescriptor]] = {id(p): [] for p in candidates}

        def _add(node: PluginDescriptor, pred: PluginDescriptor) -> None:
            preds = predecessors[id(node)]
            if pred is not node and not any(p is pred for p in preds):
                preds.append(pred)

        for plugin in candidates:
            for name in plugin.load_after_names:
                target = lookup(name)
                if target is not None and id(target) in predecessors:
                    _add(plugin, target)

        for plugin in candidates:
            for name in plugin.load_before_names:
                target = by_name.get(name)
                if target is not None:
                    _add(target, plugin)

        return predecessors

    def sort(
        self,
        candidates: Sequence[PluginDescriptor],
        lookup: Optional[Lookup] = None,
    ) -> List[PluginDescriptor]:
        """返回满足全部可解析顺序约束的插件列表

        Raises:
            PluginCycleError: 严格模式下检测到环时
        """
        predecessors = self.resolve_load_dependencies(candidates, lookup)
        marks: Dict[int, int] = {id(p): _UNVISITED for p in candidates}
        ordered: List[PluginDescriptor] = []

        for root in candidates:
            if marks[id(root)] != _UNVISITED:
                continue
            marks[id(root)] = _IN_PROGRESS
            stack: List[Tuple[PluginDescriptor, Iterator[PluginDescriptor]]] = [
                (root, iter(predecessors[id(root)]))
            ]
            while stack:
                node, preds = stack[-1]
                pred = next(preds, None)
                if pred is None:
                    stack.pop()
                    marks[id(node)] = _DONE
                    ordered.append(node)
                    continue

                mark = marks[id(pred)]
                if mark == _UNVISITED:
                    marks[id(pred)] = _IN_PROGRESS
                    stack.append((pred, iter(predecessors[id(pred)])))
                elif mark == _IN_PROGRESS:
                    self._on_cycle([entry[0] for entry in stack], pred)

        return ordered

    def _on_cycle(self, path: List[PluginDescriptor], repeated: PluginDescriptor) -> None:
        start = next(i for i, p in enumerate(path) if p is repeated)
        cycle = [p.name for p in path[start:]] + [repeated.name]
        chain = " -> ".join(reversed(cycle))
        if self.cycle_policy is CyclePolicy.STRICT:
            raise PluginCycleError(f"插件加载顺序存在环: {chain}", cycle)
        logger.warning(f"插件加载顺序存在环，将按首次访问顺序加载: {chain}")
