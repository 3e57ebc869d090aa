"""
Parametric Dimension Solver
Drives wall lengths from literal targets, expressions over named parameters,
equality groups and dimension chains.

Order of application:
1. parameters (context values, then literals, then expressions in
   dependency order)
2. dimension constraints
3. equality groups
4. dimension chains

Walls are always resized from their fixed start point.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Sequence

from ..config import SolverConfig, default_rules
from ..models import (
    DimensionChain,
    DimensionConstraint,
    Diagnostic,
    Parameter,
    Point,
    Severity,
    Wall,
    copy_wall,
    filter_valid_walls,
)
from .expression import ExpressionError, evaluate_expression, extract_dependencies

logger = logging.getLogger(__name__)


@dataclass
class SolveResult:
    """Solved walls, resolved parameter table and diagnostics."""
    walls: List[Wall]
    parameter_values: Dict[str, float]
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.is_error]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]


def clamp_length(value: float, min_length: Optional[float] = None, max_length: Optional[float] = None) -> float:
    result = value
    if min_length is not None and math.isfinite(min_length):
        result = max(result, min_length)
    if max_length is not None and math.isfinite(max_length):
        result = min(result, max_length)
    return result


def set_wall_length(wall: Wall, target: float, min_length: float = 1e-6) -> Wall:
    """
    Resize a wall along its direction, keeping the start point.

    Targets that are not finite or not above ``min_length`` leave the wall
    as is. A zero-length wall is extended along +x.
    """
    if target is None or not math.isfinite(target) or target <= min_length:
        return wall

    current = wall.length
    if current <= 1e-9:
        return copy_wall(wall, end=Point(wall.start.x + target, wall.start.y))

    ux = (wall.end.x - wall.start.x) / current
    uy = (wall.end.y - wall.start.y) / current
    return copy_wall(wall, end=Point(wall.start.x + ux * target, wall.start.y + uy * target))


class ParametricSolver:
    """
    One solve over a wall snapshot.
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or default_rules().solver

    def solve(
        self,
        walls: Sequence[Wall],
        dimensions: Sequence[DimensionConstraint] = (),
        chains: Sequence[DimensionChain] = (),
        parameters: Sequence[Parameter] = (),
        context_values: Optional[Mapping[str, float]] = None
    ) -> SolveResult:
        """
        Solve dimensions, equality groups and chains.

        Args:
            walls: Wall snapshot; never modified
            dimensions: Dimension constraints
            chains: Dimension chains
            parameters: Named parameters
            context_values: Values seeded before any parameter

        Returns:
            SolveResult
        """
        diagnostics: List[Diagnostic] = []
        finite, dropped = filter_valid_walls(list(walls))
        if dropped:
            logger.warning(f"Ignoring {len(dropped)} invalid wall(s) in parametric solve: {dropped}")

        # Insertion order keeps the output wall order stable
        wall_map: Dict[str, Wall] = {w.id: copy_wall(w) for w in finite}

        values = self.resolve_parameters(parameters, context_values or {}, diagnostics)
        targets = self._apply_dimensions(dimensions, wall_map, values, diagnostics)
        self._apply_equality_groups(dimensions, wall_map, targets, diagnostics)
        self._apply_chains(chains, wall_map, diagnostics)

        errors = len([d for d in diagnostics if d.is_error])
        logger.info(f"Parametric solve: {len(dimensions)} dimensions, {len(chains)} chains, "
                    f"{len(values)} values, {errors} errors")
        return SolveResult(walls=list(wall_map.values()), parameter_values=values, diagnostics=diagnostics)

    # -------------------------------------------------------------------------
    # Parameters
    # -------------------------------------------------------------------------

    def resolve_parameters(
        self,
        parameters: Sequence[Parameter],
        context_values: Mapping[str, float],
        diagnostics: List[Diagnostic]
    ) -> Dict[str, float]:
        """
        Resolve parameter values by depth-first visitation.

        A parameter reached again while it is still being resolved is part of
        a cycle; it gets an error diagnostic and stays unresolved.
        """
        values: Dict[str, float] = dict(context_values)
        by_id = {p.id: p for p in parameters}

        for parameter in parameters:
            if parameter.value is not None and math.isfinite(parameter.value):
                values[parameter.id] = float(parameter.value)

        visiting: List[str] = []
        visited = set()
        in_cycle = set()

        def visit(parameter_id: str) -> None:
            if parameter_id in visited:
                return
            if parameter_id in visiting:
                cycle = visiting[visiting.index(parameter_id):] + [parameter_id]
                in_cycle.update(cycle)
                diagnostics.append(Diagnostic(
                    Severity.ERROR, parameter_id,
                    f"Cyclic parameter dependency detected: {' -> '.join(cycle)}",
                    code="parameter_cycle",
                ))
                return

            parameter = by_id.get(parameter_id)
            if parameter is None:
                return
            visiting.append(parameter_id)

            if parameter.expression:
                for dependency in extract_dependencies(parameter.expression):
                    if dependency in by_id:
                        visit(dependency)
                if parameter_id in in_cycle:
                    logger.debug(f"Parameter {parameter_id} left unresolved (cycle)")
                else:
                    try:
                        values[parameter_id] = evaluate_expression(parameter.expression, values)
                    except ExpressionError as e:
                        diagnostics.append(Diagnostic(
                            Severity.ERROR, parameter_id, f"Expression error: {e}", code="expression_error"
                        ))

            visiting.pop()
            visited.add(parameter_id)

        for parameter in parameters:
            visit(parameter.id)

        return values

    # -------------------------------------------------------------------------
    # Constraints
    # -------------------------------------------------------------------------

    def _apply_dimensions(
        self,
        dimensions: Sequence[DimensionConstraint],
        wall_map: Dict[str, Wall],
        values: Dict[str, float],
        diagnostics: List[Diagnostic]
    ) -> Dict[str, float]:
        targets: Dict[str, float] = {}

        for dimension in dimensions:
            if not dimension.enabled:
                continue
            wall = wall_map.get(dimension.wall_id)
            if wall is None:
                diagnostics.append(Diagnostic(
                    Severity.ERROR, dimension.id,
                    f"Wall {dimension.wall_id} not found for dimension constraint",
                    code="missing_wall",
                ))
                continue

            target = dimension.target_length
            if dimension.expression:
                lengths = {wall_id: w.length for wall_id, w in wall_map.items()}
                try:
                    target = evaluate_expression(dimension.expression, values, lengths)
                except ExpressionError as e:
                    diagnostics.append(Diagnostic(
                        Severity.ERROR, dimension.id, f"Expression error: {e}", code="expression_error"
                    ))
                    continue

            if target is None or not math.isfinite(target):
                continue

            clamped = clamp_length(target, dimension.min_length, dimension.max_length)
            targets[dimension.wall_id] = clamped
            wall_map[dimension.wall_id] = set_wall_length(wall, clamped, self.config.min_length)
            logger.debug(f"Dimension {dimension.id}: wall {dimension.wall_id} -> {clamped:.3f}")

        return targets

    def _apply_equality_groups(
        self,
        dimensions: Sequence[DimensionConstraint],
        wall_map: Dict[str, Wall],
        targets: Dict[str, float],
        diagnostics: List[Diagnostic]
    ) -> None:
        groups: Dict[str, List[str]] = {}
        for dimension in dimensions:
            if dimension.equality_group_id and dimension.enabled:
                groups.setdefault(dimension.equality_group_id, []).append(dimension.wall_id)

        for group_id, wall_ids in groups.items():
            for wall_id in wall_ids:
                if wall_id not in wall_map:
                    diagnostics.append(Diagnostic(
                        Severity.ERROR, group_id,
                        f"Wall {wall_id} not found for equality group",
                        code="missing_wall",
                    ))

            lengths = []
            for wall_id in wall_ids:
                if wall_id in targets:
                    lengths.append(targets[wall_id])
                elif wall_id in wall_map:
                    lengths.append(wall_map[wall_id].length)
            if not lengths:
                continue

            average = sum(lengths) / len(lengths)
            for wall_id in wall_ids:
                if wall_id in wall_map:
                    wall_map[wall_id] = set_wall_length(wall_map[wall_id], average, self.config.min_length)

            diagnostics.append(Diagnostic(
                Severity.WARNING, group_id,
                f"Applied equality group to {len(wall_ids)} wall(s)",
                code="equality_group",
            ))

    def _apply_chains(
        self,
        chains: Sequence[DimensionChain],
        wall_map: Dict[str, Wall],
        diagnostics: List[Diagnostic]
    ) -> None:
        for chain in chains:
            if not chain.enabled or not chain.wall_ids:
                continue
            members = []
            for wall_id in chain.wall_ids:
                if wall_id in wall_map:
                    members.append(wall_id)
                else:
                    diagnostics.append(Diagnostic(
                        Severity.ERROR, chain.id,
                        f"Wall {wall_id} not found for dimension chain",
                        code="missing_wall",
                    ))
            if not members:
                continue

            lengths = [wall_map[wall_id].length for wall_id in members]
            current_total = sum(lengths)
            has_total = chain.total_length is not None and math.isfinite(chain.total_length)

            if chain.equal_segments:
                total = chain.total_length if has_total else current_total
                segment = clamp_length(total / len(members), chain.min_segment_length, chain.max_segment_length)
                for wall_id in members:
                    wall_map[wall_id] = set_wall_length(wall_map[wall_id], segment, self.config.min_length)
                continue

            if has_total and current_total > 1e-9:
                scale = chain.total_length / current_total
                for wall_id, length in zip(members, lengths):
                    next_length = clamp_length(length * scale, chain.min_segment_length, chain.max_segment_length)
                    wall_map[wall_id] = set_wall_length(wall_map[wall_id], next_length, self.config.min_length)
                continue

            diagnostics.append(Diagnostic(
                Severity.WARNING, chain.id,
                "Dimension chain has no actionable total length or equal segment rule",
                code="inactive_chain",
            ))


def solve(
    walls: Sequence[Wall],
    dimensions: Sequence[DimensionConstraint] = (),
    chains: Sequence[DimensionChain] = (),
    parameters: Sequence[Parameter] = (),
    context_values: Optional[Mapping[str, float]] = None,
    config: Optional[SolverConfig] = None
) -> SolveResult:
    """
    Convenience function for a one-off parametric solve.

    Returns:
        SolveResult(walls, parameter_values, diagnostics)
    """
    return ParametricSolver(config).solve(walls, dimensions, chains, parameters, context_values)


class ParametricModel:
    """
    Registry of dimensions, chains and parameters for one document.

    Every ``solve`` call works on the registry's current contents and
    returns fresh snapshots.
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        self.solver = ParametricSolver(config)
        self.dimensions: Dict[str, DimensionConstraint] = {}
        self.chains: Dict[str, DimensionChain] = {}
        self.parameters: Dict[str, Parameter] = {}

    def upsert_dimension(self, dimension: DimensionConstraint) -> None:
        self.dimensions[dimension.id] = replace(dimension)

    def remove_dimension(self, dimension_id: str) -> None:
        self.dimensions.pop(dimension_id, None)

    def upsert_chain(self, chain: DimensionChain) -> None:
        self.chains[chain.id] = replace(chain, wall_ids=list(chain.wall_ids))

    def remove_chain(self, chain_id: str) -> None:
        self.chains.pop(chain_id, None)

    def upsert_parameter(self, parameter: Parameter) -> None:
        self.parameters[parameter.id] = replace(parameter)

    def remove_parameter(self, parameter_id: str) -> None:
        self.parameters.pop(parameter_id, None)

    def set_dimension_value(self, dimension_id: str, target_length: float) -> None:
        """Replace a dimension's target with a literal, dropping its expression."""
        dimension = self.dimensions.get(dimension_id)
        if dimension is None:
            logger.debug(f"set_dimension_value: unknown dimension {dimension_id}")
            return
        self.dimensions[dimension_id] = replace(dimension, target_length=target_length, expression=None)

    def solve(self, walls: Sequence[Wall], context_values: Optional[Mapping[str, float]] = None) -> SolveResult:
        return self.solver.solve(
            walls,
            list(self.dimensions.values()),
            list(self.chains.values()),
            list(self.parameters.values()),
            context_values,
        )
