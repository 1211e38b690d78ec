"""Workflow models: step types, steps and templates.

Manifesto:
    A research workflow is a fixed catalogue of step *types* (prepare data,
generate factors, train, backtest, analyse, report) arranged into a named
template.  Templates are blueprints: they declare **what** runs and in
which order, never **how** (that is the engine's and dispatcher's job).
They are immutable once built and validated at construction so that a bad
dependency graph is a load-time error, not a mid-run surprise.

ARCHITECTURE
────────────
::

    WorkflowTemplate     ── name, category, base_config, steps
      ├── steps[]          ── ordered WorkflowStep tuple
      ├── execution_order()── stable topological order of steps
      └── to_dict/from_dict── JSON/YAML shape

    WorkflowStep         ── name, type, config, dependencies, required
    StepType             ── the six research step kinds

Related modules:
    dispatcher.py   - maps StepType to a script + prerequisites
    engine.py       - runs a template
    templates.py    - built-in catalogue and registry

Tags:
    quant-spine, orchestration, workflow, template, steps, DAG
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from quant_spine.orchestration.exceptions import (
    CycleDetectedError,
    DependencyError,
    TemplateValidationError,
)


class StepType(str, Enum):
    """Kind of research step; selects the script the dispatcher runs."""

    DATA_PREPARATION = "data_preparation"
    FACTOR_GENERATION = "factor_generation"
    MODEL_TRAINING = "model_training"
    STRATEGY_BACKTEST = "strategy_backtest"
    RESULT_ANALYSIS = "result_analysis"
    REPORT_GENERATION = "report_generation"

    @classmethod
    def coerce(cls, value: StepType | str) -> StepType | str:
        """Return the enum member for ``value``, or the raw string if unknown.

        Unknown types are kept so that the step fails when dispatched
        instead of when the template is built.
        """
        if isinstance(value, StepType):
            return value
        try:
            return cls(value)
        except ValueError:
            return value


def step_type_value(step_type: StepType | str) -> str:
    """Plain string form of a step type (enum value or raw string)."""
    return step_type.value if isinstance(step_type, StepType) else str(step_type)


@dataclass(frozen=True)
class WorkflowStep:
    """
    A single step within a workflow template.

    Attributes:
        name: Unique name within the template
        type: StepType (or an unrecognised raw string)
        description: Human-readable description, used in progress messages
        config: Overrides merged on top of the run config for this step
        dependencies: Names of steps that must run before this one
        required: Whether a failure of this step aborts the run
        timeout_seconds: Per-step bound overriding the engine default
    """

    name: str
    type: StepType | str
    description: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    dependencies: tuple[str, ...] = ()
    required: bool = True
    timeout_seconds: float | None = None

    def __post_init__(self):
        if not self.name:
            raise TemplateValidationError("Step name must not be empty")
        object.__setattr__(self, "type", StepType.coerce(self.type))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "config", dict(self.config or {}))

    @property
    def type_value(self) -> str:
        return step_type_value(self.type)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for YAML/JSON."""
        result: dict[str, Any] = {
            "name": self.name,
            "type": self.type_value,
            "required": self.required,
        }
        if self.description:
            result["description"] = self.description
        if self.config:
            result["config"] = dict(self.config)
        if self.dependencies:
            result["dependencies"] = list(self.dependencies)
        if self.timeout_seconds is not None:
            result["timeout_seconds"] = self.timeout_seconds
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowStep:
        """Deserialize from dictionary."""
        return cls(
            name=data["name"],
            type=data["type"],
            description=data.get("description", ""),
            config=data.get("config") or {},
            dependencies=tuple(data.get("dependencies") or ()),
            required=data.get("required", True),
            timeout_seconds=data.get("timeout_seconds"),
        )


@dataclass(frozen=True)
class WorkflowTemplate:
    """
    An immutable, validated workflow definition.

    Attributes:
        name: Unique template name (e.g., "factor_research")
        description: Human-readable description
        category: Grouping such as "strategy" or "research"
        base_config: Default run configuration, overridden per run
        steps: Ordered steps; an empty tuple is a valid (trivial) workflow
    """

    name: str
    steps: tuple[WorkflowStep, ...] = ()
    description: str = ""
    category: str = ""
    base_config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate template structure."""
        if not self.name:
            raise TemplateValidationError("Template name must not be empty")
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "base_config", dict(self.base_config or {}))
        self._validate_steps()
        self._validate_dependencies()
        self._validate_no_cycles()

    def _validate_steps(self) -> None:
        seen: set[str] = set()
        for step in self.steps:
            if step.name in seen:
                raise TemplateValidationError(
                    f"Duplicate step name: {step.name}", template_name=self.name
                )
            seen.add(step.name)

    def _validate_dependencies(self) -> None:
        step_names = {s.name for s in self.steps}
        for step in self.steps:
            if step.name in step.dependencies:
                raise TemplateValidationError(
                    f"Step '{step.name}' depends on itself", template_name=self.name
                )
            missing = [dep for dep in step.dependencies if dep not in step_names]
            if missing:
                raise DependencyError(step.name, missing)

    def _validate_no_cycles(self) -> None:
        ordered = self._kahn_order()
        if len(ordered) != len(self.steps):
            placed = {s.name for s in ordered}
            raise CycleDetectedError([s.name for s in self.steps if s.name not in placed])

    def _kahn_order(self) -> list[WorkflowStep]:
        # Ready steps are taken lowest declaration index first, so a
        # declaration that already respects its dependencies is unchanged.
        index = {s.name: i for i, s in enumerate(self.steps)}
        dependents: dict[str, list[str]] = defaultdict(list)
        in_degree = {s.name: len(set(s.dependencies)) for s in self.steps}
        for step in self.steps:
            for dep in set(step.dependencies):
                dependents[dep].append(step.name)

        ready = [index[name] for name, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        ordered: list[WorkflowStep] = []
        while ready:
            step = self.steps[heapq.heappop(ready)]
            ordered.append(step)
            for dependent in dependents[step.name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, index[dependent])
        return ordered

    # =========================================================================
    # Accessors
    # =========================================================================

    def execution_order(self) -> list[WorkflowStep]:
        """Steps in the order the engine runs them."""
        return self._kahn_order()

    def get_step(self, name: str) -> WorkflowStep | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def step_names(self) -> list[str]:
        return [s.name for s in self.steps]

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for YAML/JSON."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "config": dict(self.base_config),
            "steps": [s.to_dict() for s in self.steps],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowTemplate:
        """Deserialize from dictionary (inverse of ``to_dict``)."""
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            category=data.get("category", ""),
            base_config=data.get("config") or {},
            steps=tuple(WorkflowStep.from_dict(s) for s in data.get("steps") or ()),
        )

    def __repr__(self) -> str:
        return (
            f"WorkflowTemplate(name={self.name!r}, category={self.category!r}, "
            f"steps={self.step_names()})"
        )
