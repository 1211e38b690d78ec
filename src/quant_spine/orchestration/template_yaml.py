"""Pydantic models for workflow template YAML files.

Lets research teams define templates without writing Python; the parsed
``TemplateSpec`` converts into the same ``WorkflowTemplate`` the built-ins
use, so both paths go through identical validation.

Usage::

    from quant_spine.orchestration.template_yaml import TemplateSpec

    template = TemplateSpec.from_yaml_file("templates/momentum.yaml").to_template()

Example YAML::

    apiVersion: quantspine.io/v1
    kind: WorkflowTemplate
    metadata:
      name: momentum_study
      category: research
      description: Momentum factor study on large caps
    spec:
      config:
        instruments: [AAPL, MSFT]
        start_time: "2021-01-01"
        end_time: "2023-12-31"
      steps:
        - name: prepare_data
          type: data_preparation
        - name: generate_factors
          type: factor_generation
          dependencies: [prepare_data]
          config:
            windows: [5, 20]
        - name: analyze_factors
          type: result_analysis
          dependencies: [generate_factors]
          timeout_seconds: 600

Tags:
    quant-spine, orchestration, yaml, declarative, templates
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from quant_spine.orchestration.models import WorkflowStep, WorkflowTemplate


class TemplateMetadataSpec(BaseModel):
    """Metadata section of a template file."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Unique template name")
    category: str = Field(default="", description="Grouping, e.g. strategy or research")
    description: str = Field(default="", description="Human-readable description")


class TemplateStepSpec(BaseModel):
    """One step of a template file.

    ``type`` is kept as a free string; an unknown type loads fine and
    fails when the step is dispatched.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Unique step name within the template")
    type: str = Field(..., min_length=1, description="Step type, e.g. factor_generation")
    description: str = Field(default="")
    config: dict[str, Any] = Field(default_factory=dict, description="Step-level overrides")
    dependencies: list[str] = Field(default_factory=list)
    required: bool = True
    timeout_seconds: float | None = Field(default=None, gt=0)

    def to_step(self) -> WorkflowStep:
        return WorkflowStep(
            name=self.name,
            type=self.type,
            description=self.description,
            config=self.config,
            dependencies=tuple(self.dependencies),
            required=self.required,
            timeout_seconds=self.timeout_seconds,
        )

    @classmethod
    def from_step(cls, step: WorkflowStep) -> TemplateStepSpec:
        return cls(
            name=step.name,
            type=step.type_value,
            description=step.description,
            config=dict(step.config),
            dependencies=list(step.dependencies),
            required=step.required,
            timeout_seconds=step.timeout_seconds,
        )


class TemplateSpecSection(BaseModel):
    """The 'spec' section: base config and steps."""

    model_config = ConfigDict(extra="forbid")

    config: dict[str, Any] = Field(default_factory=dict, description="Template base config")
    steps: list[TemplateStepSpec] = Field(default_factory=list)

    @field_validator("steps")
    @classmethod
    def validate_unique_names(cls, v: list[TemplateStepSpec]) -> list[TemplateStepSpec]:
        """Ensure step names are unique."""
        names = [step.name for step in v]
        if len(names) != len(set(names)):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate step names: {duplicates}")
        return v

    @model_validator(mode="after")
    def validate_dependencies(self) -> TemplateSpecSection:
        """Ensure dependencies reference steps of this template."""
        step_names = {step.name for step in self.steps}
        for step in self.steps:
            if step.name in step.dependencies:
                raise ValueError(f"Step '{step.name}' cannot depend on itself")
            invalid = sorted(set(step.dependencies) - step_names)
            if invalid:
                raise ValueError(f"Step '{step.name}' depends on unknown steps: {invalid}")
        return self


class TemplateSpec(BaseModel):
    """Root model of a template YAML file."""

    model_config = ConfigDict(extra="forbid")

    apiVersion: Literal["quantspine.io/v1"] = "quantspine.io/v1"
    kind: Literal["WorkflowTemplate"] = "WorkflowTemplate"
    metadata: TemplateMetadataSpec
    spec: TemplateSpecSection = Field(default_factory=TemplateSpecSection)

    def to_template(self) -> WorkflowTemplate:
        """Convert to a validated ``WorkflowTemplate`` (cycles are caught here)."""
        return WorkflowTemplate(
            name=self.metadata.name,
            description=self.metadata.description,
            category=self.metadata.category,
            base_config=self.spec.config,
            steps=tuple(step.to_step() for step in self.spec.steps),
        )

    @classmethod
    def from_template(cls, template: WorkflowTemplate) -> TemplateSpec:
        return cls(
            metadata=TemplateMetadataSpec(
                name=template.name,
                category=template.category,
                description=template.description,
            ),
            spec=TemplateSpecSection(
                config=dict(template.base_config),
                steps=[TemplateStepSpec.from_step(s) for s in template.steps],
            ),
        )

    def to_yaml(self) -> str:
        return yaml.safe_dump(
            self.model_dump(mode="json", exclude_none=True),
            sort_keys=False,
            allow_unicode=True,
        )

    @classmethod
    def from_yaml(cls, yaml_content: str) -> TemplateSpec:
        """Parse and validate YAML content.

        Raises:
            ValueError: The YAML is malformed or doesn't match the schema.
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {e}") from e

        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path | str) -> TemplateSpec:
        content = Path(path).read_text(encoding="utf-8")
        return cls.from_yaml(content)


__all__ = ["TemplateMetadataSpec", "TemplateSpec", "TemplateSpecSection", "TemplateStepSpec"]
