"""Workflow templates: built-in research pipelines and the template registry.

Manifesto:
    Most research runs follow one of a few shapes: the full strategy
pipeline from data to report, or a shorter factor study.  These ship as
built-in templates.  Teams add their own either in code with
``register_template`` or as YAML files dropped into
``QUANTSPINE_TEMPLATE_DIR``.

ARCHITECTURE
────────────
::

    Built-in templates (list_builtin_templates):
      basic_quant_strategy   → data → factors → model → backtest → analysis → report*
      factor_research        → data → factors → factor analysis
                               (* report step is optional)

    Template registry:
      register_template(template, replace=False)
      get_template(name)            → TemplateNotFoundError if unknown
      list_templates()              → sorted names
      load_templates_from_dir(path) → *.yaml / *.yml
      clear_template_registry()     → reset (for testing)

The registry loads lazily: built-ins plus ``settings.template_dir`` on
first access.

Tags:
    quant-spine, orchestration, templates, registry, built-in
"""

from __future__ import annotations

import threading
from pathlib import Path

from quant_spine.core.logging import get_logger
from quant_spine.core.settings import get_settings
from quant_spine.orchestration.exceptions import TemplateNotFoundError
from quant_spine.orchestration.models import StepType, WorkflowStep, WorkflowTemplate

logger = get_logger(__name__)


# =============================================================================
# Built-in templates
# =============================================================================


def basic_quant_strategy() -> WorkflowTemplate:
    """Full pipeline: prepare data through to an HTML report."""
    return WorkflowTemplate(
        name="basic_quant_strategy",
        description=(
            "Complete workflow covering data preparation, factor generation, "
            "model training and strategy backtesting"
        ),
        category="strategy",
        base_config={
            "instruments": ["AAPL", "MSFT", "GOOGL", "TSLA", "AMZN"],
            "start_time": "2020-01-01",
            "end_time": "2023-12-31",
            "model_type": "lightgbm",
            "top_k": 50,
            "rebalance_freq": "monthly",
        },
        steps=(
            WorkflowStep(
                name="prepare_data",
                type=StepType.DATA_PREPARATION,
                description="Fetch and clean market data",
            ),
            WorkflowStep(
                name="generate_factors",
                type=StepType.FACTOR_GENERATION,
                description="Compute technical indicators and factors",
                dependencies=("prepare_data",),
            ),
            WorkflowStep(
                name="train_model",
                type=StepType.MODEL_TRAINING,
                description="Train the prediction model",
                dependencies=("generate_factors",),
            ),
            WorkflowStep(
                name="backtest_strategy",
                type=StepType.STRATEGY_BACKTEST,
                description="Simulate trading and compute returns",
                dependencies=("train_model",),
            ),
            WorkflowStep(
                name="analyze_results",
                type=StepType.RESULT_ANALYSIS,
                description="Compute risk and return metrics",
                dependencies=("backtest_strategy",),
            ),
            WorkflowStep(
                name="generate_report",
                type=StepType.REPORT_GENERATION,
                description="Generate the analysis report",
                dependencies=("analyze_results",),
                required=False,
            ),
        ),
    )


def factor_research() -> WorkflowTemplate:
    """Factor mining study without model training or backtest."""
    return WorkflowTemplate(
        name="factor_research",
        description="Workflow focused on factor mining and analysis",
        category="research",
        base_config={
            "instruments": ["SPY", "QQQ", "IWM"],
            "start_time": "2019-01-01",
            "end_time": "2023-12-31",
        },
        steps=(
            WorkflowStep(
                name="prepare_data",
                type=StepType.DATA_PREPARATION,
                description="Fetch market data",
            ),
            WorkflowStep(
                name="generate_factors",
                type=StepType.FACTOR_GENERATION,
                description="Generate technical factors",
                dependencies=("prepare_data",),
            ),
            WorkflowStep(
                name="analyze_factors",
                type=StepType.RESULT_ANALYSIS,
                description="Analyse factor effectiveness",
                dependencies=("generate_factors",),
            ),
        ),
    )


def list_builtin_templates() -> list[WorkflowTemplate]:
    """Fresh instances of every built-in template, in a fixed order."""
    return [basic_quant_strategy(), factor_research()]


# =============================================================================
# Template registry
# =============================================================================

_registry: dict[str, WorkflowTemplate] = {}
_loaded: bool = False
_lock = threading.RLock()


def register_template(template: WorkflowTemplate, *, replace: bool = False) -> None:
    """
    Add a template to the registry.

    Raises:
        ValueError: A template with the same name exists and ``replace`` is False.
    """
    with _lock:
        _ensure_loaded()
        _add(template, replace=replace)


def _add(template: WorkflowTemplate, *, replace: bool) -> None:
    if template.name in _registry and not replace:
        raise ValueError(f"Template '{template.name}' is already registered")
    _registry[template.name] = template
    logger.debug("template.registered", template=template.name, steps=len(template.steps))


def get_template(name: str) -> WorkflowTemplate:
    """
    Look up a registered template.

    Raises:
        TemplateNotFoundError: No template named ``name``.
    """
    with _lock:
        _ensure_loaded()
        if name not in _registry:
            raise TemplateNotFoundError(name, sorted(_registry))
        return _registry[name]


def list_templates() -> list[str]:
    """Sorted names of all registered templates."""
    with _lock:
        _ensure_loaded()
        return sorted(_registry)


def clear_template_registry() -> None:
    """Empty the registry; the next access reloads built-ins."""
    global _loaded
    with _lock:
        _registry.clear()
        _loaded = False
    logger.debug("template.registry_cleared")


def load_templates_from_dir(
    path: Path | str, *, replace: bool = False
) -> list[WorkflowTemplate]:
    """
    Register every ``*.yaml`` / ``*.yml`` template file in ``path``.

    Files are loaded in name order.  Returns the templates registered.
    """
    with _lock:
        _ensure_loaded()
        return _load_dir(Path(path), replace=replace)


def _load_dir(directory: Path, *, replace: bool) -> list[WorkflowTemplate]:
    from quant_spine.orchestration.template_yaml import TemplateSpec

    files = sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")])
    loaded: list[WorkflowTemplate] = []
    for file in files:
        template = TemplateSpec.from_yaml_file(file).to_template()
        _add(template, replace=replace)
        loaded.append(template)
    logger.info("template.dir_loaded", path=str(directory), count=len(loaded))
    return loaded


def _ensure_loaded() -> None:
    global _loaded
    if _loaded:
        return
    try:
        for template in list_builtin_templates():
            _add(template, replace=True)
        template_dir = get_settings().template_dir
        if template_dir is not None:
            _load_dir(Path(template_dir), replace=True)
    except Exception:
        # A half-loaded registry must not be served on the next call
        _registry.clear()
        raise
    _loaded = True


__all__ = [
    "basic_quant_strategy",
    "factor_research",
    "list_builtin_templates",
    "register_template",
    "get_template",
    "list_templates",
    "clear_template_registry",
    "load_templates_from_dir",
]
