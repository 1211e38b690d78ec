"""quant-spine: workflow orchestration engine for quantitative research."""

__version__ = "0.1.0"
