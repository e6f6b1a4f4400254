"""Ad Performance Diagnosis: decision and explanation engine.

Tools can be imported or called as CLI modules
(``python -m ad_diagnosis.analyze``). Each reads JSON input and writes JSON
to stdout.
"""

from loguru import logger

from ad_diagnosis.analyze import run_analysis
from ad_diagnosis.classify import classify_metrics
from ad_diagnosis.decide import decide
from ad_diagnosis.formatter import DiagnosisComposer, build_humanized_copy

# Library code stays quiet unless a CLI calls setup_logger()
logger.disable("ad_diagnosis")

__all__ = [
    "DiagnosisComposer",
    "build_humanized_copy",
    "classify_metrics",
    "decide",
    "run_analysis",
]
