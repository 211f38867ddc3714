"""
Generic step executor for pipeline steps.

Every stage of the blackout pipeline runs through ``run_step()``, which
times the work function, logs a structured summary, and converts the
outcome into a StepResult. Steps therefore contain only their own logic.
"""

import traceback
from datetime import datetime, timezone
from typing import Callable, TypeVar

import pandas as pd

from blackout.errors import BlackoutAnalysisError
from blackout.logging_config import StepTimer, get_pipeline_logger, log_step_summary
from blackout.pipeline_types import StepResult, StepStatus

T = TypeVar("T")

log = get_pipeline_logger(__name__)

_DEFAULT_EXPECTED = (
    BlackoutAnalysisError,
    FileNotFoundError,
    ValueError,
    KeyError,
    pd.errors.MergeError,
)


def run_step(
    step_name: str,
    fn: Callable[..., T],
    *args,
    input_summary: dict | None = None,
    output_summary_fn: Callable[[T], dict] | None = None,
    empty_fn: Callable[[T], bool] | None = None,
    expected_exceptions: tuple[type[Exception], ...] = _DEFAULT_EXPECTED,
    **kwargs,
) -> tuple[StepResult, T | None]:
    """Execute a pipeline step with standardised error handling and timing.

    Parameters
    ----------
    step_name : str
        Name stored in the StepResult and used in log lines.
    fn : Callable
        The work function, called as ``fn(*args, **kwargs)``.
    input_summary : dict, optional
        Metadata about inputs.
    output_summary_fn : callable, optional
        Maps *fn*'s return value to an output-summary dict.
    empty_fn : callable, optional
        Returns True when *fn*'s return value holds zero features. Such a
        step finishes with status "empty" instead of "success".
    expected_exceptions : tuple
        Exception types logged as known failures (no "unexpectedly").

    Returns
    -------
    tuple[StepResult, T | None]
        The data is None when the step failed.
    """
    result_data = None
    error_tb = None
    input_summary = input_summary or {}

    with StepTimer() as timer:
        try:
            result_data = fn(*args, **kwargs)
        except expected_exceptions as exc:
            error_tb = traceback.format_exc()
            log.error("%s failed: %s", step_name, exc, exc_info=True)
        except Exception:
            error_tb = traceback.format_exc()
            log.error("%s failed unexpectedly", step_name, exc_info=True)

    completed_at = datetime.now(timezone.utc).isoformat()

    if error_tb:
        log_step_summary(log, step_name, StepStatus.ERROR.value,
                         input_summary=input_summary,
                         timing_seconds=timer.elapsed)
        return StepResult(
            step_name=step_name,
            status=StepStatus.ERROR.value,
            input_summary=input_summary,
            error=error_tb,
            timing_seconds=timer.elapsed,
            completed_at=completed_at,
        ), None

    out_summary = {}
    if output_summary_fn is not None and result_data is not None:
        out_summary = output_summary_fn(result_data)

    status = StepStatus.SUCCESS.value
    warnings_list = []
    if empty_fn is not None and result_data is not None and empty_fn(result_data):
        status = StepStatus.EMPTY.value
        warnings_list.append(f"{step_name} produced zero features")

    log_step_summary(
        log, step_name, status,
        input_summary=input_summary,
        output_summary=out_summary,
        timing_seconds=timer.elapsed,
        warnings_list=warnings_list,
    )
    return StepResult(
        step_name=step_name,
        status=status,
        input_summary=input_summary,
        output_summary=out_summary,
        timing_seconds=timer.elapsed,
        warnings=warnings_list,
        completed_at=completed_at,
    ), result_data
