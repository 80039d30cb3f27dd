"""Sequential step execution with a uniform announce/complete contract.

Every step is announced before it runs and reported after it succeeds,
whether it did work or found its target state already in place. The first
failing step that is not best-effort stops the pipeline; nothing is rolled
back.
"""

import time

from ..errors import StepFailedError
from ..utils.logging import log_info, log_progress, log_step, log_success, log_warn
from .model import BackgroundStep, Pipeline, RunContext, RunResult, Step, StepOutcome

_SPINNER = "|/-\\"


def _format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


class StepRunner:
    """Runs a Pipeline step by step.

    ``clock`` and ``sleep`` are injectable so the background wait loop can be
    exercised without real time passing.
    """

    def __init__(self, clock=time.monotonic, sleep=time.sleep):
        self._clock = clock
        self._sleep = sleep

    def run(self, pipeline: Pipeline, context: RunContext) -> RunResult:
        result = RunResult()
        total = len(pipeline.groups)

        for index, group in enumerate(pipeline.groups, 1):
            log_step(f"[{index}/{total}] {group.kind.value}")
            if not group.steps:
                log_info("Nothing to do for this system.")
                continue

            for step in group.steps:
                self._run_step(group.kind.value, step, context, result)

        return result

    def _run_step(self, group_name: str, step: Step, context: RunContext, result: RunResult) -> None:
        log_info(f"{step.label}...")
        try:
            outcome = step.action(context)
            if isinstance(step, BackgroundStep) and not isinstance(outcome, (StepOutcome, type(None))):
                outcome = self._wait_for_background(step, outcome, result)
        except Exception as exc:
            if step.best_effort:
                log_warn(f"{step.label} failed (ignored): {exc}")
                result.warnings.append(f"{step.label}: {exc}")
                return
            raise StepFailedError(group_name, step.label, exc) from exc

        if outcome is StepOutcome.SKIPPED:
            log_success(f"{step.label}: already satisfied, skipped.")
            result.skipped.append(step.label)
        else:
            log_success(f"{step.label} done.")
            result.completed.append(step.label)

    def _wait_for_background(self, step: BackgroundStep, process, result: RunResult) -> StepOutcome:
        """Poll a background process until it exits or the step times out.

        A timeout is not a failure: the process keeps running after we move on.
        """
        started = self._clock()
        tick = 0
        while True:
            returncode = process.poll()
            elapsed = self._clock() - started
            if returncode is not None:
                print()
                if returncode != 0:
                    raise RuntimeError(f"background process exited with status {returncode}")
                return StepOutcome.DONE

            if elapsed >= step.timeout:
                print()
                message = (f"{step.label} still running after {_format_elapsed(step.timeout)}; "
                           "continuing without waiting (it will finish in the background)")
                log_warn(message)
                result.warnings.append(message)
                return StepOutcome.DONE

            log_progress(f"{_SPINNER[tick % len(_SPINNER)]} {step.label} "
                         f"[{_format_elapsed(elapsed)} / {_format_elapsed(step.timeout)}]")
            tick += 1
            self._sleep(step.poll_interval)


def run(pipeline: Pipeline, context: RunContext) -> RunResult:
    """Run a pipeline with the real clock"""
    return StepRunner().run(pipeline, context)
