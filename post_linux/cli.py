"""post-linux - Command Line Interface

Entry point for the post-linux command and python3 -m post_linux.
"""

import argparse
import os
import sys
import traceback
from typing import Optional

from post_linux import __package_name__, __version__, updater
from post_linux.errors import PostLinuxError, StepFailedError, UsageError
from post_linux.pipeline import matrix
from post_linux.pipeline.model import GpuGeneration, RunContext, RunResult, Selections
from post_linux.pipeline.runner import run as run_pipeline
from post_linux.system import privilege
from post_linux.system.facts import OsFamily, SystemFacts, detect
from post_linux.system.privilege import ensure_elevated
from post_linux.utils.logging import log_error, log_info, log_step, log_success, log_warn
from post_linux.utils.prompts import prompt_choice

GPU_CHOICES = [
    ("NVIDIA RTX 20-series / GTX 16-series or newer (open kernel modules)", GpuGeneration.MODERN),
    ("Older NVIDIA GeForce, GTX 10-series and earlier (proprietary driver)", GpuGeneration.LEGACY),
]


def show_banner() -> None:
    """Display application banner."""
    banner = f"""
╔{'═' * 50}╗
║{f'post-linux {__version__}':^50}║
║{'Desktop setup after a fresh Linux install':^50}║
╚{'═' * 50}╝
"""
    print(banner)


class _ArgumentParser(argparse.ArgumentParser):
    """Raise UsageError instead of exiting with status 2"""

    def error(self, message):
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog=__package_name__,
        allow_abbrev=False,
        description="Set up a fresh Fedora, Arch, Ubuntu, Linux Mint or Debian desktop "
                    "with NVIDIA drivers, codecs and common tools.",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--update", action="store_true",
                       help="update post-linux to the latest release and exit")
    group.add_argument("--check-update", action="store_true",
                       help="report whether a newer release exists and exit")
    group.add_argument("--version", action="version",
                       version=f"{__package_name__} {__version__}")
    return parser


# ---------------------------------------------------------------------------
# Interactive selections
# ---------------------------------------------------------------------------

def choose_os(facts: SystemFacts) -> OsFamily:
    """Ask which distribution this is, suggesting the detected one"""
    default = matrix.SUPPORTED.index(facts.os_id) if facts.os_id in matrix.SUPPORTED else None
    index = prompt_choice("Select your distribution",
                          [family.label for family in matrix.SUPPORTED], default)
    return matrix.SUPPORTED[index]


def choose_gpu() -> GpuGeneration:
    index = prompt_choice("Select your NVIDIA GPU generation",
                          [label for label, _ in GPU_CHOICES], 0)
    return GPU_CHOICES[index][1]


# ---------------------------------------------------------------------------
# Supervisor
# ---------------------------------------------------------------------------

def _restart(request: updater.RestartRequest) -> None:
    """Replace the current process with the updated artifact"""
    log_info(f"Restarting: {request.path} {' '.join(request.argv)}")
    sys.stdout.flush()
    os.execv(request.path, [request.path, *request.argv])


def _report_last_frame(exc: BaseException) -> None:
    frames = traceback.extract_tb(exc.__traceback__)
    if frames:
        frame = frames[-1]
        log_error(f"  at {frame.filename}:{frame.lineno} in {frame.name}")


def _summary(os_family: OsFamily, result: RunResult) -> None:
    log_step("Summary")
    log_info(f"{len(result.completed)} step(s) done, {len(result.skipped)} already satisfied.")
    if result.warnings:
        log_warn(f"{len(result.warnings)} step(s) finished with warnings:")
        for warning in result.warnings:
            log_warn(f"  - {warning}")
    log_success(f"All done for {os_family.label}.")


def provision(selections: Optional[Selections] = None,
              context: Optional[privilege.PrivilegeContext] = None) -> RunResult:
    """Detect, select and run the pipeline for this machine"""
    facts = detect()
    if selections is None:
        selections = Selections(os=choose_os(facts), gpu_generation=choose_gpu())
    if context is None:
        context = privilege.resolve()

    if matrix.needs_build_user(selections.os):
        privilege.require_build_user(context)
    pipeline = matrix.select(facts, selections)

    run_context = RunContext(
        facts=facts,
        selections=selections,
        privilege=context,
        packages=matrix.package_manager_for(selections.os),
    )
    result = run_pipeline(pipeline, run_context)
    _summary(selections.os, result)
    return result


def _run(args: argparse.Namespace) -> None:
    if args.check_update:
        updater.run_check_only()
        return

    ensure_elevated(sys.orig_argv[1:])
    context = privilege.resolve()

    if args.update:
        request = updater.run_update(context)
        if request is not None:
            _restart(request)
        return

    show_banner()
    request = updater.offer_update(context)
    if request is not None:
        _restart(request)

    provision(context=context)


def main(argv: Optional[list[str]] = None) -> None:
    """Main provisioning process."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        log_error(f"{parser.prog}: {e}")
        sys.exit(1)

    try:
        _run(args)
    except KeyboardInterrupt:
        print()
        log_info("Cancelled.")
        sys.exit(130)
    except StepFailedError as e:
        log_error(str(e))
        _report_last_frame(e.cause)
        sys.exit(1)
    except PostLinuxError as e:
        log_error(str(e))
        _report_last_frame(e)
        sys.exit(1)
    except Exception as e:
        log_error(f"Setup failed: {e}")
        log_error(f"Traceback: {traceback.format_exc()}")
        sys.exit(1)


if __name__ == "__main__":
    main()
