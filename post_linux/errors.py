"""Exception types for post-linux.

Everything that should end the run derives from ``PostLinuxError``; the CLI
catches it once and turns it into a non-zero exit.
"""


class PostLinuxError(Exception):
    """Base class for all post-linux errors."""


class FatalError(PostLinuxError):
    """A precondition failed; nothing further may run."""


class UsageError(FatalError):
    """Invalid command line."""


class OsMismatchError(FatalError):
    """The selected OS does not match the detected one."""

    def __init__(self, selected, detected):
        self.selected = selected
        self.detected = detected
        super().__init__(
            f"OS mismatch: you selected {selected.label}, but this system "
            f"appears to be {detected.label}. Aborting."
        )


class PrivilegeError(FatalError):
    """No unprivileged invoking user could be recovered."""


class UpdateError(FatalError):
    """The self-update artifact could not be written."""


class StepFailedError(PostLinuxError):
    """A non-best-effort step raised; the pipeline stopped here."""

    def __init__(self, group, label, cause):
        self.group = group
        self.label = label
        self.cause = cause
        super().__init__(f"Failed at {group} > {label}: {cause}")
