"""
Approval gates - who says yes to commands and writes.

There are exactly two: AutoApprove for unattended, trusted runs, and
InteractiveApproval, which asks the person at the terminal.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TextIO

from rich.console import Console
from rich.prompt import Confirm

logger = logging.getLogger(__name__)


class ApprovalGate(ABC):
    """Decides whether a command runs or a diff is applied."""

    @property
    @abstractmethod
    def auto_approve(self) -> bool:
        """True if writes may skip staging and land on disk immediately."""
        pass

    @abstractmethod
    def confirm_run(self, command: str) -> bool:
        pass

    @abstractmethod
    def confirm_write(self, path: str, diff_text: str) -> bool:
        pass


class AutoApprove(ApprovalGate):
    """Says yes to everything."""

    @property
    def auto_approve(self) -> bool:
        return True

    def confirm_run(self, command: str) -> bool:
        return True

    def confirm_write(self, path: str, diff_text: str) -> bool:
        return True


class InteractiveApproval(ApprovalGate):
    """
    Asks the user on the terminal with a rich y/N confirm.

    The default answer is no, so an empty answer, EOF or Ctrl-C all
    decline. `confirm` replaces the rich prompt entirely; `stream` feeds
    the rich prompt from something other than stdin.
    """

    def __init__(
        self,
        confirm: Callable[[str], bool] | None = None,
        console: Console | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self.console = console or Console()
        self._stream = stream
        self._confirm = confirm or self._rich_confirm

    @property
    def auto_approve(self) -> bool:
        return False

    def confirm_run(self, command: str) -> bool:
        return self._ask(f"Run command? {command}")

    def confirm_write(self, path: str, diff_text: str) -> bool:
        if diff_text.strip():
            self.console.print(diff_text, markup=False, highlight=False)
        else:
            self.console.print("(no diff)", style="dim")
        return self._ask(f"Apply write to {path}?")

    def _rich_confirm(self, question: str) -> bool:
        return Confirm.ask(
            question,
            console=self.console,
            default=False,
            stream=self._stream,
        )

    def _ask(self, question: str) -> bool:
        try:
            return bool(self._confirm(question))
        except (EOFError, KeyboardInterrupt):
            logger.info("Approval prompt interrupted; treating as no")
            return False


def create_approval_gate(auto_approve: bool) -> ApprovalGate:
    if auto_approve:
        return AutoApprove()
    return InteractiveApproval()
