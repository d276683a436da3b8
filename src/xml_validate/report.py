"""Console output for per-document findings and the end-of-run report."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console

if TYPE_CHECKING:
    from xml_validate.session import Outcome


def make_console(**kwargs: object) -> Console:
    """Create a console that prints validator text verbatim."""
    options: dict[str, object] = {
        "highlight": False,
        "markup": False,
        "emoji": False,
        "soft_wrap": True,
    }
    options.update(kwargs)
    return Console(**options)  # type: ignore[arg-type]


class Reporter:
    """Writes report lines, printing each document header at most once."""

    def __init__(
        self,
        console: Console | None = None,
        dump_level: int = 0,
        dump_limit: int = 0,
    ):
        self._console = console or make_console()
        self._dump_level = dump_level
        self._dump_limit = dump_limit

    @property
    def console(self) -> Console:
        return self._console

    def print(self, text: str = "") -> None:
        self._console.print(text)

    def check(self, outcome: Outcome) -> None:
        """Print the document header once, dumping its content on first error."""
        if not outcome.printed:
            self.print(f"\nCheck: {outcome.source}")
            outcome.printed = True
        if self._dump_level == 1:
            self.dump(outcome)

    def dump(self, outcome: Outcome) -> None:
        """Print the serialized document once, truncated to the dump limit."""
        if self._dump_level == 0 or outcome.dumped or outcome.xml_content is None:
            return
        content = outcome.xml_content
        if self._dump_limit > 0 and len(content) > self._dump_limit:
            content = content[: self._dump_limit] + "..."
        self.print(content)
        self.print()
        outcome.dumped = True
