"""Hooks into the application embedding the weaver."""

from __future__ import annotations

from ..constants import SOURCE_BANNER, SOURCE_BANNER_END


class HostInterface:
    """Receives generated source and load failures. Every hook is optional."""

    def show_source(self, filename: str, source: str) -> None:
        pass

    def handle_exception(self, exc: BaseException) -> None:
        pass


class ConsoleHost(HostInterface):
    """Prints generated source to stdout, for use outside an editor UI."""

    def show_source(self, filename, source):
        print(SOURCE_BANNER)
        print(f"# {filename}")
        print(source)
        print(SOURCE_BANNER_END)


__all__ = [
    "ConsoleHost",
    "HostInterface",
]
