"""Functional tests for terminal display behavior."""

from rich.console import Console

from gbx_cli import display
from gbx_cli.process import ExecutionResult


def _render(renderable) -> str:
    console = Console(record=True, force_terminal=False, color_system=None, width=80)
    with console.use_theme(display._theme_for("light")):
        console.print(renderable)
    return console.export_text()


def test_render_result_shows_both_streams():
    result = ExecutionResult(0, ("alpha", "beta"), ("warned",))
    text = _render(display.render_result("make all", result))

    assert "$ make all" in text
    assert "alpha" in text
    assert "beta" in text
    assert "warned" in text
    assert "exit 0" in text
    assert text.index("beta") < text.index("warned")


def test_render_result_does_not_parse_markup():
    result = ExecutionResult(1, ("[red]literal[/red]",), ())
    text = _render(display.render_result("echo [x]", result))

    assert "[red]literal[/red]" in text
    assert "$ echo [x]" in text
    assert "exit 1" in text


def test_render_result_without_output():
    text = _render(display.render_result("true", ExecutionResult(0, (), ())))
    assert "(no output)" in text


def test_display_error_with_hint(monkeypatch):
    console = Console(record=True, force_terminal=False, color_system=None, width=80)
    monkeypatch.setattr(display, "console", console)

    display.display_error("Could not start shell [x]", hint="Check the directory.")

    text = console.export_text()
    assert "Error" in text
    assert "Could not start shell [x]" in text
    assert "Check the directory." in text


def test_status_and_info_lines(monkeypatch):
    console = Console(
        theme=display._theme_for("light"), record=True, force_terminal=False, color_system=None, width=80,
    )
    monkeypatch.setattr(display, "console", console)

    display.display_status("Reaping process tree 42...")
    display.display_info("Process 42 is not running.")

    assert console.export_text() == (
        f"{display.BULLET} Reaping process tree 42...\n"
        f"{display.INFO} Process 42 is not running.\n"
    )
