"""Main CLI application."""

import typer

from stateset.cli.commands import events

app = typer.Typer(
    name="stateset",
    help="StateSet - commerce operations agent",
    no_args_is_help=True,
)

events.register(app)


@app.command()
def version() -> None:
    """Show the installed version."""
    from stateset import __version__
    from stateset.cli.console import console

    console.print(f"stateset {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
