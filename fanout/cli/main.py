"""Main CLI application using Cyclopts."""

import cyclopts

from fanout.cli.commands import render, run, shim

app = cyclopts.App(
    name="fanout",
    help="Fan-out operator - resolve item lists and run one pod per item",
)

app.command(run.run, name="run")
app.command(shim.shim, name="shim")
app.command(render.render, name="render")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
