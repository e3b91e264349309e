"""Structured construction of remote shell scripts.

Remote work is expressed as an ordered list of discrete steps. Each argument
is quoted individually and steps are joined with ``&&`` so a failing step
stops the rest of the chain.
"""

import shlex
from typing import List, Union


class Literal(str):
    """A shell fragment that is emitted verbatim (variables, globs, ``~``)."""


Arg = Union[str, int, Literal]


def quote(arg: Arg) -> str:
    if isinstance(arg, Literal):
        return str(arg)
    return shlex.quote(str(arg))


def home_path(relative: str) -> Literal:
    """A path under the remote user's home directory, expanded by the remote shell."""
    return Literal(f'"$HOME"/{shlex.quote(relative.strip("/"))}')


def command(*argv: Arg) -> str:
    return " ".join(quote(arg) for arg in argv)


class RemoteScript:
    """An ordered, success-gated sequence of remote commands."""

    def __init__(self, *steps: str):
        self.steps: List[str] = list(steps)

    def run(self, *argv: Arg) -> "RemoteScript":
        self.steps.append(command(*argv))
        return self

    def raw(self, fragment: str) -> "RemoteScript":
        """Appends a pre-formed fragment; callers quote any interpolated values."""
        self.steps.append(fragment)
        return self

    def render(self) -> str:
        return " && ".join(self.steps)

    def __str__(self) -> str:
        return self.render()


def tolerate(step: str) -> str:
    """Makes a step's failure non-fatal to the chain."""
    return f"{{ {step} || true; }}"


def if_exists(path: str, then: str, otherwise: str = "true") -> str:
    return f"if [ -f {quote(path)} ]; then {then}; else {otherwise}; fi"


def systemctl_user(action: str, unit: str, *flags: str) -> str:
    return command("systemctl", "--user", action, *flags, unit)
