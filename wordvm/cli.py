"""Command-line entry point: load an image and run it."""

from __future__ import annotations

import sys

from wordvm.machine import VirtualMachine, VMError


def main(argv=None) -> int:
    """Run the image named on the command line and return its exit code."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print("usage: wordvm <file.v>", file=sys.stderr)
        return 1
    try:
        machine = VirtualMachine.from_file(args[0])
        return machine.run()
    except VMError as exc:
        print(exc, file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())