"""Command lines and environment blocks in the form process creation expects."""

from __future__ import annotations


def escape_arg(arg: str) -> str:
    """Quote one argument so that standard command-line parsing gives it back."""
    if not arg:
        return '""'
    has_space = any(c in " \t" for c in arg)
    if not has_space and '"' not in arg:
        return arg
    out: list[str] = ['"'] if has_space else []
    slashes = 0
    for c in arg:
        if c == "\\":
            slashes += 1
            out.append(c)
        elif c == '"':
            out.append("\\" * slashes)
            out.append('\\"')
            slashes = 0
        else:
            slashes = 0
            out.append(c)
    if has_space:
        out.append("\\" * slashes)
        out.append('"')
    return "".join(out)


def make_cmd_line(args: list[str]) -> str:
    """Join arguments into one command line, escaping each."""
    return " ".join(escape_arg(a) for a in args)


def create_env_block(env: list[str]) -> bytes:
    """Encode NUL-terminated ``KEY=value`` strings plus a final NUL as UTF-16-LE."""
    if not env:
        return "\0\0".encode("utf-16-le")
    return ("".join(s + "\0" for s in env) + "\0").encode("utf-16-le")