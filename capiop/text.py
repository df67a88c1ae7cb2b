"""Normalisation of command help texts (long descriptions and examples)."""

_INDENTATION = "  "
_INDENT_CHARS = " \t"


def _leading_indent(line: str) -> int:
    return len(line) - len(line.lstrip(_INDENT_CHARS))


def _heredoc(raw: str) -> str:
    """Remove the common indentation of a block of text.

    A leading newline is dropped. Otherwise the first line is kept as it is
    and only the following lines take part in the dedent.
    """
    if not raw:
        return raw
    skip_first = raw[0] != "\n"
    if not skip_first:
        raw = raw[1:]
    lines = raw.split("\n")
    body = lines[1:] if skip_first else lines

    indents = [_leading_indent(line) for line in body if line.strip(_INDENT_CHARS)]
    indent = min(indents, default=0)
    dedented = [line[indent:] if len(line) >= indent else line for line in body]

    if skip_first:
        dedented = [lines[0], *dedented]
    return "\n".join(dedented)


def long_desc(s: str) -> str:
    """Normalise a command's long description: dedent, then trim."""
    if not s:
        return s
    return _heredoc(s).strip()


def examples(s: str) -> str:
    """Normalise a command's examples: trim, then indent every line by two spaces."""
    if not s:
        return s
    return "\n".join(_INDENTATION + line.strip() for line in s.strip().split("\n"))