"""
Cypher script splitting.

Turns a cypher-shell style script into individual statements: statements
end at ``;`` outside of string literals, escaped names and comments;
comments are dropped; ``:auto`` prefixes are removed and other shell
directives (``:begin``, ``:param`` ...) are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Script:
    statements: list[str] = field(default_factory=list)
    skipped_directives: list[str] = field(default_factory=list)


def split_statements(text: str) -> Script:
    script = Script()
    buf: list[str] = []
    quote: str | None = None
    i, n = 0, len(text)

    def flush() -> None:
        stmt = "".join(buf).strip()
        if stmt:
            script.statements.append(stmt)
        buf.clear()

    while i < n:
        ch = text[i]

        if quote:
            buf.append(ch)
            if ch == "\\" and quote != "`" and i + 1 < n:
                buf.append(text[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue

        if ch == ":" and not "".join(buf).strip():
            if text[i : i + 5].lower() == ":auto":
                i += 5
                continue
            end = text.find("\n", i)
            end = n if end == -1 else end
            script.skipped_directives.append(text[i:end].strip())
            i = end
            continue

        if text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue

        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            buf.append(" ")
            continue

        if ch in ("'", '"', "`"):
            quote = ch
        elif ch == ";":
            flush()
            i += 1
            continue

        buf.append(ch)
        i += 1

    flush()
    return script
