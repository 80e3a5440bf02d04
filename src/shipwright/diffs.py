"""Unified diffs between on-disk and proposed file content."""

import difflib


def compute_unified_diff(rel_path: str, before: str, after: str) -> str:
    """
    Render a git-style unified diff of `before` -> `after`.

    Returns "" when the contents are identical. A missing file is passed
    in as before="" and shows up as an all-added diff.
    """
    if before == after:
        return ""

    lines = difflib.unified_diff(
        before.splitlines(keepends=True),
        after.splitlines(keepends=True),
        fromfile=f"a/{rel_path}" if before else "/dev/null",
        tofile=f"b/{rel_path}",
    )
    body = []
    for line in lines:
        if line.endswith("\n"):
            body.append(line)
        else:
            body.append(line + "\n\\ No newline at end of file\n")
    return f"diff --git a/{rel_path} b/{rel_path}\n" + "".join(body).rstrip("\n")
