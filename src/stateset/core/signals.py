"""Protocol signal constants for agent communication."""

SILENT = "[SILENT]"


def is_silent(text: str) -> bool:
    """Check if a response asks to be suppressed from user-facing output.

    The marker must be the very first thing in the trimmed response; text
    that merely mentions it later is a normal reply.
    """
    return text.strip().startswith(SILENT)
