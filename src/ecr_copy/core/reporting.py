"""Rendering of batch results and process exit codes."""

import json
from typing import List

from .models import BatchResult, OutcomeState

EXIT_SUCCESS = 0
EXIT_GENERAL_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3
EXIT_PERMISSION_ERROR = 4
EXIT_NETWORK_ERROR = 5
EXIT_SOURCE_NOT_FOUND = 6
EXIT_TARGET_REPOSITORY_ERROR = 7


def exit_code_for(result: BatchResult) -> int:
    """0 if every image succeeded, else the code of the first failed image in input order."""
    return result.exit_code


def render_text(result: BatchResult) -> str:
    """Human-readable summary, one line per image."""
    lines: List[str] = []
    for outcome in result.outcomes:
        if outcome.state == OutcomeState.SUCCEEDED:
            digest = outcome.target_digest or "not verified"
            detail = f"{digest} ({outcome.attempts} attempt(s), {outcome.duration:.1f}s)"
        else:
            error = outcome.error
            reason = f"{error.kind.value}: {error.message}" if error else "no error recorded"
            detail = f"{reason} ({outcome.attempts} attempt(s))"
        lines.append(f"{outcome.state.value.upper():<10} {outcome.image}  {detail}")

    lines.append("")
    lines.append(
        f"{result.succeeded}/{result.total} succeeded, {result.failed} failed, "
        f"{result.cancelled} cancelled"
    )
    return "\n".join(lines)


def render_json(result: BatchResult) -> str:
    return json.dumps(result.to_dict(), indent=2)
