"""
Maps action outcomes onto the uniform JSON shape and HTTP status consumed by
the web layer.
"""
import re
from typing import Any, Dict, Optional, Tuple

from .models import ActionKind, ActionOutcome, ErrorCode

# Messages PM2 prints when it does not know a process. PM2 exits with 1 for
# this and for unrelated failures alike, so the text is the only signal.
# Best-effort: future PM2 releases may reword these.
UNKNOWN_PROCESS_PATTERNS = (
    re.compile(r"process or namespace \S+ not found", re.IGNORECASE),
    re.compile(r"process \S+ not found", re.IGNORECASE),
    re.compile(r"script not found", re.IGNORECASE),
)

ACTION_LABELS: Dict[ActionKind, str] = {
    ActionKind.START: "Start",
    ActionKind.STOP: "Stop",
    ActionKind.RESTART: "Restart",
    ActionKind.PULL_SOURCE: "Git pull",
    ActionKind.INSTALL_DEPENDENCIES: "NPM install",
    ActionKind.BUILD: "NPM build",
    ActionKind.DEPLOY: "NPM deploy",
}

_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.INVALID_ACTION: 400,
    ErrorCode.NO_WORKING_DIRECTORY: 400,
    ErrorCode.DIRECTORY_MISSING: 400,
    ErrorCode.MANIFEST_MISSING: 400,
    ErrorCode.MANIFEST_INVALID: 400,
    ErrorCode.SCRIPT_MISSING: 400,
    ErrorCode.PROCESS_NOT_FOUND: 404,
    ErrorCode.UNKNOWN_PROCESS: 404,
    ErrorCode.DIRECTORY_UNAVAILABLE: 500,
}


def classify_supervisor_failure(outcome: ActionOutcome) -> Optional[ErrorCode]:
    """
    Heuristically refine the error code of a failed supervisor command.

    Returns ``UnknownProcess`` when the command exited non-zero and its output
    matches one of PM2's "not found" messages, otherwise the outcome's own code.
    Timeouts and spawn failures are never reclassified.
    """
    if outcome.succeeded or outcome.error_code != ErrorCode.COMMAND_FAILED:
        return outcome.error_code
    text = f"{outcome.stderr}\n{outcome.stdout}"
    if any(pattern.search(text) for pattern in UNKNOWN_PROCESS_PATTERNS):
        return ErrorCode.UNKNOWN_PROCESS
    return ErrorCode.COMMAND_FAILED


def normalize_supervisor_outcome(outcome: ActionOutcome, name: str) -> ActionOutcome:
    code = classify_supervisor_failure(outcome)
    if code != ErrorCode.UNKNOWN_PROCESS:
        return outcome
    return outcome.model_copy(
        update={
            "error_code": code,
            "error_message": f"Process {name} is not known to the supervisor",
        }
    )


def http_status_for(outcome: ActionOutcome) -> int:
    """
    Structurally invalid requests and unmet preconditions get a non-2xx status;
    tool-level failures are reported as 200 with ``success: false``.
    """
    if outcome.succeeded or outcome.error_code is None:
        return 200
    return _STATUS_BY_CODE.get(outcome.error_code, 200)


def to_response(
    outcome: ActionOutcome, process_name: str, action: ActionKind
) -> Tuple[int, Dict[str, Any]]:
    """
    Build the status code and JSON body returned for an action endpoint.
    """
    label = ACTION_LABELS[action]
    body: Dict[str, Any] = {
        "success": outcome.succeeded,
        "action": action.value,
        "processName": process_name,
    }
    if outcome.working_directory:
        body["workingDirectory"] = outcome.working_directory

    if outcome.succeeded:
        body["output"] = outcome.stdout or f"{label} completed successfully"
        body["message"] = f"{label} succeeded for {process_name}"
        if outcome.stderr:
            body["stderr"] = outcome.stderr
        return 200, body

    code = outcome.error_code or ErrorCode.COMMAND_FAILED
    body["error"] = code.value
    body["message"] = outcome.error_message or f"{label} failed for {process_name}"
    details = outcome.stderr or outcome.stdout
    if details:
        body["details"] = details
    if outcome.stdout:
        body["output"] = outcome.stdout
    if outcome.stderr:
        body["stderr"] = outcome.stderr
    return http_status_for(outcome), body
