"""Actionable error catalog for podship."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "local_tool_missing": {
        "what": "Required local tool `{tool}` was not found on PATH.",
        "next": "Install `{tool}` on this machine and retry.",
    },
    "remote_tools_missing": {
        "what": "Remote check failed on {host}: {tools} are required on the host.",
        "next": "Install the missing tools on the remote host and retry.",
    },
    "service_running": {
        "what": "Service '{service}' is RUNNING on {host}.",
        "next": "Stop it before pushing a database to prevent corruption: `podship stop {env}`.",
    },
    "service_state_unknown": {
        "what": "Could not determine the state of '{service}' on {host}: {error}",
        "next": "Check SSH access and `systemctl --user status {service}` on the host, then retry.",
    },
    "dirty_worktree": {
        "what": "Git working directory is dirty.",
        "next": "Commit or stash changes before releasing.",
    },
    "tag_not_on_head": {
        "what": "HEAD ({head}) is not at tag {tag} ({tag_commit}).",
        "next": "Checkout the tag first: `git checkout {tag}`.",
    },
    "tag_not_pushed": {
        "what": "Tag '{tag}' exists locally but not on origin.",
        "next": "Push it with `git push origin {tag}`; releases require synced tags.",
    },
    "local_db_missing": {
        "what": "Local database file not found: {path}",
        "next": "Pull the database first or fix `database.source` in deploy.yaml.",
    },
    "rollback_failed": {
        "what": "CRITICAL: rollback of '{service}' on {host} failed: {error}",
        "next": "Log in to the host and restore `{backup}` manually; both releases may be damaged.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
