"""
Terraform JSON rendering of a roster resource graph.

Writes the same layout a CDK for Terraform synth produces:
cdktf.out/stacks/<stack>/cdk.tf.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from roster_graph import ResourceGraph


PROVIDER_NAME = "pagerduty"
PROVIDER_SOURCE = "PagerDuty/pagerduty"
PROVIDER_VERSION = "~> 3.0"
TOKEN_VARIABLE = "pagerduty_token"

USER_RESOURCE = "pagerduty_user"
TEAM_RESOURCE = "pagerduty_team"
MEMBERSHIP_RESOURCE = "pagerduty_team_membership"

STACK_FILE = "cdk.tf.json"


def ref(resource_type: str, resource_id: str, attribute: str = "id") -> str:
    return f"${{{resource_type}.{resource_id}.{attribute}}}"


def stack_document(
    graph: "ResourceGraph",
    token: Optional[str] = None,
    provider_version: str = PROVIDER_VERSION,
) -> Dict[str, Any]:
    """
    Build the Terraform JSON document for `graph`.

    Without a token the provider reads var.pagerduty_token, so no secret is
    written to disk. Empty role/job_title are left out and the platform
    defaults apply.
    """
    doc: Dict[str, Any] = {
        "terraform": {
            "required_providers": {
                PROVIDER_NAME: {"source": PROVIDER_SOURCE, "version": provider_version},
            }
        }
    }

    if token:
        doc["provider"] = {PROVIDER_NAME: [{"token": token}]}
    else:
        doc["variable"] = {TOKEN_VARIABLE: {"type": "string", "sensitive": True}}
        doc["provider"] = {PROVIDER_NAME: [{"token": f"${{var.{TOKEN_VARIABLE}}}"}]}

    users: Dict[str, Dict[str, str]] = {}
    for user in graph.users.values():
        body = {"name": user.name, "email": user.email}
        if user.role:
            body["role"] = user.role
        if user.job_title:
            body["job_title"] = user.job_title
        users[user.resource_id] = body

    teams = {team.resource_id: {"name": team.name} for team in graph.teams.values()}

    memberships = {
        edge.resource_id: {
            "team_id": ref(TEAM_RESOURCE, edge.team_id),
            "user_id": ref(USER_RESOURCE, edge.user_id),
        }
        for edge in graph.memberships.values()
    }

    resource: Dict[str, Any] = {}
    for resource_type, block in (
        (USER_RESOURCE, users),
        (TEAM_RESOURCE, teams),
        (MEMBERSHIP_RESOURCE, memberships),
    ):
        if block:
            resource[resource_type] = block
    if resource:
        doc["resource"] = resource

    return doc


def write_stack(
    graph: "ResourceGraph",
    out_folder: Path,
    stack_name: str,
    logger: logging.Logger,
    token: Optional[str] = None,
) -> Path:
    stack_dir = Path(out_folder) / "stacks" / stack_name
    stack_dir.mkdir(parents=True, exist_ok=True)
    out_path = stack_dir / STACK_FILE

    doc = stack_document(graph, token=token)
    out_path.write_text(json.dumps(doc, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")

    logger.info(
        f"Wrote stack: {out_path.resolve()} users={len(graph.users)} "
        f"teams={len(graph.teams)} memberships={len(graph.memberships)}"
    )
    return out_path
