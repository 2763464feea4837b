"""Session and workspace membership tool handlers.

- ``session_sign_in`` / ``session_sign_out`` -- set or clear the signed-in
  user (the identity comes from the caller's auth provider).
- ``workspace_create`` -- create a business workspace and become its owner.
- ``workspace_join`` -- accept an invite code.
- ``workspace_invite`` -- issue invite codes for a list of emails.
- ``workspace_members`` -- list members of the active workspace.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import mcp.types as types

from .errors import build_error_response, text_result
from .registry import build_specs

if TYPE_CHECKING:
    from ...store import JobStore

logger = logging.getLogger(__name__)

SESSION_TOOLS = [
    types.Tool(
        name="session_sign_in",
        description=(
            "Sign a user in and activate their workspace. Data created before "
            "workspaces existed is moved into the workspace on first use."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "user": {
                    "type": "object",
                    "description": "{id, email, name?, role?: owner|member, workspaceId?, workspaceName?}",
                },
            },
            "required": ["user"],
        },
    ),
    types.Tool(
        name="session_sign_out",
        description="Sign out. Local data and pending changes stay on this device.",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="workspace_create",
        description="Create a business workspace owned by the given email; returns an invite code for teammates.",
        inputSchema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Business name"},
                "owner_email": {"type": "string", "description": "Owner email"},
            },
            "required": ["name", "owner_email"],
        },
    ),
    types.Tool(
        name="workspace_join",
        description="Join an existing workspace with an invite code.",
        inputSchema={
            "type": "object",
            "properties": {
                "email": {"type": "string"},
                "invite_code": {"type": "string", "description": "e.g. INV-7K2Q9Z"},
            },
            "required": ["email", "invite_code"],
        },
    ),
    types.Tool(
        name="workspace_invite",
        description="Create invite codes for teammates of the active workspace.",
        inputSchema={
            "type": "object",
            "properties": {
                "emails": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["emails"],
        },
    ),
    types.Tool(
        name="workspace_members",
        description="List members of the active workspace.",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
]


async def handle_session_tool(
    name: str, arguments: dict | None, store: JobStore
) -> types.CallToolResult:
    args = arguments or {}

    match name:
        case "session_sign_in":
            user = args.get("user")
            if not isinstance(user, dict):
                raise ValueError("user must be an object")
            store.set_authenticated_user(user)
            state = store.state
            return text_result(
                f"Signed in as {state.user_email}. "
                f"Workspace: {state.workspace_id or 'not linked'}",
                {"userId": state.current_user_id, "workspaceId": state.workspace_id},
            )
        case "session_sign_out":
            store.clear_authentication()
            return text_result("Signed out. Local data kept.")
        case "workspace_create":
            name_arg = _required_str(args, "name")
            owner_email = _required_str(args, "owner_email")
            invite_code = await store.link_business_owner(name_arg, owner_email)
            if invite_code is None:
                return build_error_response(
                    "server_error",
                    f"Could not create workspace '{name_arg}'.",
                    "Check connectivity and retry.",
                )
            return text_result(
                f"Workspace '{name_arg}' created ({store.state.workspace_id}). "
                f"Invite code: {invite_code}",
                {"workspaceId": store.state.workspace_id, "inviteCode": invite_code},
            )
        case "workspace_join":
            email = _required_str(args, "email")
            invite_code = _required_str(args, "invite_code")
            if not await store.accept_business_invite(email, invite_code):
                return build_error_response(
                    "not_found",
                    f"Invite code {invite_code} was not accepted.",
                    "Ask the workspace owner for a new invite code.",
                )
            return text_result(
                f"Joined workspace {store.state.workspace_id} as {store.state.role}.",
                {"workspaceId": store.state.workspace_id, "role": store.state.role},
            )
        case "workspace_invite":
            emails = args.get("emails")
            if not isinstance(emails, list) or not emails:
                raise ValueError("emails must be a non-empty array")
            invites = await store.invite_members([str(e) for e in emails])
            lines = [f"{i.get('email')}: {i.get('inviteCode')}" for i in invites]
            return text_result(
                "\n".join(lines) if lines else "No invites created.",
                {"invites": invites},
            )
        case "workspace_members":
            members = await store.list_workspace_members()
            lines = [f"{m.get('email')} ({m.get('role')})" for m in members]
            return text_result(
                "\n".join(lines) if lines else "No members found.",
                {"members": members},
            )
        case _:
            raise ValueError(f"Unknown session tool: {name}")


def _required_str(args: dict, key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} is required")
    return value.strip()


SESSION_SPECS = build_specs(
    SESSION_TOOLS,
    {tool.name: frozenset({"SESSION_ADMIN"}) for tool in SESSION_TOOLS},
    handle_session_tool,
)
