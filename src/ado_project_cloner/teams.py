"""
Team, team membership, team settings and security group membership cloning.

Everything below team creation is best-effort: failures are logged and
never fail the teams step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from .exceptions import is_already_exists

if TYPE_CHECKING:
    from .models import ProjectInfo
    from .protocols import AdoClient, ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

SECURITY_GROUP_MARKERS: Final[tuple[str, ...]] = ("Administrator", "Project", "Contributor")
COPIED_TEAM_SETTINGS: Final[tuple[str, ...]] = (
    "backlogVisibilities",
    "bugsBehavior",
    "workingDays",
    "defaultIterationMacro",
)
# Descriptor prefix of project-local groups; those belong to the source project
_LOCAL_GROUP_PREFIX: Final[str] = "vssgp."


@dataclass
class TeamCloneStats:
    teams: int = 0
    members: int = 0
    group_memberships: int = 0

    def summary(self) -> str:
        return (
            f"Cloned {self.teams} teams, {self.members} team members "
            f"and {self.group_memberships} security group memberships"
        )


def default_team_name(project_name: str) -> str:
    return f"{project_name} Team"


def clone_team_members(
    client: AdoClient,
    source_project: ProjectInfo,
    source_team: dict[str, Any],
    target_team: dict[str, Any],
) -> int:
    """Add the members of source_team to target_team's group."""
    try:
        members = client.list_team_members(source_project.name, str(source_team["id"]))
        team_descriptor = client.get_descriptor(str(target_team["id"]))
    except Exception as e:
        logger.warning(f"Could not read members of team '{source_team.get('name')}': {e}")
        return 0

    added = 0
    for member in members:
        identity = member.get("identity") or member
        name = identity.get("displayName") or identity.get("uniqueName") or identity.get("id")
        try:
            member_descriptor = identity.get("descriptor") or client.get_descriptor(str(identity["id"]))
            client.add_membership(member_descriptor, team_descriptor)
        except Exception as e:
            logger.warning(f"Failed to add {name} to team '{target_team.get('name')}': {e}")
            continue
        added += 1
    return added


def clone_team_settings(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    team_name: str,
    target_team_name: str | None = None,
) -> bool:
    """Copy backlog visibilities, bugs behavior and working days of one team."""
    try:
        settings = client.get_team_settings(source_project.name, team_name)
        payload = {key: settings[key] for key in COPIED_TEAM_SETTINGS if settings.get(key) is not None}
        if not payload:
            return False
        client.update_team_settings(target_project.name, target_team_name or team_name, payload)
    except Exception as e:
        logger.warning(f"Failed to copy settings of team '{team_name}': {e}")
        return False
    return True


def clone_security_group_memberships(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    progress: ProgressSink | None = None,
) -> int:
    """Give the target's administrator/contributor groups the direct members of their source counterparts.

    Returns:
        Number of memberships added
    """
    try:
        source_groups = client.list_groups(client.get_descriptor(source_project.id))
        target_groups = client.list_groups(client.get_descriptor(target_project.id))
    except Exception as e:
        logger.warning(f"Could not list security groups: {e}")
        return 0

    target_by_name = {str(group.get("displayName", "")).lower(): group for group in target_groups}
    added = 0
    for group in source_groups:
        display_name = str(group.get("displayName", ""))
        if not any(marker in display_name for marker in SECURITY_GROUP_MARKERS):
            continue

        expected = display_name.replace(source_project.name, target_project.name).lower()
        target_group = target_by_name.get(expected)
        if target_group is None:
            logger.info(f"No target group matching '{display_name}', skipping")
            continue

        try:
            memberships = client.list_memberships(group["descriptor"], direction="down")
        except Exception as e:
            logger.warning(f"Could not list members of '{display_name}': {e}")
            continue

        if progress is not None:
            progress.log("info", f"Configuring security group: {display_name} ({len(memberships)} members)")
        for membership in memberships:
            member = membership.get("memberDescriptor", "")
            if not member or member.startswith(_LOCAL_GROUP_PREFIX):
                continue
            try:
                client.add_membership(member, target_group["descriptor"])
            except Exception as e:
                if not is_already_exists(e):
                    logger.warning(f"Failed to add {member} to '{target_group.get('displayName')}': {e}")
                continue
            added += 1
    return added


def clone_teams(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    progress: ProgressSink | None = None,
) -> str:
    """Clone teams (except the default team), their members and settings, then security group memberships."""
    stats = TeamCloneStats()
    default_team = default_team_name(source_project.name).lower()

    for team in client.list_teams(source_project.name):
        name = team["name"]
        if name.lower() == default_team:
            continue

        if progress is not None:
            progress.log("info", f"Cloning team: {name}")
        try:
            created = client.create_team(target_project.name, name, team.get("description") or "")
        except Exception as e:
            if is_already_exists(e):
                logger.info(f"Team '{name}' already exists in {target_project.name}")
            else:
                logger.warning(f"Failed to create team '{name}': {e}")
            continue

        stats.teams += 1
        stats.members += clone_team_members(client, source_project, team, created)
        clone_team_settings(client, source_project, target_project, name)

    stats.group_memberships = clone_security_group_memberships(client, source_project, target_project, progress)
    logger.info(stats.summary())
    return stats.summary()
