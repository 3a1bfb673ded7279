"""Data models for the Teams inventory report."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class TeamUser:
    """A member of a team. Only the role feeds the report."""
    role: str
    user_id: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_graph(cls, member: dict) -> "TeamUser":
        # Graph marks owners and guests in `roles`; plain members have none
        roles = member.get("roles") or []
        return cls(
            role=roles[0] if roles else "member",
            user_id=member.get("userId"),
            display_name=member.get("displayName"),
            email=member.get("email"),
        )


@dataclass
class TeamChannel:
    """A channel within a team."""
    id: str
    display_name: Optional[str] = None
    membership_type: str = "standard"

    @classmethod
    def from_graph(cls, channel: dict) -> "TeamChannel":
        return cls(
            id=channel["id"],
            display_name=channel.get("displayName"),
            membership_type=channel.get("membershipType") or "standard",
        )


@dataclass
class Team:
    """A team with its group properties and policy settings."""
    group_id: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[str] = None
    archived: bool = False
    show_in_teams_search_and_suggestions: Optional[bool] = None
    classification: Optional[str] = None
    mail_nick_name: Optional[str] = None

    # funSettings
    allow_giphy: Optional[bool] = None
    giphy_content_rating: Optional[str] = None
    allow_stickers_and_memes: Optional[bool] = None
    allow_custom_memes: Optional[bool] = None

    # guestSettings
    allow_guest_create_update_channels: Optional[bool] = None
    allow_guest_delete_channels: Optional[bool] = None

    # memberSettings
    allow_create_update_channels: Optional[bool] = None
    allow_delete_channels: Optional[bool] = None
    allow_add_remove_apps: Optional[bool] = None
    allow_create_update_remove_tabs: Optional[bool] = None
    allow_create_update_remove_connectors: Optional[bool] = None

    # messagingSettings
    allow_user_edit_messages: Optional[bool] = None
    allow_user_delete_messages: Optional[bool] = None
    allow_owner_delete_messages: Optional[bool] = None
    allow_team_mentions: Optional[bool] = None
    allow_channel_mentions: Optional[bool] = None

    @classmethod
    def from_graph(cls, group: dict, team: dict = None) -> "Team":
        """
        Merge a team-enabled group and its team resource into one Team.

        `group` comes from the groups listing, `team` from /teams/{id}.
        Values on the team resource win where both carry a property.
        """
        team = team or {}
        fun = team.get("funSettings") or {}
        guest = team.get("guestSettings") or {}
        member = team.get("memberSettings") or {}
        messaging = team.get("messagingSettings") or {}
        discovery = team.get("discoverySettings") or {}

        def pick(key):
            value = team.get(key)
            return value if value is not None else group.get(key)

        return cls(
            group_id=group["id"],
            display_name=pick("displayName"),
            description=pick("description"),
            visibility=pick("visibility"),
            archived=bool(team.get("isArchived", False)),
            show_in_teams_search_and_suggestions=discovery.get("showInTeamsSearchAndSuggestions"),
            classification=pick("classification"),
            mail_nick_name=group.get("mailNickname"),
            allow_giphy=fun.get("allowGiphy"),
            giphy_content_rating=fun.get("giphyContentRating"),
            allow_stickers_and_memes=fun.get("allowStickersAndMemes"),
            allow_custom_memes=fun.get("allowCustomMemes"),
            allow_guest_create_update_channels=guest.get("allowCreateUpdateChannels"),
            allow_guest_delete_channels=guest.get("allowDeleteChannels"),
            allow_create_update_channels=member.get("allowCreateUpdateChannels"),
            allow_delete_channels=member.get("allowDeleteChannels"),
            allow_add_remove_apps=member.get("allowAddRemoveApps"),
            allow_create_update_remove_tabs=member.get("allowCreateUpdateRemoveTabs"),
            allow_create_update_remove_connectors=member.get("allowCreateUpdateRemoveConnectors"),
            allow_user_edit_messages=messaging.get("allowUserEditMessages"),
            allow_user_delete_messages=messaging.get("allowUserDeleteMessages"),
            allow_owner_delete_messages=messaging.get("allowOwnerDeleteMessages"),
            allow_team_mentions=messaging.get("allowTeamMentions"),
            allow_channel_mentions=messaging.get("allowChannelMentions"),
        )
