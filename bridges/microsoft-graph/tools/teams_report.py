#!/usr/bin/env python3
"""
Microsoft Teams Inventory Report

Builds one flat record per team in the tenant with channel and role counts,
plus optional policy fields. Intended for spotting ownerless, empty or
poorly described teams.

Output modes:
  --json       Machine-readable JSON (default)
  --table      Human-readable table
  --csv        CSV for spreadsheet import

Usage:
    python3 teams_report.py                          # Base fields, JSON
    python3 teams_report.py --all-details --csv      # Every field group, CSV
    python3 teams_report.py --detailed --table       # Description score + permissions
    python3 teams_report.py --ownerless --table      # Teams with no owners
    python3 teams_report.py --empty                  # Teams with no users at all
    python3 teams_report.py --connect --disconnect   # Explicit session lifecycle

A team whose settings, members or channels cannot be fetched is logged as
a warning and left out. A failure to connect or to list teams exits 1.
"""

import io
import sys
import csv
import json
import logging
import argparse
from dataclasses import dataclass
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))
from graph_client import GraphClient, GraphError, SessionError, EnumerationError
from team_models import Team, TeamUser, TeamChannel

log = logging.getLogger(__name__)

ROLE_BUCKETS = (("Owners", "owner"), ("Members", "member"), ("Guests", "guest"))

# Report field name -> Team attribute, in output order
GIPHY_FIELDS = (
    ("AllowGiphy", "allow_giphy"),
    ("GiphyContentRating", "giphy_content_rating"),
)
MEMES_FIELDS = (
    ("AllowStickersAndMemes", "allow_stickers_and_memes"),
    ("AllowCustomMemes", "allow_custom_memes"),
)
GUEST_FIELDS = (
    ("AllowGuestCreateUpdateChannels", "allow_guest_create_update_channels"),
    ("AllowGuestDeleteChannels", "allow_guest_delete_channels"),
)
PERMISSION_FIELDS = (
    ("AllowCreateUpdateChannels", "allow_create_update_channels"),
    ("AllowDeleteChannels", "allow_delete_channels"),
    ("AllowAddRemoveApps", "allow_add_remove_apps"),
    ("AllowCreateUpdateRemoveTabs", "allow_create_update_remove_tabs"),
    ("AllowCreateUpdateRemoveConnectors", "allow_create_update_remove_connectors"),
    ("AllowUserEditMessages", "allow_user_edit_messages"),
    ("AllowUserDeleteMessages", "allow_user_delete_messages"),
    ("AllowOwnerDeleteMessages", "allow_owner_delete_messages"),
    ("AllowTeamMentions", "allow_team_mentions"),
    ("AllowChannelMentions", "allow_channel_mentions"),
)


@dataclass
class ReportOptions:
    """Session lifecycle and field-group switches for a report run."""
    connect: bool = False
    disconnect: bool = False
    include_giphy_details: bool = False
    include_memes_details: bool = False
    include_guest_details: bool = False
    detailed: bool = False
    all_details: bool = False

    # all_details adds to the individual flags, it never turns one off
    @property
    def giphy(self) -> bool:
        return self.include_giphy_details or self.all_details

    @property
    def memes(self) -> bool:
        return self.include_memes_details or self.all_details

    @property
    def guest(self) -> bool:
        return self.include_guest_details or self.all_details

    @property
    def details(self) -> bool:
        return self.detailed or self.all_details

    @classmethod
    def from_args(cls, args) -> "ReportOptions":
        return cls(
            connect=args.connect,
            disconnect=args.disconnect,
            include_giphy_details=args.include_giphy_details,
            include_memes_details=args.include_memes_details,
            include_guest_details=args.include_guest_details,
            detailed=args.detailed,
            all_details=args.all_details,
        )


# ── Record Shaping ─────────────────────────────────────────────────────

def score_description(description) -> tuple:
    """Return (word count, score) for a team description."""
    words = len((description or "").split())
    if words == 0:
        score = "Terrible"
    elif words <= 2:
        score = "Poor"
    elif words <= 5:
        score = "OK"
    elif words >= 6:
        score = "Good"
    else:
        score = "Unknown"
    return words, score


def count_roles(users: list) -> dict:
    """Count users per role bucket. Unrecognised roles count nowhere."""
    roles = [(u.role or "").lower() for u in users]
    return {field: roles.count(role) for field, role in ROLE_BUCKETS}


def build_team_record(team: Team, users: list, channels: list, options: ReportOptions) -> dict:
    """Flatten one team into a report record. GroupId is always the last key."""
    record = {
        "DisplayName": team.display_name,
        "Description": team.description,
        "Visibility": team.visibility,
        "Archived": team.archived,
        "ShowInTeamsSearchAndSuggestions": team.show_in_teams_search_and_suggestions,
        "Channels": len(channels),
    }
    record.update(count_roles(users))

    groups = []
    if options.giphy:
        groups.append(GIPHY_FIELDS)
    if options.memes:
        groups.append(MEMES_FIELDS)
    if options.guest:
        groups.append(GUEST_FIELDS)
    for fields in groups:
        for name, attr in fields:
            record[name] = getattr(team, attr)

    if options.details:
        words, score = score_description(team.description)
        record["DescriptionWordCount"] = words
        record["DescriptionScore"] = score
        record["Classification"] = team.classification or "None"
        record["MailNickName"] = team.mail_nick_name or "None"
        for name, attr in PERMISSION_FIELDS:
            record[name] = getattr(team, attr)

    record["GroupId"] = team.group_id
    return record


# ── Report Builder ─────────────────────────────────────────────────────

def _report_team(client, group: dict, options: ReportOptions) -> dict:
    team_id = group["id"]
    settings = client.get_team(team_id)
    users = [TeamUser.from_graph(m) for m in client.list_team_users(team_id)]
    channels = [TeamChannel.from_graph(c) for c in client.list_team_channels(team_id)]
    team = Team.from_graph(group, settings)
    return build_team_record(team, users, channels, options)


def build_report(client, options: ReportOptions = None) -> list:
    """
    Build one record per team in the tenant.

    Raises SessionError if --connect fails and EnumerationError if the
    teams cannot be listed. Per-team failures are logged and skipped.
    """
    options = options or ReportOptions()
    records = []
    skipped = 0

    if options.connect:
        client.connect()

    try:
        groups = client.list_teams()
        log.debug("Enumerated %d teams", len(groups))

        for group in groups:
            name = group.get("displayName") or "?"
            team_id = group.get("id") or "?"
            log.debug("Processing team %s (%s)", name, team_id)
            try:
                record = _report_team(client, group, options)
            except GraphError as e:
                log.warning(
                    "Skipping team %s (%s): %s [category=%s, source=%s]",
                    name, team_id, e.message, e.category, e.source,
                )
                skipped += 1
                continue
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                log.warning(
                    "Skipping team %s (%s): %s [category=%s, source=build_team_record]",
                    name, team_id, e, type(e).__name__,
                )
                skipped += 1
                continue
            records.append(record)
    finally:
        if options.disconnect:
            try:
                client.disconnect()
            except GraphError as e:
                log.warning("Disconnect failed: %s [category=%s]", e.message, e.category)

    log.info("%d teams reported, %d skipped", len(records), skipped)
    return records


# ── Filtering and Output ───────────────────────────────────────────────

def filter_records(records: list, ownerless: bool = False, empty: bool = False) -> list:
    """Keep records passing every active filter."""
    result = records
    if ownerless:
        result = [r for r in result if r["Owners"] == 0]
    if empty:
        result = [r for r in result if r["Owners"] + r["Members"] + r["Guests"] == 0]
    return result


def format_table(records: list) -> str:
    """Format the required fields as a fixed-width table."""
    lines = []
    lines.append(f"Microsoft Teams: {len(records)}")
    lines.append("")
    header = (
        f"{'Team Name':<40s}  {'Visibility':<10s}  {'Archived':<8s}  "
        f"{'Channels':>8s}  {'Owners':>6s}  {'Members':>7s}  {'Guests':>6s}"
    )
    lines.append(header)
    lines.append("-" * 100)
    for r in sorted(records, key=lambda x: (x.get("DisplayName") or "").lower()):
        name = (r.get("DisplayName") or "?")[:40]
        visibility = (r.get("Visibility") or "?")[:10]
        archived = "yes" if r.get("Archived") else "no"
        lines.append(
            f"{name:<40s}  {visibility:<10s}  {archived:<8s}  "
            f"{r['Channels']:>8d}  {r['Owners']:>6d}  {r['Members']:>7d}  {r['Guests']:>6d}"
        )
    return "\n".join(lines)


def format_csv(records: list) -> str:
    """Format records as CSV, columns taken from the first record."""
    if not records:
        return ""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=list(records[0].keys()))
    writer.writeheader()
    for r in records:
        writer.writerow(r)
    return output.getvalue()


# ── main ───────────────────────────────────────────────────────────────

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Microsoft Teams inventory report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 teams_report.py --all-details --csv      Every field group as CSV
  python3 teams_report.py --ownerless --table      Teams with no owners
""")
    parser.add_argument("--connect", action="store_true",
        help="Establish the Graph session before listing teams")
    parser.add_argument("--disconnect", action="store_true",
        help="Tear down the Graph session after the report is built")
    parser.add_argument("--include-giphy-details", action="store_true",
        help="Add AllowGiphy and GiphyContentRating")
    parser.add_argument("--include-memes-details", action="store_true",
        help="Add AllowStickersAndMemes and AllowCustomMemes")
    parser.add_argument("--include-guest-details", action="store_true",
        help="Add guest channel permissions")
    parser.add_argument("--detailed", action="store_true",
        help="Add description score, classification, mail nickname and member permissions")
    parser.add_argument("--all-details", action="store_true",
        help="Add every optional field group")

    fmt = parser.add_mutually_exclusive_group()
    fmt.add_argument("--json", dest="output_format", action="store_const", const="json",
        help="Output JSON (default)")
    fmt.add_argument("--table", dest="output_format", action="store_const", const="table",
        help="Output a human-readable table")
    fmt.add_argument("--csv", dest="output_format", action="store_const", const="csv",
        help="Output CSV")
    parser.set_defaults(output_format="json")

    parser.add_argument("--ownerless", action="store_true",
        help="Only teams with no owners")
    parser.add_argument("--empty", action="store_true",
        help="Only teams with no owners, members or guests")
    parser.add_argument("-v", "--verbose", action="store_true",
        help="Debug logging on stderr")
    return parser.parse_args(argv)


def main(argv=None, client=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    client = client or GraphClient()
    try:
        records = build_report(client, ReportOptions.from_args(args))
    except (SessionError, EnumerationError) as e:
        print(f"ERROR: {e} ({e.category}, {e.source})", file=sys.stderr)
        sys.exit(1)

    records = filter_records(records, ownerless=args.ownerless, empty=args.empty)

    if args.output_format == "table":
        print(format_table(records))
    elif args.output_format == "csv":
        print(format_csv(records), end="")
    else:
        print(json.dumps(records, indent=2, default=str))


if __name__ == "__main__":
    main()
