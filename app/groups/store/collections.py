"""
Collection names for the group graph.

Group is the root; everything else carries a ``group_id`` so a group can be
removed together with all of its records.
"""

GROUPS = "groups"
GROUP_MEMBERS = "group_members"
OCCURRENCES = "occurrences"
ATTENDANCE_RESPONSES = "attendance_responses"

# Display profiles keyed by user id; not owned by any group
USERS = "users"
