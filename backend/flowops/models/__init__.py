"""SQLAlchemy models."""

from flowops.models.activity import Activity, Notification
from flowops.models.project import Label, Project, ProjectMember
from flowops.models.sprint import Sprint
from flowops.models.task import (
    Attachment,
    Comment,
    CommentMention,
    IssueLink,
    Task,
    TimeLog,
    task_labels,
    task_watchers,
)
from flowops.models.team import Team, TeamMember
from flowops.models.user import User

__all__ = [
    "Activity",
    "Attachment",
    "Comment",
    "CommentMention",
    "IssueLink",
    "Label",
    "Notification",
    "Project",
    "ProjectMember",
    "Sprint",
    "Task",
    "Team",
    "TeamMember",
    "TimeLog",
    "User",
    "task_labels",
    "task_watchers",
]
