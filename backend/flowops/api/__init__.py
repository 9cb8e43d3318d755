"""API router package."""

from fastapi import APIRouter, Depends

from flowops.api.v1 import (
    activities,
    attachments,
    auth,
    comments,
    labels,
    links,
    notifications,
    projects,
    search,
    sprints,
    tasks,
    teams,
    timelogs,
    websocket,
)
from flowops.middleware.rate_limit import api_limiter

router = APIRouter(dependencies=[Depends(api_limiter)])

# Include all API routers
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.project_router, prefix="/projects", tags=["Tasks"])
router.include_router(sprints.project_router, prefix="/projects", tags=["Sprints"])
router.include_router(teams.project_router, prefix="/projects", tags=["Teams"])
router.include_router(labels.project_router, prefix="/projects", tags=["Labels"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(comments.task_router, prefix="/tasks", tags=["Comments"])
router.include_router(timelogs.task_router, prefix="/tasks", tags=["Time Logs"])
router.include_router(links.task_router, prefix="/tasks", tags=["Issue Links"])
router.include_router(attachments.task_router, prefix="/tasks", tags=["Attachments"])
router.include_router(sprints.router, prefix="/sprints", tags=["Sprints"])
router.include_router(teams.router, prefix="/teams", tags=["Teams"])
router.include_router(comments.router, prefix="/comments", tags=["Comments"])
router.include_router(timelogs.router, prefix="/timelogs", tags=["Time Logs"])
router.include_router(links.router, prefix="/links", tags=["Issue Links"])
router.include_router(attachments.router, prefix="/attachments", tags=["Attachments"])
router.include_router(labels.router, prefix="/labels", tags=["Labels"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(activities.router, prefix="/activity", tags=["Activity"])
router.include_router(search.router, prefix="/search", tags=["Search"])

# Not rate limited: a socket is one long-lived connection
ws_router = APIRouter()
ws_router.include_router(websocket.router, tags=["WebSocket"])
