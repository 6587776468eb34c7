"""
Streak endpoints:

  GET  /api/streaks                          both streaks for the caller
  GET  /api/streaks/{activity_type}          one streak (task_completion | focus_session)
  POST /api/streaks/{activity_type}/credit   credit today; called by the task service
                                             when a task is completed
"""
import logging

from fastapi import APIRouter, Depends

from focustrack.dependencies import current_user, get_streak_tracker
from focustrack.errors import FocusTrackError
from focustrack.routes.common import http_error, streak_status_out, streak_update_out
from focustrack.schemas.response import StreakOut, StreakUpdateOut
from focustrack.services.streaks import ActivityType, StreakTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/streaks", tags=["streaks"])


@router.get("", response_model=list[StreakOut])
def list_streaks(
    user_id: str = Depends(current_user),
    tracker: StreakTracker = Depends(get_streak_tracker),
) -> list[StreakOut]:
    try:
        return [streak_status_out(s) for s in tracker.all_status(user_id)]
    except FocusTrackError as exc:
        raise http_error(exc) from exc


@router.get("/{activity_type}", response_model=StreakOut)
def streak_status(
    activity_type: ActivityType,
    user_id: str = Depends(current_user),
    tracker: StreakTracker = Depends(get_streak_tracker),
) -> StreakOut:
    try:
        return streak_status_out(tracker.status(user_id, activity_type))
    except FocusTrackError as exc:
        raise http_error(exc) from exc


@router.post("/{activity_type}/credit", response_model=StreakUpdateOut)
def credit_streak(
    activity_type: ActivityType,
    user_id: str = Depends(current_user),
    tracker: StreakTracker = Depends(get_streak_tracker),
) -> StreakUpdateOut:
    try:
        update = tracker.update(user_id, activity_type)
    except FocusTrackError as exc:
        raise http_error(exc) from exc
    logger.info("[%s] %s streak credited via API (%s)", user_id, activity_type.value, update.outcome.value)
    return streak_update_out(update)
