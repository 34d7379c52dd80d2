from studio.core.errors import NotFoundError
from studio.core.models import Idea, Milestone, Task

from .fuzzy import find_in_pool

__all__ = ["resolve_idea", "resolve_milestone", "resolve_task"]


def resolve_task(ref: str, idea_id: str | None = None) -> Task:
    from studio.tasks import get_tasks

    pool = get_tasks(idea_id=idea_id)
    task = find_in_pool(ref, pool)
    if not task:
        raise NotFoundError(f"No task found: '{ref}'")
    return task


def resolve_idea(ref: str) -> Idea:
    from studio.ideas import get_ideas

    idea = find_in_pool(ref, get_ideas())
    if not idea:
        raise NotFoundError(f"No idea found: '{ref}'")
    return idea


def resolve_milestone(ref: str) -> Milestone:
    from studio.milestones import get_milestones

    milestone = find_in_pool(ref, get_milestones())
    if not milestone:
        raise NotFoundError(f"No milestone found: '{ref}'")
    return milestone
