"""
Discussion & Comment writes.

Every mutation follows the same order of checks:
    1. target exists (NotFound)
    2. acting user is the author (Forbidden)
    3. still inside the edit window (EditWindowExpired), edits only

Field validation (lengths) happens in serializers before these run; the
model validators back them up in the admin.
"""

from typing import Optional
import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .exceptions import NotFound
from .models import Comment, Discussion
from .policies import ensure_editable, ensure_owner
from .queries import get_discussion, get_public_agent, get_visible_comment, has_hidden_ancestor

logger = logging.getLogger(__name__)


def create_discussion(user, agent_id: int, title: str, content: str) -> Discussion:
    agent = get_public_agent(agent_id)
    discussion = Discussion.objects.create(
        agent=agent,
        author=user,
        title=title,
        content=content,
    )
    logger.info(f"User {user.pk} opened discussion {discussion.pk} on agent {agent.pk}")
    return discussion


def update_discussion(
    user,
    discussion_id: int,
    title: Optional[str] = None,
    content: Optional[str] = None,
    now=None,
) -> Discussion:
    discussion = get_discussion(discussion_id)
    ensure_owner(discussion.author_id, user.pk, 'edit', 'discussions')
    ensure_editable('discussion', discussion.created_at, now)

    update_fields = ['updated_at']
    if title:
        discussion.title = title
        update_fields.append('title')
    if content:
        discussion.content = content
        update_fields.append('content')
    discussion.save(update_fields=update_fields)
    return discussion


def delete_discussion(user, discussion_id: int) -> None:
    """
    Delete a discussion. Comments cascade via FK, votes on the discussion
    and on its comments cascade via GenericRelation.
    """
    discussion = get_discussion(discussion_id)
    ensure_owner(discussion.author_id, user.pk, 'delete', 'discussions')

    with transaction.atomic():
        discussion.delete()
    logger.info(f"User {user.pk} deleted discussion {discussion_id}")


def create_comment(
    user,
    discussion_id: int,
    content: str,
    parent_id: Optional[int] = None,
) -> Comment:
    """
    Add a comment or a reply.

    The parent must be a visible comment of the SAME discussion (neither it
    nor any ancestor soft-deleted); anything else is reported as a missing
    parent.
    """
    discussion = get_discussion(discussion_id)

    with transaction.atomic():
        if parent_id is not None:
            parent = Comment.objects.filter(
                pk=parent_id,
                discussion=discussion,
                is_deleted=False
            ).first()
            if parent is None or has_hidden_ancestor(parent):
                raise NotFound('Parent comment not found.')

        # signals.increment_comment_count runs in this transaction
        comment = Comment.objects.create(
            discussion=discussion,
            author=user,
            parent_id=parent_id,
            content=content,
        )
    return comment


def update_comment(user, comment_id: int, content: str, now=None) -> Comment:
    comment = get_visible_comment(comment_id)
    ensure_owner(comment.author_id, user.pk, 'edit', 'comments')
    ensure_editable('comment', comment.created_at, now)

    comment.content = content
    comment.save(update_fields=['content', 'updated_at'])
    return comment


def delete_comment(user, comment_id: int, hard: bool = False) -> None:
    """
    Remove a comment.

    SOFT (default): the row stays with is_deleted=True. It and its subtree
    disappear from every read. Counters are given back once, for this
    comment only.

    HARD: the row and its subtree are deleted; the post_delete signal gives
    back counters for each visible comment removed. Votes cascade.
    """
    comment = get_visible_comment(comment_id)
    ensure_owner(comment.author_id, user.pk, 'delete', 'comments')

    with transaction.atomic():
        if hard:
            comment.delete()
        else:
            Comment.objects.filter(pk=comment.pk).update(
                is_deleted=True,
                updated_at=timezone.now()
            )
            Discussion.objects.filter(pk=comment.discussion_id, comment_count__gt=0).update(
                comment_count=F('comment_count') - 1
            )
            if comment.parent_id is not None:
                Comment.objects.filter(pk=comment.parent_id, reply_count__gt=0).update(
                    reply_count=F('reply_count') - 1
                )

    logger.info(f"User {user.pk} {'hard' if hard else 'soft'}-deleted comment {comment_id}")
