"""
Review & Review Reply writes.

DUPLICATE REVIEWS:
------------------
One review per (user, agent), enforced twice:
1. exists() check for a friendly Conflict in the common case
2. unique constraint at DB level for the race between two submissions;
   the IntegrityError is turned into the same Conflict
"""

from typing import Optional, Sequence
import logging

from django.db import IntegrityError, transaction

from .exceptions import Conflict, NotFound, ValidationError
from .models import MAX_REVIEW_IMAGES, Review, ReviewImage, ReviewReply
from .policies import ensure_editable, ensure_owner
from .queries import get_public_agent, get_review

logger = logging.getLogger(__name__)

DUPLICATE_REVIEW_MESSAGE = 'You have already submitted a review for this agent.'


def _replace_images(review: Review, images: Sequence[str]) -> None:
    if len(images) > MAX_REVIEW_IMAGES:
        raise ValidationError(f"Maximum of {MAX_REVIEW_IMAGES} images allowed per review.")
    review.images.all().delete()
    ReviewImage.objects.bulk_create([
        ReviewImage(review=review, url=url, position=position)
        for position, url in enumerate(images)
    ])


def submit_review(
    user,
    agent_id: int,
    rating: int,
    content: str,
    images: Optional[Sequence[str]] = None,
) -> Review:
    agent = get_public_agent(agent_id)
    images = list(images or [])

    if Review.objects.filter(agent=agent, user=user).exists():
        raise Conflict(DUPLICATE_REVIEW_MESSAGE)

    try:
        with transaction.atomic():
            review = Review.objects.create(
                agent=agent,
                user=user,
                rating=rating,
                content=content,
            )
            _replace_images(review, images)
    except IntegrityError:
        # Lost the race against a concurrent submission by the same user
        raise Conflict(DUPLICATE_REVIEW_MESSAGE)

    logger.info(f"User {user.pk} reviewed agent {agent.pk} ({rating}*)")
    return review


def edit_review(
    user,
    review_id: int,
    rating: int,
    content: str,
    images: Optional[Sequence[str]] = None,
    now=None,
) -> Review:
    """Replace rating, content and images. Images not sent are removed."""
    review = get_review(review_id)
    ensure_owner(review.user_id, user.pk, 'edit', 'reviews')
    ensure_editable('review', review.created_at, now)

    with transaction.atomic():
        review.rating = rating
        review.content = content
        review.save(update_fields=['rating', 'content', 'updated_at'])
        _replace_images(review, list(images or []))
    return review


def delete_review(user, review_id: int) -> None:
    """Authors may delete at any time. Replies, images and votes cascade."""
    review = get_review(review_id)
    ensure_owner(review.user_id, user.pk, 'delete', 'reviews')
    review.delete()
    logger.info(f"User {user.pk} deleted review {review_id}")


def add_reply(user, review_id: int, content: str) -> ReviewReply:
    review = get_review(review_id)
    return ReviewReply.objects.create(review=review, user=user, content=content)


def _get_reply(reply_id: int) -> ReviewReply:
    reply = (
        ReviewReply.objects
        .select_related('user__profile')
        .filter(pk=reply_id, review__agent__is_public=True)
        .first()
    )
    if reply is None:
        raise NotFound('Reply not found.')
    return reply


def update_reply(user, reply_id: int, content: str, now=None) -> ReviewReply:
    reply = _get_reply(reply_id)
    ensure_owner(reply.user_id, user.pk, 'update', 'replies')
    ensure_editable('reply', reply.created_at, now)

    reply.content = content
    reply.save(update_fields=['content', 'updated_at'])
    return reply


def delete_reply(user, reply_id: int) -> None:
    reply = _get_reply(reply_id)
    ensure_owner(reply.user_id, user.pk, 'delete', 'replies')
    reply.delete()
