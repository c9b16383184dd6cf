"""
Vote Ledger & Score Aggregation
===============================

This module handles vote operations with:
1. One vote per (user, target), values -1 / 0 / +1
2. Cached score recomputed from the ledger on every mutation
3. Race condition prevention

VOTE STATE MACHINE (same for discussions, comments and reviews):
----------------------------------------------------------------
    existing | value | action
    ---------+-------+-------------------------------------------
    none     |   0   | no-op
    none     |  +-1  | insert row
    v        |   0   | delete row (retract)
    v        |   v   | no-op (re-submitting the same vote is idempotent)
    v        |  -v   | update row in place

Value 0 is never stored.

CONCURRENCY STRATEGY:
---------------------
Problem: Two users voting on the same comment at the same moment.
Naive: read score -> add delta -> write score -> LOST UPDATE!

Solution: lock the target row with SELECT ... FOR UPDATE, mutate the
ledger, then recompute the score as SUM(value) over the ledger and write
it back, all inside one transaction. Concurrent voters on the same target
queue on the row lock, so the persisted score never comes from a stale
read-modify-write.

The caller still gets the approximate score (cached score + delta) computed
alongside the mutation; it is compared with the authoritative sum and any
drift is logged. Drift means some earlier write bypassed the ledger.
"""

from dataclasses import dataclass
import logging

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.db.models.functions import Coalesce
from django.contrib.contenttypes.models import ContentType

from .exceptions import InvalidVote, NotFound, SelfVote
from .models import Comment, Discussion, Review, ReviewVote, Vote, VOTE_VALUES, UPVOTE, DOWNVOTE
from .queries import has_hidden_ancestor

logger = logging.getLogger(__name__)

TARGET_MODELS = {
    'discussion': Discussion,
    'comment': Comment,
}


@dataclass
class VoteResult:
    """Result of a vote on a discussion or comment."""
    target_id: int
    target_type: str
    score: int
    user_vote: int
    action: str


@dataclass
class ReviewVoteResult:
    """Result of a vote on a review."""
    review_id: int
    upvotes: int
    downvotes: int
    user_vote: int
    action: str


def validate_vote_value(value) -> int:
    # bool is an int subclass; True must not pass as an upvote
    if isinstance(value, bool) or value not in VOTE_VALUES:
        raise InvalidVote()
    return value


def _target_model(target_type):
    try:
        return TARGET_MODELS[target_type]
    except KeyError:
        raise InvalidVote(f"Invalid target type: {target_type}")


def _apply_vote(existing, value, create):
    """
    Run one step of the vote state machine against a locked ledger row.

    existing: the current vote row or None
    create:   callable inserting a new row with the given value

    Returns (delta, user_vote, action).
    """
    if existing is None:
        if value == 0:
            return 0, 0, 'unchanged'
        create(value)
        return value, value, 'created'

    if value == 0:
        existing.delete()
        return -existing.value, 0, 'removed'

    if value == existing.value:
        return 0, value, 'unchanged'

    old = existing.value
    existing.value = value
    existing.save(update_fields=['value', 'updated_at'])
    return value - old, value, 'changed'


def recompute_score(target_type: str, target_id: int) -> int:
    """
    Authoritative score for a discussion or comment.

    score = SUM(vote.value) over the target's ledger rows, written back to
    the target. A target that no longer exists is left alone.
    """
    model = _target_model(target_type)
    content_type = ContentType.objects.get_for_model(model)

    total = (
        Vote.objects
        .filter(content_type=content_type, object_id=target_id)
        .aggregate(total=Coalesce(Sum('value'), 0))
    )['total']

    updated = model.objects.filter(pk=target_id).update(score=total)
    if not updated:
        logger.debug(f"Skipped score update for missing {target_type} {target_id}")
    return total


def cast_vote(user, target_type: str, target_id: int, value: int) -> VoteResult:
    """
    Cast, change or retract the user's vote on a discussion or comment.

    ATOMICITY:
    Target lock, ledger mutation and score recomputation share one
    transaction - either all succeed or all fail.
    """
    value = validate_vote_value(value)
    model = _target_model(target_type)
    content_type = ContentType.objects.get_for_model(model)

    with transaction.atomic():
        # of=('self',): lock only the target row, not the joined agent
        queryset = model.objects.select_for_update(of=('self',))
        if model is Comment:
            queryset = queryset.filter(is_deleted=False, discussion__agent__is_public=True)
        else:
            queryset = queryset.filter(agent__is_public=True)
        target = queryset.filter(pk=target_id).first()
        if target is None or (model is Comment and has_hidden_ancestor(target)):
            raise NotFound(f"{target_type.capitalize()} not found.")

        existing = (
            Vote.objects
            .select_for_update()
            .filter(user=user, content_type=content_type, object_id=target_id)
            .first()
        )

        def create(v):
            Vote.objects.create(
                user=user,
                content_type=content_type,
                object_id=target_id,
                value=v
            )

        delta, user_vote, action = _apply_vote(existing, value, create)

        if action == 'unchanged':
            return VoteResult(target.pk, target_type, target.score, user_vote, action)

        approximate = target.score + delta
        score = recompute_score(target_type, target.pk)

    if score != approximate:
        logger.info(
            f"Reconciled {target_type} {target.pk} score: "
            f"approximate {approximate}, ledger {score}"
        )
    logger.debug(f"User {user.pk} {action} vote {user_vote:+d} on {target_type} {target.pk}")

    return VoteResult(target.pk, target_type, score, user_vote, action)


def recompute_review_votes(review_id: int) -> tuple[int, int]:
    """Rebuild a review's upvote and downvote counters from its ledger."""
    counts = ReviewVote.objects.filter(review_id=review_id).aggregate(
        upvotes=Count('id', filter=Q(value=UPVOTE)),
        downvotes=Count('id', filter=Q(value=DOWNVOTE)),
    )
    Review.objects.filter(pk=review_id).update(
        upvotes=counts['upvotes'],
        downvotes=counts['downvotes']
    )
    return counts['upvotes'], counts['downvotes']


def cast_review_vote(user, review_id: int, value: int) -> ReviewVoteResult:
    """
    Mark a review helpful (+1) / not helpful (-1), or retract (0).

    Same state machine and locking as cast_vote; the review keeps two
    counters instead of a net score. Authors cannot vote on their own
    review.
    """
    value = validate_vote_value(value)

    with transaction.atomic():
        review = (
            Review.objects
            .select_for_update(of=('self',))
            .filter(pk=review_id, agent__is_public=True)
            .first()
        )
        if review is None:
            raise NotFound('Review not found.')
        if review.user_id == user.pk:
            raise SelfVote()

        existing = (
            ReviewVote.objects
            .select_for_update()
            .filter(user=user, review=review)
            .first()
        )

        def create(v):
            ReviewVote.objects.create(user=user, review=review, value=v)

        _, user_vote, action = _apply_vote(existing, value, create)

        if action == 'unchanged':
            upvotes, downvotes = review.upvotes, review.downvotes
        else:
            upvotes, downvotes = recompute_review_votes(review.pk)

    logger.debug(f"User {user.pk} {action} vote {user_vote:+d} on review {review.pk}")

    return ReviewVoteResult(review.pk, upvotes, downvotes, user_vote, action)


def get_viewer_votes(user, target_type: str, target_ids) -> dict[int, int]:
    """
    Map target id -> the viewer's vote, for a batch of targets.

    Query: 1. Anonymous viewers get an empty map (vote 0 everywhere).
    """
    if user is None or not user.is_authenticated:
        return {}
    target_ids = list(target_ids)
    if not target_ids:
        return {}
    content_type = ContentType.objects.get_for_model(_target_model(target_type))
    return dict(
        Vote.objects
        .filter(user=user, content_type=content_type, object_id__in=target_ids)
        .values_list('object_id', 'value')
    )


def get_viewer_review_votes(user, review_ids) -> dict[int, int]:
    if user is None or not user.is_authenticated:
        return {}
    review_ids = list(review_ids)
    if not review_ids:
        return {}
    return dict(
        ReviewVote.objects
        .filter(user=user, review_id__in=review_ids)
        .values_list('review_id', 'value')
    )


def reconcile_all_scores() -> dict[str, int]:
    """
    Recompute every cached score and review counter from the ledgers.

    Returns how many rows of each kind were corrected.
    """
    corrected = {'discussion': 0, 'comment': 0, 'review': 0}

    for target_type, model in TARGET_MODELS.items():
        content_type = ContentType.objects.get_for_model(model)
        totals = dict(
            Vote.objects
            .filter(content_type=content_type)
            .values('object_id')
            .annotate(total=Sum('value'))
            .values_list('object_id', 'total')
        )
        for pk, cached in model.objects.values_list('pk', 'score').iterator():
            if totals.get(pk, 0) != cached:
                with transaction.atomic():
                    model.objects.select_for_update().filter(pk=pk).first()
                    recompute_score(target_type, pk)
                corrected[target_type] += 1

    review_counts = {
        row['review_id']: (row['up'], row['down'])
        for row in ReviewVote.objects.values('review_id').annotate(
            up=Count('id', filter=Q(value=UPVOTE)),
            down=Count('id', filter=Q(value=DOWNVOTE)),
        )
    }
    for pk, up, down in Review.objects.values_list('pk', 'upvotes', 'downvotes').iterator():
        if review_counts.get(pk, (0, 0)) != (up, down):
            with transaction.atomic():
                Review.objects.select_for_update().filter(pk=pk).first()
                recompute_review_votes(pk)
            corrected['review'] += 1

    if any(corrected.values()):
        logger.info(f"Reconciled cached counters: {corrected}")
    return corrected
