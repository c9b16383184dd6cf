"""
Data Models for the Agent Marketplace Community
===============================================

Design Philosophy:
------------------
1. Comments use Adjacency List pattern (parent FK) - simple, works with ORM
   - Tree assembly happens level by level in Python (see queries.py)
   - Soft delete (is_deleted) hides a comment and everything beneath it

2. Discussion and comment votes share one ledger via ContentType
   - Unique constraint (user, content_type, object_id) = one vote per target
   - GenericRelation on Discussion/Comment cascades votes on delete
   - Review votes live in their own ledger (ReviewVote) because reviews
     track upvotes and downvotes as separate counters, not a net score

3. Cached counters (score, comment_count, reply_count, upvotes, downvotes)
   - Denormalized for display, NEVER the system of record
   - score is recomputed from the vote ledger inside the same transaction
     as the vote mutation (services.recompute_score)
   - reconcile_scores management command rebuilds them from scratch

4. Timestamps use default=timezone.now (not auto_now_add)
   - Edit windows are computed from created_at, tests need to backdate it

Indexes Strategy:
-----------------
- comment.discussion + comment.parent: flat layer and tree level fetches
- vote.content_type + vote.object_id: score aggregation per target
- review.agent + review.created_at: summary and recent-positive window
"""

from django.db import models
from django.db.models import Q
from django.contrib.auth.models import User
from django.contrib.contenttypes.fields import GenericForeignKey, GenericRelation
from django.contrib.contenttypes.models import ContentType
from django.core.validators import MinLengthValidator, MinValueValidator, MaxValueValidator
from django.utils import timezone


# ============================================================================
# FIELD LIMITS & CONSTANTS
# ============================================================================
DISCUSSION_TITLE_MIN, DISCUSSION_TITLE_MAX = 5, 100
DISCUSSION_CONTENT_MIN, DISCUSSION_CONTENT_MAX = 10, 5000
COMMENT_CONTENT_MIN, COMMENT_CONTENT_MAX = 1, 2000
REVIEW_CONTENT_MIN, REVIEW_CONTENT_MAX = 10, 2000
REPLY_CONTENT_MIN, REPLY_CONTENT_MAX = 10, 1000
RATING_MIN, RATING_MAX = 1, 5
MAX_REVIEW_IMAGES = 5

UPVOTE = 1
NO_VOTE = 0
DOWNVOTE = -1
VOTE_VALUES = (DOWNVOTE, NO_VOTE, UPVOTE)


class Profile(models.Model):
    """
    Public author metadata shown next to every discussion, comment and review.

    Created for every user by signals.create_profile.
    """
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='profile'
    )
    display_name = models.CharField(max_length=100, blank=True)
    avatar_url = models.URLField(blank=True)
    is_verified = models.BooleanField(default=False)
    is_official = models.BooleanField(default=False)

    def __str__(self):
        return self.name

    @property
    def name(self):
        return self.display_name or self.user.get_full_name() or self.user.username


class Agent(models.Model):
    """
    The marketplace listing that discussions and reviews are about.

    Private agents are treated as absent by every community operation.
    """
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    creator = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='agents'
    )
    is_public = models.BooleanField(default=True, db_index=True)
    views = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.name


class Discussion(models.Model):
    """
    A thread about an agent. Root of a comment tree.

    score and comment_count are cached; last_activity_at is bumped
    whenever a comment is added (signals.py).
    """
    agent = models.ForeignKey(
        Agent,
        on_delete=models.CASCADE,
        related_name='discussions',
        db_index=True
    )
    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='discussions'
    )
    title = models.CharField(
        max_length=DISCUSSION_TITLE_MAX,
        validators=[MinLengthValidator(DISCUSSION_TITLE_MIN)]
    )
    content = models.TextField(
        max_length=DISCUSSION_CONTENT_MAX,
        validators=[MinLengthValidator(DISCUSSION_CONTENT_MIN)]
    )
    score = models.IntegerField(default=0, db_index=True)
    is_pinned = models.BooleanField(default=False)
    comment_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    last_activity_at = models.DateTimeField(default=timezone.now, db_index=True)

    votes = GenericRelation('Vote', related_query_name='discussion')

    class Meta:
        ordering = ['-last_activity_at']
        indexes = [
            models.Index(fields=['agent', '-last_activity_at']),
        ]

    def __str__(self):
        return f"{self.title[:50]} by {self.author.username}"


class Comment(models.Model):
    """
    Threaded comment using Adjacency List pattern.

    INVARIANT: parent, if set, belongs to the same discussion
    (enforced in threads.create_comment).

    Depth is unbounded. Nothing is stored per level; the tree builder
    walks parent ids one level at a time.
    """
    discussion = models.ForeignKey(
        Discussion,
        on_delete=models.CASCADE,
        related_name='comments',
        db_index=True
    )
    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='replies'
    )
    content = models.TextField(
        max_length=COMMENT_CONTENT_MAX,
        validators=[MinLengthValidator(COMMENT_CONTENT_MIN)]
    )
    score = models.IntegerField(default=0)
    is_deleted = models.BooleanField(default=False)
    reply_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    votes = GenericRelation('Vote', related_query_name='comment')

    class Meta:
        ordering = ['-score', '-created_at']
        indexes = [
            models.Index(fields=['discussion', 'parent', '-score']),
            models.Index(fields=['discussion', 'parent', 'created_at']),
        ]

    def __str__(self):
        return f"Comment by {self.author.username} on {self.discussion_id}"


class Vote(models.Model):
    """
    One signed vote per (user, target) for discussions and comments.

    CONCURRENCY STRATEGY:
    - Unique constraint (user, content_type, object_id) at DB level
    - The target row is locked (select_for_update) while the ledger is
      mutated and the score recomputed, so concurrent voters serialize
    - value 0 is never stored: retracting deletes the row
    """
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='votes'
    )
    content_type = models.ForeignKey(
        ContentType,
        on_delete=models.CASCADE
    )
    object_id = models.PositiveBigIntegerField()
    target = GenericForeignKey('content_type', 'object_id')

    value = models.SmallIntegerField()
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'content_type', 'object_id'],
                name='unique_vote_per_user_per_target'
            ),
            models.CheckConstraint(
                condition=Q(value__in=[DOWNVOTE, UPVOTE]),
                name='vote_value_is_signed_unit'
            ),
        ]
        indexes = [
            models.Index(fields=['content_type', 'object_id']),
        ]

    def __str__(self):
        return f"{self.user.username} voted {self.value:+d} on {self.content_type.model} {self.object_id}"


class Review(models.Model):
    """
    A star rating with text. At most one per (user, agent).

    upvotes/downvotes are cached counters recomputed from ReviewVote.
    """
    agent = models.ForeignKey(
        Agent,
        on_delete=models.CASCADE,
        related_name='reviews'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews'
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(RATING_MIN), MaxValueValidator(RATING_MAX)]
    )
    content = models.TextField(
        max_length=REVIEW_CONTENT_MAX,
        validators=[MinLengthValidator(REVIEW_CONTENT_MIN)]
    )
    upvotes = models.PositiveIntegerField(default=0)
    downvotes = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['agent', 'user'],
                name='unique_review_per_user_per_agent'
            ),
            models.CheckConstraint(
                condition=Q(rating__gte=RATING_MIN) & Q(rating__lte=RATING_MAX),
                name='review_rating_in_range'
            ),
        ]
        indexes = [
            models.Index(fields=['agent', '-created_at']),
        ]

    def __str__(self):
        return f"{self.rating}* for {self.agent_id} by {self.user.username}"


class ReviewImage(models.Model):
    review = models.ForeignKey(
        Review,
        on_delete=models.CASCADE,
        related_name='images'
    )
    url = models.URLField(max_length=500)
    position = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ['position']

    def __str__(self):
        return self.url


class ReviewReply(models.Model):
    review = models.ForeignKey(
        Review,
        on_delete=models.CASCADE,
        related_name='replies'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='review_replies'
    )
    content = models.TextField(
        max_length=REPLY_CONTENT_MAX,
        validators=[MinLengthValidator(REPLY_CONTENT_MIN)]
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at']
        verbose_name_plural = 'review replies'

    def __str__(self):
        return f"Reply by {self.user.username} on review {self.review_id}"


class ReviewVote(models.Model):
    """Helpful / not helpful ledger for reviews. Same rules as Vote."""
    review = models.ForeignKey(
        Review,
        on_delete=models.CASCADE,
        related_name='votes'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='review_votes'
    )
    value = models.SmallIntegerField()
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['review', 'user'],
                name='unique_review_vote_per_user'
            ),
            models.CheckConstraint(
                condition=Q(value__in=[DOWNVOTE, UPVOTE]),
                name='review_vote_value_is_signed_unit'
            ),
        ]

    def __str__(self):
        return f"{self.user.username} voted {self.value:+d} on review {self.review_id}"
