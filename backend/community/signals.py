"""
Django Signals for maintaining denormalized counters.

IMPORTANT: Signals do NOT fire on QuerySet.update() or QuerySet.delete().
Soft deletes go through QuerySet.update(), so threads.delete_comment
adjusts the counters for them explicitly.

These signals ARE used for:
- Comment creation (discussion.comment_count, discussion.last_activity_at,
  parent.reply_count)
- Comment hard deletion, including rows removed by cascade
- Creating a Profile for every new user
"""

from django.contrib.auth.models import User
from django.db.models import F
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from django.utils import timezone

from .models import Comment, Discussion, Profile


@receiver(post_save, sender=User)
def create_profile(sender, instance, created, **kwargs):
    if created:
        Profile.objects.get_or_create(user=instance)


@receiver(post_save, sender=Comment)
def increment_comment_count(sender, instance, created, **kwargs):
    """
    When a new comment is created, bump the discussion's comment count and
    last activity, and the parent's reply count.

    Runs inside the creating transaction (threads.create_comment), so the
    counters commit or roll back together with the row.
    """
    if not created:
        return

    Discussion.objects.filter(id=instance.discussion_id).update(
        comment_count=F('comment_count') + 1,
        last_activity_at=timezone.now()
    )
    if instance.parent_id is not None:
        Comment.objects.filter(id=instance.parent_id).update(
            reply_count=F('reply_count') + 1
        )


@receiver(post_delete, sender=Comment)
def decrement_comment_count(sender, instance, **kwargs):
    """
    When a comment row is removed, decrement the counters it contributed to.

    Soft-deleted comments already gave their counts back. Rows whose parent
    or discussion went away in the same cascade update nothing.
    """
    if instance.is_deleted:
        return

    Discussion.objects.filter(id=instance.discussion_id, comment_count__gt=0).update(
        comment_count=F('comment_count') - 1
    )
    if instance.parent_id is not None:
        Comment.objects.filter(id=instance.parent_id, reply_count__gt=0).update(
            reply_count=F('reply_count') - 1
        )
