"""
Django Admin Configuration for Community Models
"""
from django.contrib import admin
from .models import (
    Agent, Comment, Discussion, Profile, Review, ReviewImage, ReviewReply, ReviewVote, Vote
)


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'display_name', 'is_verified', 'is_official']
    list_filter = ['is_verified', 'is_official']
    search_fields = ['user__username', 'display_name']


@admin.register(Agent)
class AgentAdmin(admin.ModelAdmin):
    list_display = ['name', 'creator', 'is_public', 'views', 'created_at']
    list_filter = ['is_public', 'created_at']
    search_fields = ['name', 'description', 'creator__username']
    readonly_fields = ['views', 'created_at', 'updated_at']


@admin.register(Discussion)
class DiscussionAdmin(admin.ModelAdmin):
    list_display = ['title', 'agent', 'author', 'score', 'comment_count', 'is_pinned', 'last_activity_at']
    list_filter = ['is_pinned', 'created_at']
    search_fields = ['title', 'content', 'author__username']
    # Counters are owned by the vote ledger and comment signals
    readonly_fields = ['score', 'comment_count', 'created_at', 'updated_at', 'last_activity_at']


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ['id', 'discussion', 'author', 'parent', 'score', 'reply_count', 'is_deleted', 'created_at']
    list_filter = ['is_deleted', 'created_at']
    search_fields = ['content', 'author__username']
    readonly_fields = ['score', 'reply_count', 'created_at', 'updated_at']


@admin.register(Vote)
class VoteAdmin(admin.ModelAdmin):
    list_display = ['user', 'content_type', 'object_id', 'value', 'created_at']
    list_filter = ['content_type', 'value', 'created_at']
    search_fields = ['user__username']

    def has_change_permission(self, request, obj=None):
        # Editing a ledger row here would bypass score recomputation
        return False


class ReviewImageInline(admin.TabularInline):
    model = ReviewImage
    extra = 0


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ['agent', 'user', 'rating', 'upvotes', 'downvotes', 'created_at']
    list_filter = ['rating', 'created_at']
    search_fields = ['content', 'user__username', 'agent__name']
    readonly_fields = ['upvotes', 'downvotes', 'created_at', 'updated_at']
    inlines = [ReviewImageInline]


@admin.register(ReviewReply)
class ReviewReplyAdmin(admin.ModelAdmin):
    list_display = ['review', 'user', 'created_at']
    search_fields = ['content', 'user__username']


@admin.register(ReviewVote)
class ReviewVoteAdmin(admin.ModelAdmin):
    list_display = ['review', 'user', 'value', 'created_at']
    list_filter = ['value', 'created_at']

    def has_change_permission(self, request, obj=None):
        return False
