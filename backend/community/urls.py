"""
Community App URL Configuration
"""
from django.urls import path
from .views import (
    AgentDetailView,
    AgentDiscussionsView,
    DiscussionDetailView,
    DiscussionVoteView,
    DiscussionCommentsView,
    CommentTreeView,
    CommentDetailView,
    CommentVoteView,
    AgentReviewsView,
    ReviewSummaryView,
    ReviewDetailView,
    ReviewVoteView,
    ReviewRepliesView,
    ReplyDetailView,
    DevTokenView,
    WhoAmIView
)

urlpatterns = [
    # Agents
    path('agents/<int:agent_id>/', AgentDetailView.as_view(), name='agent-detail'),
    path('agents/<int:agent_id>/discussions/', AgentDiscussionsView.as_view(), name='agent-discussions'),
    path('agents/<int:agent_id>/reviews/', AgentReviewsView.as_view(), name='agent-reviews'),
    path('agents/<int:agent_id>/reviews/summary/', ReviewSummaryView.as_view(), name='review-summary'),

    # Discussions
    path('discussions/<int:discussion_id>/', DiscussionDetailView.as_view(), name='discussion-detail'),
    path('discussions/<int:discussion_id>/vote/', DiscussionVoteView.as_view(), name='discussion-vote'),
    path('discussions/<int:discussion_id>/comments/', DiscussionCommentsView.as_view(), name='discussion-comments'),
    path('discussions/<int:discussion_id>/comments/tree/', CommentTreeView.as_view(), name='comment-tree'),

    # Comments
    path('comments/<int:comment_id>/', CommentDetailView.as_view(), name='comment-detail'),
    path('comments/<int:comment_id>/vote/', CommentVoteView.as_view(), name='comment-vote'),

    # Reviews
    path('reviews/<int:review_id>/', ReviewDetailView.as_view(), name='review-detail'),
    path('reviews/<int:review_id>/vote/', ReviewVoteView.as_view(), name='review-vote'),
    path('reviews/<int:review_id>/replies/', ReviewRepliesView.as_view(), name='review-replies'),
    path('replies/<int:reply_id>/', ReplyDetailView.as_view(), name='reply-detail'),

    # Auth (development)
    path('auth/dev-token/', DevTokenView.as_view(), name='dev-token'),
    path('auth/whoami/', WhoAmIView.as_view(), name='whoami'),
]
