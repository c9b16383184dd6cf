"""
DRF Views
=========

API endpoints for the community application.

AUTHENTICATION NOTE:
--------------------
Writes carry "Authorization: Bearer <token>" (DRF authtoken). Reads are
public; an anonymous viewer sees user_vote = 0 everywhere.

Every success response is {"success": true, ...}; every failure goes
through exceptions.custom_exception_handler and comes back as
{"success": false, "error": {...}}.
"""

import logging

from django.conf import settings
from django.contrib.auth.models import User
from django.db import DatabaseError
from django.db.models import F
from rest_framework import permissions, status
from rest_framework.authtoken.models import Token
from rest_framework.response import Response
from rest_framework.views import APIView

from . import credibility, queries, reviews, services, threads
from .exceptions import NotFound
from .models import Agent
from .serializers import (
    AgentSerializer,
    CommentCreateSerializer,
    CommentListParamsSerializer,
    CommentSerializer,
    CommentTreeParamsSerializer,
    CommentTreeSerializer,
    CommentUpdateSerializer,
    DiscussionCreateSerializer,
    DiscussionListParamsSerializer,
    DiscussionSerializer,
    DiscussionUpdateSerializer,
    PageParamsSerializer,
    ReplyWriteSerializer,
    ReviewListParamsSerializer,
    ReviewReplySerializer,
    ReviewSerializer,
    ReviewSummarySerializer,
    ReviewVoteResultSerializer,
    ReviewWriteSerializer,
    VoteResultSerializer,
    VoteSerializer,
)

logger = logging.getLogger(__name__)


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


def _ok(payload=None, status_code=status.HTTP_200_OK):
    return Response({'success': True, **(payload or {})}, status=status_code)


def _comment_context(request, discussion, comments):
    return {
        'request': request,
        'op_id': discussion.author_id,
        'viewer_votes': services.get_viewer_votes(
            request.user, 'comment', [c.id for c in comments]
        ),
    }


# ============================================================================
# AGENTS
# ============================================================================

class AgentDetailView(APIView):
    """
    GET /api/agents/<agent_id>/

    Agent card with its review summary. Each fetch bumps the view counter;
    a failed bump is logged and never fails the request.
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request, agent_id):
        agent = queries.get_public_agent(agent_id)

        try:
            Agent.objects.filter(pk=agent.pk).update(views=F('views') + 1)
            agent.views += 1
        except DatabaseError as e:
            logger.warning(f"Could not record view for agent {agent.pk}: {e}")

        return _ok({
            'agent': AgentSerializer(agent).data,
            'summary': ReviewSummarySerializer(credibility.summarize_reviews(agent.pk)).data,
        })


# ============================================================================
# DISCUSSIONS
# ============================================================================

class AgentDiscussionsView(APIView):
    """
    GET  /api/agents/<agent_id>/discussions/?sort=latest|oldest|top&search=&page=&limit=
    POST /api/agents/<agent_id>/discussions/

    Query: 3 (count, page with author JOIN, viewer votes)
    """

    def get(self, request, agent_id):
        params = _validated(DiscussionListParamsSerializer, request.query_params)
        page, total = queries.get_agent_discussions(
            agent_id,
            sort=params['sort'],
            search=params.get('search') or None,
            offset=params['offset'],
            limit=params['limit'],
        )
        context = {
            'request': request,
            'viewer_votes': services.get_viewer_votes(
                request.user, 'discussion', [d.id for d in page]
            ),
        }
        return _ok({
            'discussions': DiscussionSerializer(page, many=True, context=context).data,
            'pagination': queries.pagination(total, params['page'], params['limit']),
        })

    def post(self, request, agent_id):
        data = _validated(DiscussionCreateSerializer, request.data)
        discussion = threads.create_discussion(request.user, agent_id, data['title'], data['content'])
        discussion = queries.get_discussion(discussion.pk)
        return _ok(
            {'discussion': DiscussionSerializer(discussion, context={'request': request}).data},
            status.HTTP_201_CREATED
        )


class DiscussionDetailView(APIView):
    """
    GET    /api/discussions/<discussion_id>/
    PATCH  /api/discussions/<discussion_id>/
    DELETE /api/discussions/<discussion_id>/

    GET returns the discussion plus the first page of top-level comments
    (sorted by ?sort=, default top).
    """

    def get(self, request, discussion_id):
        params = _validated(CommentListParamsSerializer, request.query_params)
        discussion = queries.get_discussion(discussion_id)
        comments, total = queries.get_comment_layer(
            discussion.pk,
            sort=params['sort'],
            offset=params['offset'],
            limit=params['limit'],
        )

        discussion_context = {
            'request': request,
            'viewer_votes': services.get_viewer_votes(request.user, 'discussion', [discussion.pk]),
        }
        comment_context = _comment_context(request, discussion, comments)

        return _ok({
            'discussion': DiscussionSerializer(discussion, context=discussion_context).data,
            'comments': CommentSerializer(comments, many=True, context=comment_context).data,
            'pagination': queries.pagination(total, params['page'], params['limit']),
        })

    def patch(self, request, discussion_id):
        data = _validated(DiscussionUpdateSerializer, request.data)
        discussion = threads.update_discussion(
            request.user,
            discussion_id,
            title=data.get('title'),
            content=data.get('content'),
        )
        return _ok({'discussion': DiscussionSerializer(discussion, context={'request': request}).data})

    def delete(self, request, discussion_id):
        threads.delete_discussion(request.user, discussion_id)
        return _ok({'message': 'Discussion deleted.'})


class DiscussionVoteView(APIView):
    """
    POST /api/discussions/<discussion_id>/vote/

    Body: {"vote": 1 | 0 | -1}
    """

    def post(self, request, discussion_id):
        data = _validated(VoteSerializer, request.data)
        result = services.cast_vote(request.user, 'discussion', discussion_id, data['vote'])
        return _ok(VoteResultSerializer(result).data)


# ============================================================================
# COMMENTS
# ============================================================================

class DiscussionCommentsView(APIView):
    """
    GET  /api/discussions/<discussion_id>/comments/?parent_id=&sort=&page=&limit=
    POST /api/discussions/<discussion_id>/comments/

    GET returns one flat layer: top-level comments, or the direct replies
    of parent_id.

    Body (POST):
    {
        "content": "Comment text",
        "parent_id": 123  // optional, for replies
    }
    """

    def get(self, request, discussion_id):
        params = _validated(CommentListParamsSerializer, request.query_params)
        discussion = queries.get_discussion(discussion_id)
        comments, total = queries.get_comment_layer(
            discussion.pk,
            parent_id=params.get('parent_id'),
            sort=params['sort'],
            offset=params['offset'],
            limit=params['limit'],
        )
        context = _comment_context(request, discussion, comments)
        return _ok({
            'comments': CommentSerializer(comments, many=True, context=context).data,
            'pagination': queries.pagination(total, params['page'], params['limit']),
        })

    def post(self, request, discussion_id):
        data = _validated(CommentCreateSerializer, request.data)
        comment = threads.create_comment(
            request.user,
            discussion_id,
            data['content'],
            parent_id=data.get('parent_id'),
        )
        comment = queries.get_visible_comment(comment.pk)
        context = {'request': request, 'op_id': comment.discussion.author_id}
        return _ok(
            {'comment': CommentSerializer(comment, context=context).data},
            status.HTTP_201_CREATED
        )


class CommentTreeView(APIView):
    """
    GET /api/discussions/<discussion_id>/comments/tree/?max_depth=

    Every visible comment, nested under 'replies', sorted by score at
    each level.

    QUERY COUNT: 1 + depth of the deepest thread + 1 (viewer votes)
    """

    def get(self, request, discussion_id):
        params = _validated(CommentTreeParamsSerializer, request.query_params)
        discussion = queries.get_discussion(discussion_id)
        tree = queries.build_comment_tree(discussion.pk, max_depth=params.get('max_depth'))

        context = _comment_context(request, discussion, list(queries.iter_tree(tree)))
        return _ok({'comments': CommentTreeSerializer(tree, many=True, context=context).data})


class CommentDetailView(APIView):
    """
    PATCH  /api/comments/<comment_id>/
    DELETE /api/comments/<comment_id>/?hard=true

    DELETE is a soft delete unless hard=true.
    """

    def patch(self, request, comment_id):
        data = _validated(CommentUpdateSerializer, request.data)
        comment = threads.update_comment(request.user, comment_id, data['content'])
        context = {'request': request, 'op_id': comment.discussion.author_id}
        return _ok({'comment': CommentSerializer(comment, context=context).data})

    def delete(self, request, comment_id):
        hard = request.query_params.get('hard', '').lower() in ('1', 'true', 'yes')
        threads.delete_comment(request.user, comment_id, hard=hard)
        return _ok({'message': 'Comment deleted.'})


class CommentVoteView(APIView):
    """
    POST /api/comments/<comment_id>/vote/

    Body: {"vote": 1 | 0 | -1}
    """

    def post(self, request, comment_id):
        data = _validated(VoteSerializer, request.data)
        result = services.cast_vote(request.user, 'comment', comment_id, data['vote'])
        return _ok(VoteResultSerializer(result).data)


# ============================================================================
# REVIEWS
# ============================================================================

class AgentReviewsView(APIView):
    """
    GET  /api/agents/<agent_id>/reviews/?sort=newest|oldest|highest|lowest&rating=&page=&limit=
    POST /api/agents/<agent_id>/reviews/

    GET also returns the agent's review summary.
    """

    def get(self, request, agent_id):
        params = _validated(ReviewListParamsSerializer, request.query_params)
        page, total = queries.get_agent_reviews(
            agent_id,
            sort=params['sort'],
            rating=params.get('rating'),
            offset=params['offset'],
            limit=params['limit'],
        )
        context = {
            'request': request,
            'viewer_votes': services.get_viewer_review_votes(request.user, [r.id for r in page]),
        }
        return _ok({
            'reviews': ReviewSerializer(page, many=True, context=context).data,
            'summary': ReviewSummarySerializer(credibility.summarize_reviews(agent_id)).data,
            'pagination': queries.pagination(total, params['page'], params['limit']),
        })

    def post(self, request, agent_id):
        data = _validated(ReviewWriteSerializer, request.data)
        review = reviews.submit_review(
            request.user,
            agent_id,
            data['rating'],
            data['content'],
            images=data['images'],
        )
        return _ok(
            {'review': ReviewSerializer(review, context={'request': request}).data},
            status.HTTP_201_CREATED
        )


class ReviewSummaryView(APIView):
    """
    GET /api/agents/<agent_id>/reviews/summary/

    Query: 2 (agent lookup, aggregate)
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request, agent_id):
        agent = queries.get_public_agent(agent_id)
        summary = credibility.summarize_reviews(agent.pk)
        return _ok({'summary': ReviewSummarySerializer(summary).data})


class ReviewDetailView(APIView):
    """
    PATCH  /api/reviews/<review_id>/
    DELETE /api/reviews/<review_id>/

    PATCH replaces rating, content and images together.
    """

    def patch(self, request, review_id):
        data = _validated(ReviewWriteSerializer, request.data)
        review = reviews.edit_review(
            request.user,
            review_id,
            data['rating'],
            data['content'],
            images=data['images'],
        )
        context = {
            'request': request,
            'viewer_votes': services.get_viewer_review_votes(request.user, [review.pk]),
        }
        return _ok({'review': ReviewSerializer(review, context=context).data})

    def delete(self, request, review_id):
        reviews.delete_review(request.user, review_id)
        return _ok({'message': 'Review deleted.'})


class ReviewVoteView(APIView):
    """
    GET  /api/reviews/<review_id>/vote/
    POST /api/reviews/<review_id>/vote/

    Body (POST): {"vote": 1 | 0 | -1}  (helpful / retract / not helpful)
    """

    def get(self, request, review_id):
        review = queries.get_review(review_id)
        votes = services.get_viewer_review_votes(request.user, [review.pk])
        return _ok(ReviewVoteResultSerializer({
            'review_id': review.pk,
            'upvotes': review.upvotes,
            'downvotes': review.downvotes,
            'user_vote': votes.get(review.pk, 0),
        }).data)

    def post(self, request, review_id):
        data = _validated(VoteSerializer, request.data)
        result = services.cast_review_vote(request.user, review_id, data['vote'])
        return _ok(ReviewVoteResultSerializer(result).data)


class ReviewRepliesView(APIView):
    """
    GET  /api/reviews/<review_id>/replies/?page=&limit=
    POST /api/reviews/<review_id>/replies/
    """

    def get(self, request, review_id):
        params = _validated(PageParamsSerializer, request.query_params)
        page, total = queries.get_review_replies(
            review_id,
            offset=params['offset'],
            limit=params['limit'],
        )
        return _ok({
            'replies': ReviewReplySerializer(page, many=True, context={'request': request}).data,
            'pagination': queries.pagination(total, params['page'], params['limit']),
        })

    def post(self, request, review_id):
        data = _validated(ReplyWriteSerializer, request.data)
        reply = reviews.add_reply(request.user, review_id, data['content'])
        return _ok(
            {'reply': ReviewReplySerializer(reply, context={'request': request}).data},
            status.HTTP_201_CREATED
        )


class ReplyDetailView(APIView):
    """
    PATCH  /api/replies/<reply_id>/
    DELETE /api/replies/<reply_id>/
    """

    def patch(self, request, reply_id):
        data = _validated(ReplyWriteSerializer, request.data)
        reply = reviews.update_reply(request.user, reply_id, data['content'])
        return _ok({'reply': ReviewReplySerializer(reply, context={'request': request}).data})

    def delete(self, request, reply_id):
        reviews.delete_reply(request.user, reply_id)
        return _ok({'message': 'Reply deleted.'})


# ============================================================================
# DEVELOPMENT/TESTING HELPERS
# ============================================================================

class DevTokenView(APIView):
    """
    POST /api/auth/dev-token/

    DEVELOPMENT ONLY: issue a bearer token without a real login flow.
    Creates the user if it doesn't exist. Disabled unless DEBUG.

    Body: { "username": "testuser" }
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        if not settings.DEBUG:
            raise NotFound()

        username = str(request.data.get('username') or 'testuser')
        user, created = User.objects.get_or_create(
            username=username,
            defaults={'email': f'{username}@example.com'}
        )
        token, _ = Token.objects.get_or_create(user=user)

        return _ok({
            'user_id': user.id,
            'username': user.username,
            'token': token.key,
            'created': created
        })


class WhoAmIView(APIView):
    """
    GET /api/auth/whoami/

    Returns current authenticated user info.
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        if request.user.is_authenticated:
            return _ok({
                'authenticated': True,
                'user_id': request.user.id,
                'username': request.user.username
            })
        return _ok({
            'authenticated': False,
            'user_id': None,
            'username': None
        })
