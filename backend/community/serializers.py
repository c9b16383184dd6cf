"""
DRF Serializers
===============

Serializers handle:
1. Validation of incoming data (length / range / enum rules)
2. Query parameter parsing for the listing endpoints
3. Transformation of model instances to JSON, including the nested
   comment tree

DESIGN DECISIONS:
-----------------
1. Author metadata and the viewer's own vote come from serializer context,
   built by the view in one batch query, never per row
2. The tree is pre-built by queries.build_comment_tree(); serialization
   only walks it
3. Vote values are range-checked by the vote ledger itself, so every vote
   path reports the same invalid_vote error
"""

from django.conf import settings
from django.utils import dateformat
from rest_framework import serializers

from .models import (
    Agent, Comment, Discussion, Review, ReviewReply,
    COMMENT_CONTENT_MAX, COMMENT_CONTENT_MIN,
    DISCUSSION_CONTENT_MAX, DISCUSSION_CONTENT_MIN,
    DISCUSSION_TITLE_MAX, DISCUSSION_TITLE_MIN,
    MAX_REVIEW_IMAGES, RATING_MAX, RATING_MIN,
    REPLY_CONTENT_MAX, REPLY_CONTENT_MIN,
    REVIEW_CONTENT_MAX, REVIEW_CONTENT_MIN,
)
from .queries import COMMENT_ORDERINGS, DISCUSSION_ORDERINGS, REVIEW_ORDERINGS


def to_timestamp(value):
    """Milliseconds since the epoch."""
    return int(value.timestamp() * 1000)


def format_date(value):
    """Human-readable date, e.g. 'Oct 18, 2026'."""
    return dateformat.format(value, 'M j, Y')


def _length_checked(value, low, high, label):
    value = value.strip()
    if len(value) < low or len(value) > high:
        raise serializers.ValidationError(
            f"{label} must be between {low} and {high} characters."
        )
    return value


def author_payload(user, viewer=None, op_id=None):
    """Public metadata for the author of a discussion, comment, review or reply."""
    profile = getattr(user, 'profile', None)
    payload = {
        'id': user.pk,
        'name': profile.name if profile else user.username,
        'avatar': (profile.avatar_url or None) if profile else None,
        'is_verified': bool(profile and profile.is_verified),
        'is_official': bool(profile and profile.is_official),
        'is_current_user': bool(viewer is not None and viewer.pk == user.pk),
    }
    if op_id is not None:
        payload['is_op'] = user.pk == op_id
    return payload


# ============================================================================
# QUERY PARAMETERS
# ============================================================================

class PageParamsSerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, required=False)

    def validate_limit(self, value):
        return min(value, settings.COMMUNITY_MAX_PAGE_SIZE)

    def validate(self, attrs):
        attrs.setdefault('limit', settings.COMMUNITY_PAGE_SIZE)
        attrs['offset'] = (attrs['page'] - 1) * attrs['limit']
        return attrs


class DiscussionListParamsSerializer(PageParamsSerializer):
    sort = serializers.ChoiceField(choices=list(DISCUSSION_ORDERINGS), default='latest')
    search = serializers.CharField(required=False, allow_blank=True, max_length=200)


class CommentListParamsSerializer(PageParamsSerializer):
    sort = serializers.ChoiceField(choices=list(COMMENT_ORDERINGS), default='top')
    parent_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)

    def to_internal_value(self, data):
        # ?parent_id=null is the explicit spelling of "top-level"
        if hasattr(data, 'get') and data.get('parent_id') in ('', 'null'):
            data = {key: data[key] for key in data if key != 'parent_id'}
        return super().to_internal_value(data)


class ReviewListParamsSerializer(PageParamsSerializer):
    sort = serializers.ChoiceField(choices=list(REVIEW_ORDERINGS), default='newest')
    rating = serializers.IntegerField(min_value=RATING_MIN, max_value=RATING_MAX, required=False)


class CommentTreeParamsSerializer(serializers.Serializer):
    max_depth = serializers.IntegerField(min_value=1, required=False)


# ============================================================================
# INPUT
# ============================================================================

class DiscussionCreateSerializer(serializers.Serializer):
    title = serializers.CharField(trim_whitespace=False)
    content = serializers.CharField(trim_whitespace=False)

    def validate_title(self, value):
        return _length_checked(value, DISCUSSION_TITLE_MIN, DISCUSSION_TITLE_MAX, 'Title')

    def validate_content(self, value):
        return _length_checked(value, DISCUSSION_CONTENT_MIN, DISCUSSION_CONTENT_MAX, 'Content')


class DiscussionUpdateSerializer(DiscussionCreateSerializer):
    title = serializers.CharField(trim_whitespace=False, required=False)
    content = serializers.CharField(trim_whitespace=False, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Provide a title or content to update.')
        return attrs


class CommentCreateSerializer(serializers.Serializer):
    content = serializers.CharField(trim_whitespace=False)
    parent_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)

    def validate_content(self, value):
        return _length_checked(value, COMMENT_CONTENT_MIN, COMMENT_CONTENT_MAX, 'Content')


class CommentUpdateSerializer(serializers.Serializer):
    content = serializers.CharField(trim_whitespace=False)

    def validate_content(self, value):
        return _length_checked(value, COMMENT_CONTENT_MIN, COMMENT_CONTENT_MAX, 'Content')


class VoteSerializer(serializers.Serializer):
    """Only the type is checked here; services.validate_vote_value owns the range."""
    vote = serializers.IntegerField()


class ReviewWriteSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=RATING_MIN, max_value=RATING_MAX)
    content = serializers.CharField(trim_whitespace=False)
    images = serializers.ListField(
        child=serializers.URLField(max_length=500),
        required=False,
        default=list
    )

    def validate_content(self, value):
        return _length_checked(value, REVIEW_CONTENT_MIN, REVIEW_CONTENT_MAX, 'Content')

    def validate_images(self, value):
        if len(value) > MAX_REVIEW_IMAGES:
            raise serializers.ValidationError(
                f"Maximum of {MAX_REVIEW_IMAGES} images allowed per review."
            )
        return value


class ReplyWriteSerializer(serializers.Serializer):
    content = serializers.CharField(trim_whitespace=False)

    def validate_content(self, value):
        return _length_checked(value, REPLY_CONTENT_MIN, REPLY_CONTENT_MAX, 'Content')


# ============================================================================
# OUTPUT
# ============================================================================

class TimestampedSerializer(serializers.ModelSerializer):
    """Adds raw millisecond timestamp and formatted date for created_at."""
    timestamp = serializers.SerializerMethodField()
    formatted_date = serializers.SerializerMethodField()

    def get_timestamp(self, obj):
        return to_timestamp(obj.created_at)

    def get_formatted_date(self, obj):
        return format_date(obj.created_at)

    def viewer(self):
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        return user if user is not None and user.is_authenticated else None


class AgentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Agent
        fields = ['id', 'name', 'description', 'views', 'created_at']
        read_only_fields = fields


class DiscussionSerializer(TimestampedSerializer):
    """
    Discussion card for listings and detail.

    Context:
    - viewer_votes: {discussion_id: value}
    """
    author = serializers.SerializerMethodField()
    user_vote = serializers.SerializerMethodField()
    agent_id = serializers.IntegerField(read_only=True)
    last_activity = serializers.SerializerMethodField()
    formatted_last_activity = serializers.SerializerMethodField()

    class Meta:
        model = Discussion
        fields = [
            'id',
            'agent_id',
            'title',
            'content',
            'author',
            'score',
            'user_vote',
            'is_pinned',
            'comment_count',
            'timestamp',
            'formatted_date',
            'last_activity',
            'formatted_last_activity',
        ]
        read_only_fields = fields

    def get_author(self, obj):
        return author_payload(obj.author, self.viewer(), op_id=obj.author_id)

    def get_user_vote(self, obj):
        return self.context.get('viewer_votes', {}).get(obj.id, 0)

    def get_last_activity(self, obj):
        return to_timestamp(obj.last_activity_at)

    def get_formatted_last_activity(self, obj):
        return format_date(obj.last_activity_at)


class CommentSerializer(TimestampedSerializer):
    """
    Serializer for individual comments.

    NOTE: replies is always empty here. The nested form comes from
    CommentTreeSerializer.

    Context:
    - op_id: author id of the discussion (for is_op)
    - viewer_votes: {comment_id: value}
    """
    author = serializers.SerializerMethodField()
    user_vote = serializers.SerializerMethodField()
    parent_id = serializers.IntegerField(read_only=True)
    replies = serializers.SerializerMethodField()

    class Meta:
        model = Comment
        fields = [
            'id',
            'discussion_id',
            'parent_id',
            'content',
            'author',
            'score',
            'user_vote',
            'reply_count',
            'timestamp',
            'formatted_date',
            'replies',
        ]
        read_only_fields = fields

    def get_author(self, obj):
        return author_payload(obj.author, self.viewer(), op_id=self.context.get('op_id'))

    def get_user_vote(self, obj):
        return self.context.get('viewer_votes', {}).get(obj.id, 0)

    def get_replies(self, obj):
        return []


class CommentTreeSerializer(serializers.Serializer):
    """
    Serializer for nested comment tree.

    NOT a ModelSerializer: it serializes the node dicts built by
    build_comment_tree(), flattening each node into the comment's fields
    with its serialized replies attached.
    """

    def to_representation(self, node):
        data = CommentSerializer(node['comment'], context=self.context).data
        data['replies'] = CommentTreeSerializer(
            node['replies'], many=True, context=self.context
        ).data
        return data


class ReviewSerializer(TimestampedSerializer):
    """
    Context:
    - viewer_votes: {review_id: value}
    """
    author = serializers.SerializerMethodField()
    agent_id = serializers.IntegerField(read_only=True)
    images = serializers.SerializerMethodField()
    reply_count = serializers.SerializerMethodField()
    helpful = serializers.SerializerMethodField()

    class Meta:
        model = Review
        fields = [
            'id',
            'agent_id',
            'author',
            'rating',
            'content',
            'images',
            'reply_count',
            'helpful',
            'timestamp',
            'formatted_date',
        ]
        read_only_fields = fields

    def get_author(self, obj):
        return author_payload(obj.user, self.viewer())

    def get_images(self, obj):
        return [image.url for image in obj.images.all()]

    def get_reply_count(self, obj):
        # Annotated by queries.get_agent_reviews; single objects count directly
        count = getattr(obj, 'reply_count', None)
        return count if count is not None else obj.replies.count()

    def get_helpful(self, obj):
        return {
            'upvotes': obj.upvotes,
            'downvotes': obj.downvotes,
            'user_vote': self.context.get('viewer_votes', {}).get(obj.id, 0),
        }


class ReviewReplySerializer(TimestampedSerializer):
    author = serializers.SerializerMethodField()
    review_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = ReviewReply
        fields = ['id', 'review_id', 'author', 'content', 'timestamp', 'formatted_date']
        read_only_fields = fields

    def get_author(self, obj):
        return author_payload(obj.user, self.viewer())


class ReviewSummarySerializer(serializers.Serializer):
    """Serializer for credibility.summarize_reviews() output."""
    average_rating = serializers.FloatField()
    total_reviews = serializers.IntegerField()
    credibility_score = serializers.FloatField()
    credibility_badge = serializers.CharField()
    recent_positive_percentage = serializers.IntegerField()
    rating_distribution = serializers.DictField(child=serializers.IntegerField())


class VoteResultSerializer(serializers.Serializer):
    target_id = serializers.IntegerField()
    target_type = serializers.CharField()
    score = serializers.IntegerField()
    user_vote = serializers.IntegerField()
    action = serializers.CharField()


class ReviewVoteResultSerializer(serializers.Serializer):
    review_id = serializers.IntegerField()
    upvotes = serializers.IntegerField()
    downvotes = serializers.IntegerField()
    user_vote = serializers.IntegerField()
    action = serializers.CharField(required=False)
