"""
Read Paths: Comment Trees, Listings, Lookups
============================================

Comment Tree Builder has two modes:

1. FLAT LAYER - get_comment_layer()
   One page of comments sharing a parent (None = top-level), sorted by
   newest / oldest / top. Replies are not attached; clients fetch a
   comment's children by asking for the layer under it.

2. FULL TREE - build_comment_tree()
   Every visible comment of a discussion, nested under 'replies'.

   Naive approach: recursive fetch, one query per node.
       100 comments -> 101 queries, recursion depth = thread depth

   OUR APPROACH: explicit worklist over parent ids, one query per LEVEL.
       frontier = [top-level]
       while frontier:
           fetch children of every id in frontier (single query)
           attach each child under its parent node
           frontier = ids just fetched

   Queries = depth of the deepest thread (plus chunking for huge levels).
   Each level is fetched sorted by score desc, so appending children in
   fetch order keeps every 'replies' list sorted too.

   Soft-deleted comments never enter the frontier, so their whole subtree
   drops out without any extra filtering.
"""

import math
from typing import Optional, TypedDict

from django.db.models import Count, Q

from .exceptions import NotFound, ValidationError
from .models import Agent, Comment, Discussion, Review, ReviewReply

COMMENT_ORDERINGS = {
    'newest': ('-created_at', '-id'),
    'oldest': ('created_at', 'id'),
    'top': ('-score', '-created_at', '-id'),
}

DISCUSSION_ORDERINGS = {
    'latest': ('-last_activity_at', '-id'),
    'oldest': ('created_at', 'id'),
    'top': ('-score', '-last_activity_at', '-id'),
}

REVIEW_ORDERINGS = {
    'newest': ('-created_at', '-id'),
    'oldest': ('created_at', 'id'),
    'highest': ('-rating', '-created_at', '-id'),
    'lowest': ('rating', '-created_at', '-id'),
}

TREE_ORDERING = COMMENT_ORDERINGS['top']

# Keeps IN (...) lists under SQLite's bound-parameter limit
TREE_BATCH_SIZE = 500


class CommentNode(TypedDict):
    comment: Comment
    replies: list['CommentNode']


class Pagination(TypedDict):
    total: int
    pages: int
    current: int
    limit: int


def _ordering(orderings: dict, sort: str):
    try:
        return orderings[sort]
    except KeyError:
        raise ValidationError(
            f"Invalid sort '{sort}'. Expected one of: {', '.join(orderings)}."
        )


def pagination(total: int, page: int, limit: int) -> Pagination:
    return {
        'total': total,
        'pages': math.ceil(total / limit) if limit else 0,
        'current': page,
        'limit': limit,
    }


# ============================================================================
# LOOKUPS
# ============================================================================

def get_public_agent(agent_id: int) -> Agent:
    agent = Agent.objects.filter(pk=agent_id, is_public=True).first()
    if agent is None:
        raise NotFound('Agent not found.')
    return agent


def get_discussion(discussion_id: int) -> Discussion:
    """Discussion with author and profile. Threads of private agents are hidden."""
    discussion = (
        Discussion.objects
        .select_related('author__profile', 'agent')
        .filter(pk=discussion_id, agent__is_public=True)
        .first()
    )
    if discussion is None:
        raise NotFound('Discussion not found.')
    return discussion


def has_hidden_ancestor(comment: Comment) -> bool:
    """
    True when any ancestor of the comment is soft-deleted (or gone).

    Query: 1 per ancestor level, stopping at the first hidden one.
    """
    parent_id = comment.parent_id
    seen = set()
    while parent_id is not None and parent_id not in seen:
        seen.add(parent_id)
        row = Comment.objects.filter(pk=parent_id).values_list('parent_id', 'is_deleted').first()
        if row is None or row[1]:
            return True
        parent_id = row[0]
    return False


def is_comment_visible(comment: Comment) -> bool:
    return not comment.is_deleted and not has_hidden_ancestor(comment)


def get_visible_comment(comment_id: int) -> Comment:
    """
    A comment that every read path would show: not soft-deleted, no
    soft-deleted ancestor, and in a discussion of a public agent.
    """
    comment = (
        Comment.objects
        .select_related('author__profile')
        .filter(pk=comment_id, is_deleted=False, discussion__agent__is_public=True)
        .first()
    )
    if comment is None or has_hidden_ancestor(comment):
        raise NotFound('Comment not found.')
    return comment


def get_review(review_id: int) -> Review:
    """Review with author and profile. Reviews of private agents are hidden."""
    review = (
        Review.objects
        .select_related('user__profile')
        .filter(pk=review_id, agent__is_public=True)
        .first()
    )
    if review is None:
        raise NotFound('Review not found.')
    return review


# ============================================================================
# DISCUSSIONS
# ============================================================================

def get_agent_discussions(
    agent_id: int,
    sort: str = 'latest',
    search: Optional[str] = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[Discussion], int]:
    """
    One page of an agent's discussions plus the total matching count.

    Query: 2 (page with author JOIN, count)
    """
    ordering = _ordering(DISCUSSION_ORDERINGS, sort)
    get_public_agent(agent_id)

    queryset = Discussion.objects.filter(agent_id=agent_id)
    if search:
        queryset = queryset.filter(Q(title__icontains=search) | Q(content__icontains=search))

    total = queryset.count()
    page = list(
        queryset
        .select_related('author__profile')
        .order_by(*ordering)[offset:offset + limit]
    )
    return page, total


# ============================================================================
# COMMENTS
# ============================================================================

def _layer_queryset(discussion_id: int, parent_id: Optional[int]):
    queryset = Comment.objects.filter(discussion_id=discussion_id, is_deleted=False)
    if parent_id is None:
        return queryset.filter(parent__isnull=True)
    return queryset.filter(parent_id=parent_id)


def get_comment_layer(
    discussion_id: int,
    parent_id: Optional[int] = None,
    sort: str = 'top',
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[Comment], int]:
    """
    One page of comments directly under parent_id (None = top-level).

    Soft-deleted comments are excluded. A parent that is itself hidden, or
    belongs to another discussion, raises NotFound. Returns (page, total
    in layer).

    Query: 2 (page with author JOIN, count), plus the parent check
    """
    ordering = _ordering(COMMENT_ORDERINGS, sort)
    if parent_id is not None and get_visible_comment(parent_id).discussion_id != discussion_id:
        raise NotFound('Comment not found.')
    queryset = _layer_queryset(discussion_id, parent_id)

    total = queryset.count()
    page = list(
        queryset
        .select_related('author__profile')
        .order_by(*ordering)[offset:offset + limit]
    )
    return page, total


def _fetch_level(discussion_id: int, parent_ids: Optional[list[int]]) -> list[Comment]:
    queryset = (
        Comment.objects
        .filter(discussion_id=discussion_id, is_deleted=False)
        .select_related('author__profile')
    )
    if parent_ids is None:
        return list(queryset.filter(parent__isnull=True).order_by(*TREE_ORDERING))

    level = []
    for start in range(0, len(parent_ids), TREE_BATCH_SIZE):
        batch = parent_ids[start:start + TREE_BATCH_SIZE]
        level.extend(queryset.filter(parent_id__in=batch).order_by(*TREE_ORDERING))
    return level


def build_comment_tree(discussion_id: int, max_depth: Optional[int] = None) -> list[CommentNode]:
    """
    Build the full nested tree of visible comments, level by level.

    max_depth limits how many levels are fetched (1 = top-level only).
    None means no limit.

    Example Output:
        [
            {
                'comment': Comment(id=1),
                'replies': [
                    {'comment': Comment(id=2), 'replies': []},
                ]
            }
        ]
    """
    if max_depth is not None and max_depth < 1:
        return []

    nodes: dict[int, CommentNode] = {}
    roots: list[CommentNode] = []

    frontier: Optional[list[int]] = None
    depth = 0
    while True:
        level = _fetch_level(discussion_id, frontier)
        if not level:
            break

        for comment in level:
            node: CommentNode = {'comment': comment, 'replies': []}
            nodes[comment.id] = node
            if comment.parent_id is None:
                roots.append(node)
            else:
                nodes[comment.parent_id]['replies'].append(node)

        depth += 1
        if max_depth is not None and depth >= max_depth:
            break
        frontier = [comment.id for comment in level]

    return roots


def iter_tree(nodes: list[CommentNode]):
    """Yield every comment in the tree, parents before children."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        yield node['comment']
        stack.extend(reversed(node['replies']))


# ============================================================================
# REVIEWS
# ============================================================================

def get_agent_reviews(
    agent_id: int,
    sort: str = 'newest',
    rating: Optional[int] = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Review], int]:
    """
    One page of an agent's reviews with authors, images and reply counts.

    Query: 3 (count, page with author JOIN, images prefetch)
    """
    ordering = _ordering(REVIEW_ORDERINGS, sort)
    get_public_agent(agent_id)

    queryset = Review.objects.filter(agent_id=agent_id)
    if rating is not None:
        queryset = queryset.filter(rating=rating)

    total = queryset.count()
    page = list(
        queryset
        .select_related('user__profile')
        .prefetch_related('images')
        .annotate(reply_count=Count('replies'))
        .order_by(*ordering)[offset:offset + limit]
    )
    return page, total


def get_review_replies(review_id: int, offset: int = 0, limit: int = 10) -> tuple[list[ReviewReply], int]:
    get_review(review_id)
    queryset = ReviewReply.objects.filter(review_id=review_id)
    total = queryset.count()
    page = list(
        queryset
        .select_related('user__profile')
        .order_by('created_at', 'id')[offset:offset + limit]
    )
    return page, total
