"""
Review Credibility Engine
=========================

Summarizes one agent's review population:

- average_rating            mean of all ratings (0 with no reviews)
- total_reviews             count
- rating_distribution       count per star, '1'..'5'
- recent_positive_percentage
      4-5 star reviews among the last 30 days' reviews, rounded integer
      percentage, 0 when there are no recent reviews
- credibility_score
      0 with no reviews, otherwise
      average * 0.7 + min(total, 100) / 100 * 0.3 * 5
      Quality weighs 70%, review volume 30% (saturating at 100 reviews),
      scaled to 0-5.
- credibility_badge
      from the AVERAGE RATING:
      >= 4.5 excellent, >= 3.5 good, >= 2.5 average, >= 1.5 poor,
      otherwise not-rated

QUERY STRATEGY:
---------------
One aggregate query, conditional counts per bucket:

    SELECT COUNT(*), AVG(rating),
           COUNT(*) FILTER (WHERE rating = 1), ... ,
           COUNT(*) FILTER (WHERE created_at > now - 30d),
           COUNT(*) FILTER (WHERE created_at > now - 30d AND rating >= 4)
    FROM community_review WHERE agent_id = %s

Uses the (agent, -created_at) index.
"""

from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import TypedDict

from django.db.models import Avg, Count, Q
from django.utils import timezone

from .models import RATING_MIN, RATING_MAX, Review

QUALITY_WEIGHT = 0.7
VOLUME_WEIGHT = 0.3
VOLUME_CAP = 100
SCORE_SCALE = 5

RECENT_WINDOW_DAYS = 30
POSITIVE_RATING = 4

# Checked top to bottom, first match wins
BADGE_THRESHOLDS = (
    (4.5, 'excellent'),
    (3.5, 'good'),
    (2.5, 'average'),
    (1.5, 'poor'),
)
NOT_RATED = 'not-rated'


class ReviewSummary(TypedDict):
    """Type hint for review summaries."""
    average_rating: float
    total_reviews: int
    credibility_score: float
    credibility_badge: str
    recent_positive_percentage: int
    rating_distribution: dict[str, int]


def credibility_score(average_rating: float, total_reviews: int) -> float:
    if total_reviews == 0:
        return 0.0
    volume = min(total_reviews, VOLUME_CAP) / VOLUME_CAP
    return average_rating * QUALITY_WEIGHT + volume * VOLUME_WEIGHT * SCORE_SCALE


def credibility_badge(average_rating: float) -> str:
    for threshold, badge in BADGE_THRESHOLDS:
        if average_rating >= threshold:
            return badge
    return NOT_RATED


def recent_positive_percentage(recent_positive: int, recent_total: int) -> int:
    if recent_total == 0:
        return 0
    ratio = Decimal(recent_positive * 100) / Decimal(recent_total)
    return int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def summarize_reviews(agent_id: int, now=None) -> ReviewSummary:
    """
    Compute the ReviewSummary for one agent.

    Query: 1 (aggregate)
    """
    now = now or timezone.now()
    cutoff = now - timedelta(days=RECENT_WINDOW_DAYS)
    recent = Q(created_at__gt=cutoff)

    star_counts = {
        f'rating_{star}': Count('id', filter=Q(rating=star))
        for star in range(RATING_MIN, RATING_MAX + 1)
    }
    row = Review.objects.filter(agent_id=agent_id).aggregate(
        total=Count('id'),
        average=Avg('rating'),
        recent_total=Count('id', filter=recent),
        recent_positive=Count('id', filter=recent & Q(rating__gte=POSITIVE_RATING)),
        **star_counts,
    )

    total = row['total']
    average = float(row['average'] or 0)

    return {
        'average_rating': average,
        'total_reviews': total,
        'credibility_score': credibility_score(average, total),
        'credibility_badge': credibility_badge(average),
        'recent_positive_percentage': recent_positive_percentage(
            row['recent_positive'], row['recent_total']
        ),
        'rating_distribution': {
            str(star): row[f'rating_{star}']
            for star in range(RATING_MIN, RATING_MAX + 1)
        },
    }
