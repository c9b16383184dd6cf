"""
Tests for reviews and the credibility engine

Focus areas:
1. Credibility score, badge and recent-positive percentage
2. One review per (user, agent)
3. Images, replies, edit windows and ownership
"""

from datetime import timedelta

from django.contrib.auth.models import User
from django.test import TestCase
from django.utils import timezone

from ..credibility import (
    credibility_badge,
    credibility_score,
    recent_positive_percentage,
    summarize_reviews,
)
from ..exceptions import Conflict, EditWindowExpired, Forbidden, NotFound, ValidationError
from ..models import Agent, Review, ReviewImage, ReviewReply, ReviewVote
from ..queries import get_agent_reviews, get_review_replies
from ..reviews import (
    add_reply,
    delete_reply,
    delete_review,
    edit_review,
    submit_review,
    update_reply,
)
from ..services import cast_review_vote


class CredibilityFormulaTestCase(TestCase):
    """Pure scoring rules, no database."""

    def test_score_weights_quality_and_volume(self):
        # 5.0 * 0.7 + 5/100 * 0.3 * 5
        self.assertAlmostEqual(credibility_score(5.0, 5), 3.575)
        self.assertAlmostEqual(credibility_score(3.0, 50), 2.1 + 0.75)

    def test_volume_saturates_at_100_reviews(self):
        self.assertAlmostEqual(credibility_score(4.0, 100), 4.3)
        self.assertAlmostEqual(credibility_score(4.0, 250), 4.3)

    def test_score_without_reviews(self):
        self.assertEqual(credibility_score(0.0, 0), 0.0)

    def test_badge_thresholds(self):
        cases = [
            (5.0, 'excellent'),
            (4.5, 'excellent'),
            (4.49, 'good'),
            (3.5, 'good'),
            (3.49, 'average'),
            (2.5, 'average'),
            (1.5, 'poor'),
            (1.49, 'not-rated'),
            (0.0, 'not-rated'),
        ]
        for average, badge in cases:
            self.assertEqual(credibility_badge(average), badge, average)

    def test_recent_positive_rounding(self):
        self.assertEqual(recent_positive_percentage(0, 0), 0)
        self.assertEqual(recent_positive_percentage(2, 3), 67)
        self.assertEqual(recent_positive_percentage(1, 8), 13)  # 12.5 rounds up
        self.assertEqual(recent_positive_percentage(3, 3), 100)


class ReviewSummaryTestCase(TestCase):
    """Test summarize_reviews against stored reviews."""

    def setUp(self):
        self.creator = User.objects.create_user('creator', 'c@test.com', 'pass')
        self.agent = Agent.objects.create(name='Agent', creator=self.creator)
        self.users = [
            User.objects.create_user(f'user{i}', f'u{i}@test.com', 'pass')
            for i in range(5)
        ]

    def test_no_reviews(self):
        summary = summarize_reviews(self.agent.id)

        self.assertEqual(summary['average_rating'], 0)
        self.assertEqual(summary['total_reviews'], 0)
        self.assertEqual(summary['credibility_score'], 0)
        self.assertEqual(summary['credibility_badge'], 'not-rated')
        self.assertEqual(summary['recent_positive_percentage'], 0)
        self.assertEqual(summary['rating_distribution'], {'1': 0, '2': 0, '3': 0, '4': 0, '5': 0})

    def test_five_excellent_reviews(self):
        for user in self.users:
            Review.objects.create(agent=self.agent, user=user, rating=5, content='Excellent agent.')

        summary = summarize_reviews(self.agent.id)

        self.assertEqual(summary['average_rating'], 5.0)
        self.assertEqual(summary['total_reviews'], 5)
        self.assertAlmostEqual(summary['credibility_score'], 3.575)
        self.assertEqual(summary['credibility_badge'], 'excellent')
        self.assertEqual(summary['recent_positive_percentage'], 100)
        self.assertEqual(summary['rating_distribution']['5'], 5)

    def test_recent_window_excludes_old_reviews(self):
        now = timezone.now()
        Review.objects.create(
            agent=self.agent, user=self.users[0], rating=5, content='Recent and good.',
            created_at=now - timedelta(days=2)
        )
        Review.objects.create(
            agent=self.agent, user=self.users[1], rating=2, content='Recent and poor.',
            created_at=now - timedelta(days=10)
        )
        Review.objects.create(
            agent=self.agent, user=self.users[2], rating=1, content='Old and bad.',
            created_at=now - timedelta(days=45)
        )

        summary = summarize_reviews(self.agent.id, now=now)

        self.assertEqual(summary['total_reviews'], 3)
        self.assertAlmostEqual(summary['average_rating'], 8 / 3)
        self.assertEqual(summary['credibility_badge'], 'average')
        self.assertEqual(summary['recent_positive_percentage'], 50)
        self.assertEqual(
            summary['rating_distribution'],
            {'1': 1, '2': 1, '3': 0, '4': 0, '5': 1}
        )

    def test_other_agents_not_counted(self):
        other = Agent.objects.create(name='Other', creator=self.creator)
        Review.objects.create(agent=other, user=self.users[0], rating=1, content='Not this agent.')

        self.assertEqual(summarize_reviews(self.agent.id)['total_reviews'], 0)


class ReviewWriteTestCase(TestCase):
    """Test submitting, editing and deleting reviews."""

    def setUp(self):
        self.creator = User.objects.create_user('creator', 'c@test.com', 'pass')
        self.user = User.objects.create_user('user', 'u@test.com', 'pass')
        self.stranger = User.objects.create_user('stranger', 's@test.com', 'pass')
        self.agent = Agent.objects.create(name='Agent', creator=self.creator)

    def test_submit_with_images(self):
        review = submit_review(
            self.user, self.agent.id, 4, 'Does what it says.',
            images=['https://img.test/1.png', 'https://img.test/2.png']
        )

        self.assertEqual(review.rating, 4)
        self.assertEqual(
            list(review.images.values_list('url', flat=True)),
            ['https://img.test/1.png', 'https://img.test/2.png']
        )

    def test_duplicate_review_conflict(self):
        submit_review(self.user, self.agent.id, 4, 'Does what it says.')

        with self.assertRaises(Conflict):
            submit_review(self.user, self.agent.id, 2, 'Changed my mind.')

        self.assertEqual(Review.objects.count(), 1)

    def test_too_many_images(self):
        images = [f'https://img.test/{i}.png' for i in range(6)]

        with self.assertRaises(ValidationError):
            submit_review(self.user, self.agent.id, 4, 'Does what it says.', images=images)

        self.assertFalse(Review.objects.exists())

    def test_private_agent_not_found(self):
        private = Agent.objects.create(name='Hidden', creator=self.creator, is_public=False)
        with self.assertRaises(NotFound):
            submit_review(self.user, private.id, 4, 'Does what it says.')

    def test_edit_replaces_images(self):
        review = submit_review(
            self.user, self.agent.id, 4, 'Does what it says.',
            images=['https://img.test/1.png']
        )

        edited = edit_review(
            self.user, review.id, 2, 'Got worse lately.',
            images=['https://img.test/3.png'],
            now=review.created_at + timedelta(hours=47)
        )

        self.assertEqual(edited.rating, 2)
        self.assertEqual(edited.content, 'Got worse lately.')
        self.assertEqual(
            list(ReviewImage.objects.filter(review=review).values_list('url', flat=True)),
            ['https://img.test/3.png']
        )

    def test_edit_after_window(self):
        review = submit_review(self.user, self.agent.id, 4, 'Does what it says.')

        with self.assertRaises(EditWindowExpired) as ctx:
            edit_review(
                self.user, review.id, 1, 'Too late to edit.',
                now=review.created_at + timedelta(hours=49)
            )

        self.assertIn('48 hours', str(ctx.exception.detail))

    def test_only_author_may_edit_or_delete(self):
        review = submit_review(self.user, self.agent.id, 4, 'Does what it says.')

        with self.assertRaises(Forbidden):
            edit_review(self.stranger, review.id, 1, 'Hijacked review.')
        with self.assertRaises(Forbidden):
            delete_review(self.stranger, review.id)

    def test_delete_cascades(self):
        review = submit_review(
            self.user, self.agent.id, 4, 'Does what it says.',
            images=['https://img.test/1.png']
        )
        add_reply(self.creator, review.id, 'Thanks for the review!')
        cast_review_vote(self.stranger, review.id, 1)

        delete_review(self.user, review.id)

        self.assertFalse(Review.objects.exists())
        self.assertFalse(ReviewImage.objects.exists())
        self.assertFalse(ReviewReply.objects.exists())
        self.assertFalse(ReviewVote.objects.exists())

    def test_listing_sort_filter_and_reply_count(self):
        low = submit_review(self.user, self.agent.id, 2, 'Could be better.')
        high = submit_review(self.stranger, self.agent.id, 5, 'Best agent so far.')
        add_reply(self.creator, low.id, 'Sorry to hear that.')

        highest, total = get_agent_reviews(self.agent.id, sort='highest')
        self.assertEqual([r.id for r in highest], [high.id, low.id])
        self.assertEqual(total, 2)
        self.assertEqual(highest[1].reply_count, 1)

        filtered, total = get_agent_reviews(self.agent.id, rating=2)
        self.assertEqual([r.id for r in filtered], [low.id])
        self.assertEqual(total, 1)


class ReviewReplyTestCase(TestCase):
    """Test replies to reviews."""

    def setUp(self):
        self.creator = User.objects.create_user('creator', 'c@test.com', 'pass')
        self.user = User.objects.create_user('user', 'u@test.com', 'pass')
        self.agent = Agent.objects.create(name='Agent', creator=self.creator)
        self.review = submit_review(self.user, self.agent.id, 3, 'It is okay overall.')

    def test_reply_listing(self):
        first = add_reply(self.creator, self.review.id, 'Thanks for the review!')
        second = add_reply(self.user, self.review.id, 'You are welcome here.')

        page, total = get_review_replies(self.review.id)

        self.assertEqual([r.id for r in page], [first.id, second.id])
        self.assertEqual(total, 2)

    def test_reply_to_missing_review(self):
        with self.assertRaises(NotFound):
            add_reply(self.creator, 999999, 'Thanks for the review!')

    def test_reply_edit_window(self):
        reply = add_reply(self.creator, self.review.id, 'Thanks for the review!')

        update_reply(self.creator, reply.id, 'Thanks a lot, really.', now=reply.created_at + timedelta(hours=23))
        with self.assertRaises(EditWindowExpired):
            update_reply(self.creator, reply.id, 'Far too late now.', now=reply.created_at + timedelta(hours=25))

    def test_only_author_may_change_reply(self):
        reply = add_reply(self.creator, self.review.id, 'Thanks for the review!')

        with self.assertRaises(Forbidden):
            update_reply(self.user, reply.id, 'Not my reply to edit.')
        with self.assertRaises(Forbidden):
            delete_reply(self.user, reply.id)

        delete_reply(self.creator, reply.id)
        self.assertFalse(ReviewReply.objects.exists())


class PrivateAgentReviewTestCase(TestCase):
    """Reviews and replies of a private agent behave as if they did not exist."""

    def setUp(self):
        self.creator = User.objects.create_user('creator', 'c@test.com', 'pass')
        self.user = User.objects.create_user('user', 'u@test.com', 'pass')
        self.agent = Agent.objects.create(name='Agent', creator=self.creator)
        self.review = submit_review(self.user, self.agent.id, 4, 'Good enough for me.')
        self.reply = add_reply(self.creator, self.review.id, 'Thanks for the review!')
        Agent.objects.filter(pk=self.agent.id).update(is_public=False)

    def test_review_writes_rejected(self):
        with self.assertRaises(NotFound):
            cast_review_vote(self.creator, self.review.id, 1)
        with self.assertRaises(NotFound):
            edit_review(self.user, self.review.id, 2, 'Changed my mind about it.')
        with self.assertRaises(NotFound):
            delete_review(self.user, self.review.id)

        self.review.refresh_from_db()
        self.assertEqual(self.review.rating, 4)
        self.assertFalse(ReviewVote.objects.exists())

    def test_replies_hidden(self):
        with self.assertRaises(NotFound):
            add_reply(self.creator, self.review.id, 'Another reply here.')
        with self.assertRaises(NotFound):
            get_review_replies(self.review.id)
        with self.assertRaises(NotFound):
            update_reply(self.creator, self.reply.id, 'Edited reply text.')
        with self.assertRaises(NotFound):
            delete_reply(self.creator, self.reply.id)

        self.assertEqual(ReviewReply.objects.count(), 1)
