"""
Tests for the HTTP API

Focus areas:
1. Bearer token identity gate
2. Error envelope codes and status mapping
3. Response shapes (viewer vote, nested tree, pagination)
"""

import os
import subprocess
import sys
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

from django.contrib.auth.models import User
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from ..authentication import verify_credential
from ..exceptions import Unauthenticated
from ..models import Agent, Comment, Discussion, Review
from ..services import cast_vote


class APITestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user('user', 'u@test.com', 'pass')
        self.stranger = User.objects.create_user('stranger', 's@test.com', 'pass')
        self.token = Token.objects.create(user=self.user)
        self.stranger_token = Token.objects.create(user=self.stranger)
        self.agent = Agent.objects.create(name='Agent', creator=self.stranger)
        self.client = APIClient()

    def login(self, token=None):
        token = token or self.token
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token.key}')

    def assertError(self, response, status_code, code):
        self.assertEqual(response.status_code, status_code, response.content)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error']['code'], code)
        self.assertTrue(body['error']['message'])
        return body['error']


class IdentityGateTestCase(APITestCase):

    def test_write_without_token_unauthorized(self):
        response = self.client.post(
            f'/api/agents/{self.agent.id}/discussions/',
            {'title': 'Hello there', 'content': 'Some content here.'},
            format='json'
        )
        self.assertError(response, 401, 'unauthorized')
        self.assertFalse(Discussion.objects.exists())

    def test_unknown_token_unauthorized(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-real-token')
        response = self.client.get(f'/api/agents/{self.agent.id}/discussions/')
        self.assertError(response, 401, 'unauthorized')

    def test_reads_are_public(self):
        response = self.client.get(f'/api/agents/{self.agent.id}/discussions/')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['success'])

    def test_whoami(self):
        self.assertFalse(self.client.get('/api/auth/whoami/').json()['authenticated'])

        self.login()
        body = self.client.get('/api/auth/whoami/').json()
        self.assertTrue(body['authenticated'])
        self.assertEqual(body['user_id'], self.user.id)

    def test_verify_credential(self):
        self.assertEqual(verify_credential(self.token.key), self.user.id)
        self.assertEqual(verify_credential(f'Bearer {self.token.key}'), self.user.id)
        for credential in ('', None, 'Bearer', 'Bearer nope', 'Token a b'):
            with self.assertRaises(Unauthenticated):
                verify_credential(credential)

    @override_settings(DEBUG=True)
    def test_dev_token_in_debug(self):
        response = self.client.post('/api/auth/dev-token/', {'username': 'newbie'}, format='json')

        body = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertTrue(body['created'])
        self.assertEqual(Token.objects.get(user__username='newbie').key, body['token'])

    def test_dev_token_disabled_outside_debug(self):
        response = self.client.post('/api/auth/dev-token/', {'username': 'newbie'}, format='json')
        self.assertError(response, 404, 'not_found')


class DiscussionAPITestCase(APITestCase):

    def test_create_and_list(self):
        self.login()
        response = self.client.post(
            f'/api/agents/{self.agent.id}/discussions/',
            {'title': '  Hello there  ', 'content': 'Some content here.'},
            format='json'
        )
        self.assertEqual(response.status_code, 201)
        created = response.json()['discussion']
        self.assertEqual(created['title'], 'Hello there')
        self.assertTrue(created['author']['is_current_user'])

        cast_vote(self.user, 'discussion', created['id'], 1)
        body = self.client.get(f'/api/agents/{self.agent.id}/discussions/?limit=5').json()

        self.assertEqual(body['pagination'], {'total': 1, 'pages': 1, 'current': 1, 'limit': 5})
        self.assertEqual(body['discussions'][0]['score'], 1)
        self.assertEqual(body['discussions'][0]['user_vote'], 1)

    def test_anonymous_viewer_vote_is_zero(self):
        discussion = Discussion.objects.create(
            agent=self.agent, author=self.user, title='A title', content='Content ' * 5
        )
        cast_vote(self.user, 'discussion', discussion.id, 1)

        body = self.client.get(f'/api/agents/{self.agent.id}/discussions/').json()

        self.assertEqual(body['discussions'][0]['user_vote'], 0)

    def test_validation_error_details(self):
        self.login()
        response = self.client.post(
            f'/api/agents/{self.agent.id}/discussions/',
            {'title': 'Hey', 'content': 'x' * 5001},
            format='json'
        )
        error = self.assertError(response, 400, 'validation_error')
        self.assertIn('title', error['details'])
        self.assertIn('content', error['details'])

    def test_invalid_sort(self):
        response = self.client.get(f'/api/agents/{self.agent.id}/discussions/?sort=random')
        self.assertError(response, 400, 'validation_error')

    def test_unknown_agent(self):
        response = self.client.get('/api/agents/999999/discussions/')
        self.assertError(response, 404, 'not_found')

    def test_detail_includes_first_comment_page(self):
        discussion = Discussion.objects.create(
            agent=self.agent, author=self.user, title='A title', content='Content ' * 5
        )
        for i in range(3):
            Comment.objects.create(discussion=discussion, author=self.stranger, content=f'c{i}')

        body = self.client.get(f'/api/discussions/{discussion.id}/?limit=2').json()

        self.assertEqual(body['discussion']['comment_count'], 3)
        self.assertEqual(len(body['comments']), 2)
        self.assertEqual(body['pagination']['pages'], 2)
        self.assertFalse(body['comments'][0]['author']['is_op'])

    def test_edit_window_expired(self):
        discussion = Discussion.objects.create(
            agent=self.agent, author=self.user, title='A title', content='Content ' * 5,
            created_at=timezone.now() - timedelta(hours=49)
        )
        self.login()

        response = self.client.patch(
            f'/api/discussions/{discussion.id}/', {'title': 'New title'}, format='json'
        )

        self.assertError(response, 403, 'edit_window_expired')

    def test_vote_endpoint(self):
        discussion = Discussion.objects.create(
            agent=self.agent, author=self.user, title='A title', content='Content ' * 5
        )
        self.login()

        body = self.client.post(
            f'/api/discussions/{discussion.id}/vote/', {'vote': -1}, format='json'
        ).json()
        self.assertEqual(body['score'], -1)
        self.assertEqual(body['user_vote'], -1)

        response = self.client.post(
            f'/api/discussions/{discussion.id}/vote/', {'vote': 2}, format='json'
        )
        self.assertError(response, 400, 'invalid_vote')

        response = self.client.post(
            f'/api/discussions/{discussion.id}/vote/', {'vote': 'up'}, format='json'
        )
        self.assertError(response, 400, 'validation_error')


class CommentAPITestCase(APITestCase):

    def setUp(self):
        super().setUp()
        self.discussion = Discussion.objects.create(
            agent=self.agent, author=self.user, title='A title', content='Content ' * 5
        )

    def test_reply_and_tree(self):
        self.login()
        url = f'/api/discussions/{self.discussion.id}/comments/'
        root = self.client.post(url, {'content': 'Root'}, format='json').json()['comment']
        reply = self.client.post(
            url, {'content': 'Reply', 'parent_id': root['id']}, format='json'
        ).json()['comment']

        self.assertTrue(root['author']['is_op'])
        self.assertEqual(reply['parent_id'], root['id'])

        tree = self.client.get(f'{url}tree/').json()['comments']
        self.assertEqual(len(tree), 1)
        self.assertEqual(tree[0]['id'], root['id'])
        self.assertEqual(tree[0]['reply_count'], 1)
        self.assertEqual(tree[0]['replies'][0]['id'], reply['id'])
        self.assertEqual(tree[0]['replies'][0]['replies'], [])

        layer = self.client.get(f'{url}?parent_id={root["id"]}').json()
        self.assertEqual([c['id'] for c in layer['comments']], [reply['id']])

    def test_missing_parent(self):
        self.login()
        response = self.client.post(
            f'/api/discussions/{self.discussion.id}/comments/',
            {'content': 'Reply', 'parent_id': 999999},
            format='json'
        )
        self.assertError(response, 404, 'not_found')

    def test_stranger_cannot_delete(self):
        comment = Comment.objects.create(discussion=self.discussion, author=self.user, content='Mine')
        self.login(self.stranger_token)

        response = self.client.delete(f'/api/comments/{comment.id}/')

        self.assertError(response, 403, 'forbidden')
        self.assertFalse(Comment.objects.get(pk=comment.id).is_deleted)

    def test_soft_and_hard_delete(self):
        soft = Comment.objects.create(discussion=self.discussion, author=self.user, content='Soft')
        hard = Comment.objects.create(discussion=self.discussion, author=self.user, content='Hard')
        self.login()

        self.assertEqual(self.client.delete(f'/api/comments/{soft.id}/').status_code, 200)
        self.assertEqual(self.client.delete(f'/api/comments/{hard.id}/?hard=true').status_code, 200)

        self.assertTrue(Comment.objects.get(pk=soft.id).is_deleted)
        self.assertFalse(Comment.objects.filter(pk=hard.id).exists())

    def test_comment_vote_shows_in_listing(self):
        comment = Comment.objects.create(discussion=self.discussion, author=self.user, content='Vote me')
        self.login(self.stranger_token)

        self.client.post(f'/api/comments/{comment.id}/vote/', {'vote': 1}, format='json')
        body = self.client.get(f'/api/discussions/{self.discussion.id}/comments/').json()

        self.assertEqual(body['comments'][0]['score'], 1)
        self.assertEqual(body['comments'][0]['user_vote'], 1)


class ReviewAPITestCase(APITestCase):

    def test_submit_duplicate_and_summary(self):
        self.login()
        url = f'/api/agents/{self.agent.id}/reviews/'
        payload = {'rating': 5, 'content': 'Excellent agent.', 'images': ['https://img.test/a.png']}

        response = self.client.post(url, payload, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['review']['images'], ['https://img.test/a.png'])

        self.assertError(self.client.post(url, payload, format='json'), 409, 'conflict')

        summary = self.client.get(f'{url}summary/').json()['summary']
        self.assertEqual(summary['total_reviews'], 1)
        self.assertEqual(summary['credibility_badge'], 'excellent')

    def test_rating_out_of_range(self):
        self.login()
        response = self.client.post(
            f'/api/agents/{self.agent.id}/reviews/',
            {'rating': 6, 'content': 'Excellent agent.'},
            format='json'
        )
        self.assertError(response, 400, 'validation_error')

    def test_helpful_votes(self):
        review = Review.objects.create(agent=self.agent, user=self.user, rating=4, content='Pretty good agent.')
        self.login(self.stranger_token)

        self.client.post(f'/api/reviews/{review.id}/vote/', {'vote': 1}, format='json')
        body = self.client.get(f'/api/reviews/{review.id}/vote/').json()

        self.assertEqual(body['upvotes'], 1)
        self.assertEqual(body['user_vote'], 1)

        listing = self.client.get(f'/api/agents/{self.agent.id}/reviews/').json()
        self.assertEqual(listing['reviews'][0]['helpful']['user_vote'], 1)

    def test_vote_on_own_review_rejected(self):
        review = Review.objects.create(agent=self.agent, user=self.user, rating=4, content='Pretty good agent.')
        self.login()

        response = self.client.post(f'/api/reviews/{review.id}/vote/', {'vote': 1}, format='json')

        error = self.assertError(response, 400, 'self_vote')
        self.assertEqual(error['message'], 'You cannot vote on your own review.')
        review.refresh_from_db()
        self.assertEqual(review.upvotes, 0)

    def test_replies(self):
        review = Review.objects.create(agent=self.agent, user=self.user, rating=4, content='Pretty good agent.')
        self.login(self.stranger_token)

        response = self.client.post(
            f'/api/reviews/{review.id}/replies/', {'content': 'Thanks for the review!'}, format='json'
        )
        self.assertEqual(response.status_code, 201)

        body = self.client.get(f'/api/reviews/{review.id}/replies/').json()
        self.assertEqual(body['pagination']['total'], 1)


class AgentAPITestCase(APITestCase):

    def test_view_counter_incremented(self):
        self.client.get(f'/api/agents/{self.agent.id}/')
        body = self.client.get(f'/api/agents/{self.agent.id}/').json()

        self.assertEqual(body['agent']['views'], 2)
        self.assertEqual(body['summary']['credibility_badge'], 'not-rated')

    def test_view_counter_failure_does_not_fail_request(self):
        with patch('community.views.Agent') as agent_model:
            agent_model.objects.filter.return_value.update.side_effect = DatabaseError('down')
            with self.assertLogs('community.views', level='WARNING'):
                response = self.client.get(f'/api/agents/{self.agent.id}/')

        self.assertEqual(response.status_code, 200)
        self.agent.refresh_from_db()
        self.assertEqual(self.agent.views, 0)

    def test_private_agent_not_found(self):
        private = Agent.objects.create(name='Hidden', creator=self.user, is_public=False)
        self.assertError(self.client.get(f'/api/agents/{private.id}/'), 404, 'not_found')


class AppLoadingTestCase(SimpleTestCase):
    """
    Import orders that a running server or a management command can hit,
    each in a fresh interpreter so no module is already cached.
    """

    backend_dir = Path(__file__).resolve().parents[2]

    def run_python(self, *args):
        env = {**os.environ, 'DJANGO_SETTINGS_MODULE': 'agentmarket.settings'}
        return subprocess.run(
            [sys.executable, *args],
            cwd=self.backend_dir,
            env=env,
            capture_output=True,
            text=True,
            timeout=120,
        )

    def test_exceptions_imported_before_views(self):
        result = self.run_python(
            '-c',
            'import django; django.setup(); '
            'import community.exceptions; import agentmarket.urls'
        )
        self.assertEqual(result.returncode, 0, result.stderr)

    def test_views_imported_before_exceptions(self):
        result = self.run_python(
            '-c',
            'import django; django.setup(); '
            'import rest_framework.views; import community.views; import agentmarket.urls'
        )
        self.assertEqual(result.returncode, 0, result.stderr)

    def test_system_check(self):
        result = self.run_python('manage.py', 'check')
        self.assertEqual(result.returncode, 0, result.stderr)
