"""
Management command to seed the database with sample data.

Usage: python manage.py seed_data
"""

import random
from datetime import timedelta
from django.core.management.base import BaseCommand
from django.contrib.auth.models import User
from django.utils import timezone

from community.models import Agent, Comment, Discussion, Review, ReviewReply, Vote, ReviewVote
from community.services import cast_vote, cast_review_vote


class Command(BaseCommand):
    help = 'Seed the database with sample agents, discussions, comments and reviews'

    def add_arguments(self, parser):
        parser.add_argument(
            '--users',
            type=int,
            default=10,
            help='Number of users to create'
        )
        parser.add_argument(
            '--agents',
            type=int,
            default=3,
            help='Number of agents to create'
        )
        parser.add_argument(
            '--discussions',
            type=int,
            default=15,
            help='Number of discussions to create'
        )
        parser.add_argument(
            '--comments',
            type=int,
            default=100,
            help='Number of comments to create'
        )
        parser.add_argument(
            '--seed',
            type=int,
            default=None,
            help='Random seed for reproducible data'
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding'
        )

    def handle(self, *args, **options):
        if options['seed'] is not None:
            random.seed(options['seed'])

        if options['clear']:
            self.stdout.write('Clearing existing data...')
            Vote.objects.all().delete()
            ReviewVote.objects.all().delete()
            Agent.objects.all().delete()
            User.objects.filter(is_superuser=False).delete()

        self.stdout.write('Creating users...')
        users = self._create_users(options['users'])

        self.stdout.write('Creating agents...')
        agents = self._create_agents(users, options['agents'])

        self.stdout.write('Creating discussions...')
        discussions = self._create_discussions(users, agents, options['discussions'])

        self.stdout.write('Creating comments...')
        comments = self._create_comments(users, discussions, options['comments'])

        self.stdout.write('Creating reviews...')
        reviews = self._create_reviews(users, agents)

        self.stdout.write('Casting votes...')
        self._cast_votes(users, discussions, comments, reviews)

        self.stdout.write(self.style.SUCCESS(
            f'Successfully created:\n'
            f'  - {len(users)} users\n'
            f'  - {len(agents)} agents\n'
            f'  - {len(discussions)} discussions\n'
            f'  - {len(comments)} comments\n'
            f'  - {len(reviews)} reviews\n'
            f'  - Votes on discussions, comments and reviews'
        ))

    def _create_users(self, count):
        users = []
        for i in range(count):
            username = f'user{i+1}'
            user = User.objects.filter(username=username).first()
            if user is None:
                user = User.objects.create_user(
                    username=username,
                    email=f'{username}@example.com',
                    password='password123'
                )
                user.profile.display_name = f'User {i+1}'
                user.profile.is_verified = random.random() < 0.3
                user.profile.save()
            users.append(user)
        return users

    def _create_agents(self, users, count):
        names = ['Research Assistant', 'Code Reviewer', 'Travel Planner', 'Data Analyst', 'Tutor']
        return [
            Agent.objects.create(
                name=f"{names[i % len(names)]} #{i+1}",
                description='A sample agent for the community demo.',
                creator=random.choice(users)
            )
            for i in range(count)
        ]

    def _create_discussions(self, users, agents, count):
        discussions = []
        titles = [
            "How do you get the best answers?",
            "Feature request: export results",
            "Weird behaviour with long inputs",
            "Sharing my favourite prompts",
            "Comparison with similar agents",
        ]
        contents = [
            "I've been using this agent for a while and wanted to share my thoughts with the community.",
            "Has anyone else experienced this? I'd love to hear your perspectives.",
            "Here's what I learned after a few weeks of daily use.",
        ]

        for i in range(count):
            created_at = timezone.now() - timedelta(hours=random.randint(0, 72))
            discussion = Discussion.objects.create(
                agent=random.choice(agents),
                author=random.choice(users),
                title=f"{random.choice(titles)} #{i+1}",
                content=random.choice(contents),
                created_at=created_at,
                last_activity_at=created_at
            )
            discussions.append(discussion)
        return discussions

    def _create_comments(self, users, discussions, count):
        comments = []
        comment_texts = [
            "Great point! I totally agree.",
            "Hmm, I'm not sure about this...",
            "Thanks for sharing!",
            "Can you elaborate on this?",
            "I have a different perspective on this.",
            "+1 to this",
        ]

        for _ in range(count):
            discussion = random.choice(discussions)

            # 30% chance of being a reply to an existing comment
            parent = None
            existing_comments = [c for c in comments if c.discussion_id == discussion.id]
            if existing_comments and random.random() < 0.3:
                parent = random.choice(existing_comments)

            comment = Comment.objects.create(
                discussion=discussion,
                author=random.choice(users),
                parent=parent,
                content=random.choice(comment_texts),
            )
            comments.append(comment)

        return comments

    def _create_reviews(self, users, agents):
        reviews = []
        review_texts = [
            "Solid agent, saved me hours this week.",
            "Works well for simple tasks, struggles with long ones.",
            "Not what I expected from the description.",
        ]

        for agent in agents:
            # One review per user per agent
            for user in random.sample(users, k=len(users) // 2):
                review = Review.objects.create(
                    agent=agent,
                    user=user,
                    rating=random.randint(1, 5),
                    content=random.choice(review_texts),
                    created_at=timezone.now() - timedelta(days=random.randint(0, 60))
                )
                reviews.append(review)
                if random.random() < 0.2:
                    ReviewReply.objects.create(
                        review=review,
                        user=agent.creator,
                        content="Thanks for the feedback, we're on it.",
                    )
        return reviews

    def _cast_votes(self, users, discussions, comments, reviews):
        # Through the ledger so cached scores stay consistent
        for discussion in discussions:
            for voter in random.sample(users, k=len(users) // 2):
                cast_vote(voter, 'discussion', discussion.id, random.choice([1, 1, -1]))

        for comment in comments:
            if random.random() < 0.3:
                for voter in random.sample(users, k=min(3, len(users))):
                    cast_vote(voter, 'comment', comment.id, random.choice([1, 1, -1]))

        for review in reviews:
            if random.random() < 0.5:
                # Authors can't vote on their own review
                voter = random.choice([u for u in users if u.id != review.user_id])
                cast_review_vote(voter, review.id, random.choice([1, -1]))
