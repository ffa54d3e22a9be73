"""
Django management command to check folder hierarchies for cycles,
cross-user parents and depth violations
"""
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from backend.folders.folder_cache import fetch_folder_rows
from backend.folders.models import Folder
from backend.folders.tree import FolderTree, MAX_FOLDER_DEPTH

User = get_user_model()


class Command(BaseCommand):
    help = 'Check folder hierarchies for cycles, foreign parents and folders deeper than the depth limit'

    def add_arguments(self, parser):
        parser.add_argument(
            '--user',
            type=str,
            help='Check one username only',
        )
        parser.add_argument(
            '--show-all',
            action='store_true',
            help='Print every user, not just the ones with problems',
        )

    def handle(self, *args, **options):
        username = options.get('user')
        show_all = options.get('show_all', False)

        self.stdout.write("=" * 80)
        self.stdout.write(self.style.SUCCESS("FOLDER HIERARCHY CHECK"))
        self.stdout.write("=" * 80)

        users = User.objects.filter(username=username) if username else User.objects.order_by('id')
        total_problems = 0

        for user in users:
            problems = self.check_user(user)
            total_problems += len(problems)
            if problems or show_all:
                self.stdout.write(f"\n{user.username} (ID: {user.id})")
                for problem in problems:
                    self.stdout.write(self.style.ERROR(f"  - {problem}"))
                if not problems:
                    self.stdout.write("  OK")

        self.stdout.write("")
        if total_problems:
            self.stdout.write(self.style.ERROR(f"Found {total_problems} problem(s)"))
        else:
            self.stdout.write(self.style.SUCCESS("All folder hierarchies are valid"))

    def check_user(self, user):
        tree = FolderTree.from_rows(fetch_folder_rows(user.id))
        problems = []

        foreign_parents = Folder.objects.filter(user=user, parent__isnull=False).exclude(parent__user=user)
        for folder in foreign_parents:
            problems.append(f"Folder {folder.id} '{folder.name}' has a parent owned by another user")

        for node in tree:
            chain = tree.ancestor_ids(node.id)
            top = tree.get(chain[-1])
            if top.parent_id is not None and top.parent_id in chain:
                if node.id in tree.ancestor_ids(node.parent_id):
                    problems.append(f"Folder {node.id} '{node.name}' is part of a cycle")
                else:
                    problems.append(f"Folder {node.id} '{node.name}' is below a cycle")
                continue
            if len(chain) > MAX_FOLDER_DEPTH:
                problems.append(f"Folder {node.id} '{node.name}' is at depth {len(chain)} (limit {MAX_FOLDER_DEPTH})")
        return problems
