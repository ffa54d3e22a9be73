"""
Management command to create a demo user with a folder hierarchy, items and price history
Usage: python manage.py seed_demo [--username demo] [--password demo12345] [--reset]
"""
from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from backend.folders.models import Folder
from backend.items.models import Item
from backend.pricing.services import save_price_history

User = get_user_model()

# (name, parent name)
DEMO_FOLDERS = [
    ('Home', None),
    ('Living Room', 'Home'),
    ('Kitchen', 'Home'),
    ('Cupboard', 'Kitchen'),
    ('Hobbies', None),
    ('Cameras', 'Hobbies'),
]

# (name, folder name, category, manufacturer, purchase price, purchase date, market prices)
DEMO_ITEMS = [
    ('Mirrorless camera', 'Cameras', 'Electronics', 'Sony', '98000', date(2022, 9, 10), ['¥72,000', '¥80,500', '¥76,800']),
    ('50mm lens', 'Cameras', 'Electronics', 'Sony', '32000', date(2022, 9, 10), ['¥25,000', '¥27,800']),
    ('Electric kettle', 'Kitchen', 'Appliances', 'Tiger', '4980', date(2023, 2, 1), ['¥2,500', '¥3,200']),
    ('Cast iron pan', 'Cupboard', 'Kitchenware', 'Lodge', '5800', date(2021, 11, 20), []),
    ('Bookshelf speaker', 'Living Room', 'Audio', 'Yamaha', '26000', date(2020, 5, 5), ['¥15,000']),
    ('Board game', None, 'Games', None, None, None, []),
]


class Command(BaseCommand):
    help = 'Create a demo user with folders, items and price history'

    def add_arguments(self, parser):
        parser.add_argument(
            '--username',
            type=str,
            default='demo',
            help='Username of the demo account (default: demo)',
        )
        parser.add_argument(
            '--password',
            type=str,
            default='demo12345',
            help='Password of the demo account',
        )
        parser.add_argument(
            '--reset',
            action='store_true',
            help='Delete the demo user\'s existing folders and items first',
        )

    def handle(self, *args, **options):
        username = options['username']

        with transaction.atomic():
            user, created = User.objects.get_or_create(username=username, defaults={
                'email': f'{username}@example.com',
                'display_name': 'Demo',
            })
            if created:
                user.set_password(options['password'])
                user.save(update_fields=['password'])
                self.stdout.write(self.style.SUCCESS(f'Created user {username}'))
            else:
                self.stdout.write(f'Using existing user {username}')

            if options['reset']:
                item_count = Item.objects.filter(user=user).count()
                Item.objects.filter(user=user).delete()
                Folder.objects.filter(user=user).delete()
                self.stdout.write(self.style.WARNING(f'  Removed {item_count} item(s) and all folders'))

            folders = {}
            for name, parent_name in DEMO_FOLDERS:
                folder, _ = Folder.objects.get_or_create(
                    user=user, name=name, parent=folders.get(parent_name),
                )
                folders[name] = folder
            self.stdout.write(f'  Folders: {len(folders)}')

            new_items = 0
            histories = 0
            for name, folder_name, category, manufacturer, price, purchased, market in DEMO_ITEMS:
                item, item_created = Item.objects.get_or_create(
                    user=user, name=name,
                    defaults={
                        'folder': folders.get(folder_name),
                        'category': category,
                        'manufacturer': manufacturer,
                        'purchase_price': Decimal(price) if price else None,
                        'purchase_date': purchased,
                    },
                )
                if not item_created:
                    continue
                new_items += 1
                if market:
                    save_price_history(
                        item,
                        [{'price': amount, 'site': 'Mercari'} for amount in market],
                        summary=f'Demo market prices for {name}',
                        source='manual',
                    )
                    histories += 1

        self.stdout.write(f'  Items created: {new_items}')
        self.stdout.write(f'  Price histories created: {histories}')
        self.stdout.write(self.style.SUCCESS(f'\nDemo data ready. Log in as {username}.'))
