# Generated manually
import backend.items.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('folders', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, max_length=100)),
                ('description', models.TextField(blank=True, null=True)),
                ('category', models.CharField(blank=True, max_length=50, null=True)),
                ('manufacturer', models.CharField(blank=True, max_length=100, null=True)),
                ('purchase_date', models.DateField(blank=True, null=True)),
                ('purchase_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('purchase_location', models.CharField(blank=True, max_length=200, null=True)),
                ('condition', models.CharField(blank=True, max_length=50, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('folder', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='items', to='folders.folder')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'items',
                'ordering': ['-updated_at'],
                'indexes': [
                    models.Index(fields=['user', 'folder'], name='items_user_folder_idx'),
                    models.Index(fields=['user', 'category'], name='items_user_category_idx'),
                    models.Index(fields=['user', '-updated_at'], name='items_user_updated_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ItemImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image', models.ImageField(max_length=255, upload_to=backend.items.models.item_image_upload_to)),
                ('thumbnail_small', models.ImageField(blank=True, max_length=255, null=True, upload_to=backend.items.models.item_thumbnail_upload_to)),
                ('thumbnail_medium', models.ImageField(blank=True, max_length=255, null=True, upload_to=backend.items.models.item_thumbnail_upload_to)),
                ('thumbnail_large', models.ImageField(blank=True, max_length=255, null=True, upload_to=backend.items.models.item_thumbnail_upload_to)),
                ('filename', models.CharField(help_text='Original file name as uploaded', max_length=255)),
                ('mime_type', models.CharField(max_length=50)),
                ('size', models.PositiveIntegerField(default=0)),
                ('order', models.PositiveSmallIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='images', to='items.item')),
            ],
            options={
                'db_table': 'item_images',
                'ordering': ['order', 'created_at'],
            },
        ),
    ]
