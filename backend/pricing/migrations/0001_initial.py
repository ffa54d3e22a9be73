# Generated manually
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('items', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PriceHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source', models.CharField(choices=[('gemini_search', 'Gemini Search'), ('manual', 'Manual')], default='gemini_search', max_length=30)),
                ('min_price', models.IntegerField(blank=True, null=True)),
                ('avg_price', models.IntegerField(blank=True, null=True)),
                ('max_price', models.IntegerField(blank=True, null=True)),
                ('listing_count', models.IntegerField(default=0)),
                ('summary', models.TextField(blank=True, null=True)),
                ('search_date', models.DateTimeField(auto_now_add=True)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='price_histories', to='items.item')),
            ],
            options={
                'db_table': 'price_histories',
                'ordering': ['-search_date'],
                'indexes': [models.Index(fields=['item', '-search_date'], name='price_hist_item_date_idx')],
            },
        ),
        migrations.CreateModel(
            name='PriceDetail',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('site', models.CharField(max_length=100)),
                ('price', models.IntegerField()),
                ('url', models.URLField(blank=True, max_length=500, null=True)),
                ('condition', models.CharField(blank=True, max_length=50, null=True)),
                ('title', models.CharField(blank=True, max_length=255, null=True)),
                ('history', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='details', to='pricing.pricehistory')),
            ],
            options={
                'db_table': 'price_details',
                'ordering': ['price'],
            },
        ),
    ]
