import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Availability',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('declared_at', models.DateTimeField()),
                ('x', models.FloatField()),
                ('y', models.FloatField()),
                ('driver', models.ForeignKey(limit_choices_to={'role': 'driver'}, on_delete=django.db.models.deletion.PROTECT, related_name='availability_declarations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'availability',
                'db_table': 'driver_availability',
                'ordering': ['declared_at', 'id'],
                'indexes': [models.Index(fields=['driver', 'declared_at'], name='avail_driver_time_idx')],
            },
        ),
    ]
