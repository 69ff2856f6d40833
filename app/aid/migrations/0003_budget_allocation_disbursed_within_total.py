from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("aid", "0002_add_aid_periodic_tasks"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="budgetallocation",
            constraint=models.CheckConstraint(
                condition=models.Q(("disbursed_budget__lte", models.F("total_budget"))),
                name="budget_allocation_disbursed_within_total",
            ),
        ),
    ]
