import uuid

import django.db.models.deletion
from django.db import migrations, models


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last updated",
            ),
        ),
    ]


def _uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


def _big_auto_pk():
    return (
        "id",
        models.BigAutoField(
            auto_created=True,
            primary_key=True,
            serialize=False,
            verbose_name="ID",
        ),
    )


def _metadata():
    return (
        "metadata",
        models.JSONField(
            blank=True,
            default=dict,
            help_text="Flexible key-value metadata storage",
        ),
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("organizations", "0001_initial"),
    ]

    operations = [
        # =====================================================================
        # Catalog
        # =====================================================================
        migrations.CreateModel(
            name="SubscriptionPlan",
            fields=[
                _big_auto_pk(),
                *_timestamps(),
                ("plan_id", models.SlugField(unique=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                (
                    "stripe_price_id_monthly",
                    models.CharField(db_index=True, max_length=255),
                ),
                (
                    "stripe_price_id_yearly",
                    models.CharField(db_index=True, max_length=255),
                ),
                (
                    "monthly_price",
                    models.PositiveIntegerField(help_text="Minor currency units"),
                ),
                (
                    "yearly_price",
                    models.PositiveIntegerField(help_text="Minor currency units"),
                ),
                ("credits_included", models.PositiveIntegerField()),
                ("features", models.JSONField(blank=True, default=list)),
                ("is_active", models.BooleanField(default=True)),
                ("sort_order", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "ordering": ["sort_order", "id"],
            },
        ),
        migrations.CreateModel(
            name="CreditPackage",
            fields=[
                _big_auto_pk(),
                *_timestamps(),
                ("package_id", models.SlugField(unique=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                ("stripe_price_id", models.CharField(max_length=255)),
                ("credits", models.PositiveIntegerField()),
                (
                    "price",
                    models.PositiveIntegerField(help_text="Minor currency units"),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("sort_order", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "ordering": ["sort_order", "id"],
            },
        ),
        # =====================================================================
        # Ledger
        # =====================================================================
        migrations.CreateModel(
            name="CreditBalance",
            fields=[
                _big_auto_pk(),
                *_timestamps(),
                ("balance", models.BigIntegerField(default=0)),
                ("total_earned", models.BigIntegerField(default=0)),
                ("total_purchased", models.BigIntegerField(default=0)),
                ("total_bonus", models.BigIntegerField(default=0)),
                ("total_refunded", models.BigIntegerField(default=0)),
                ("total_used", models.BigIntegerField(default=0)),
                (
                    "organization",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credit_balance",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "verbose_name": "Credit Balance",
                "verbose_name_plural": "Credit Balances",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("balance__gte", 0)),
                        name="credit_balance_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="CreditEntry",
            fields=[
                *_timestamps(),
                _metadata(),
                _uuid_pk(),
                (
                    "credit_type",
                    models.CharField(
                        choices=[
                            ("earned", "Earned"),
                            ("purchased", "Purchased"),
                            ("bonus", "Bonus"),
                            ("refunded", "Refunded"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        help_text="Credits originally granted"
                    ),
                ),
                (
                    "remaining",
                    models.PositiveBigIntegerField(
                        help_text="Credits still available for consumption"
                    ),
                ),
                (
                    "expires_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the remaining credits expire (empty = never)",
                        null=True,
                    ),
                ),
                ("description", models.CharField(blank=True, max_length=500)),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credit_entries",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "verbose_name": "Credit Entry",
                "verbose_name_plural": "Credit Entries",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["organization", "credit_type"],
                        name="credit_entry_org_type_idx",
                    ),
                    models.Index(
                        fields=["expires_at"], name="credit_entry_expires_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="credit_entry_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("remaining__lte", models.F("amount"))
                        ),
                        name="credit_entry_remaining_within_amount",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CreditTransaction",
            fields=[
                *_timestamps(),
                _metadata(),
                _uuid_pk(),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[
                            ("earned", "Earned"),
                            ("purchased", "Purchased"),
                            ("bonus", "Bonus"),
                            ("refunded", "Refunded"),
                            ("used", "Used"),
                            ("expired", "Expired"),
                            ("adjustment", "Adjustment"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    models.BigIntegerField(
                        help_text="Signed credit delta (negative = credits removed)"
                    ),
                ),
                ("description", models.CharField(blank=True, max_length=500)),
                (
                    "idempotency_key",
                    models.CharField(
                        blank=True,
                        help_text="Unique key preventing a replayed grant from applying twice",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "entry",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="billing.creditentry",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credit_transactions",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "verbose_name": "Credit Transaction",
                "verbose_name_plural": "Credit Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["organization", "-created_at"],
                        name="credit_txn_org_created_idx",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Subscriptions and Webhooks
        # =====================================================================
        migrations.CreateModel(
            name="Subscription",
            fields=[
                *_timestamps(),
                _metadata(),
                _uuid_pk(),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        help_text="Stripe Subscription ID (sub_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "stripe_customer_id",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe Customer ID (cus_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "stripe_price_id",
                    models.CharField(
                        help_text="Stripe Price ID (price_xxx)", max_length=255
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("canceled", "Canceled"),
                            ("incomplete", "Incomplete"),
                            ("incomplete_expired", "Incomplete Expired"),
                            ("past_due", "Past Due"),
                            ("trialing", "Trialing"),
                            ("unpaid", "Unpaid"),
                            ("paused", "Paused"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("current_period_start", models.DateTimeField()),
                ("current_period_end", models.DateTimeField()),
                ("cancel_at_period_end", models.BooleanField(default=False)),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                ("trial_end", models.DateTimeField(blank=True, null=True)),
                (
                    "initial_credits_granted",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the plan's credits were granted on activation",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="organizations.organization",
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="billing.subscriptionplan",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["organization", "-created_at"],
                        name="subscription_org_created_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                ("event_type", models.CharField(db_index=True, max_length=100)),
                ("payload", models.JSONField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="webhook_status_created_idx",
                    ),
                    models.Index(
                        fields=["status", "retry_count"],
                        name="webhook_status_retry_idx",
                    ),
                ],
            },
        ),
    ]
