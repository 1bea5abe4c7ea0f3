"""
Seed the default subscription plans and credit packages.

Stripe price ids are placeholders; set the real ones in the admin for each
Stripe account. Existing rows with the same plan_id/package_id are left alone.
"""

from django.db import migrations

PLANS = [
    {
        "plan_id": "starter",
        "name": "Starter",
        "description": "Perfect for small teams getting started",
        "stripe_price_id_monthly": "price_starter_monthly",
        "stripe_price_id_yearly": "price_starter_yearly",
        "monthly_price": 2900,
        "yearly_price": 29000,
        "credits_included": 1000,
        "features": [
            "1,000 credits per month",
            "Up to 5 team members",
            "Basic analytics",
            "Email support",
            "API access",
        ],
        "sort_order": 1,
    },
    {
        "plan_id": "pro",
        "name": "Pro",
        "description": "For growing teams that need more power",
        "stripe_price_id_monthly": "price_pro_monthly",
        "stripe_price_id_yearly": "price_pro_yearly",
        "monthly_price": 7900,
        "yearly_price": 79000,
        "credits_included": 5000,
        "features": [
            "5,000 credits per month",
            "Up to 25 team members",
            "Advanced analytics",
            "Priority support",
            "API access",
            "Custom integrations",
        ],
        "sort_order": 2,
    },
    {
        "plan_id": "enterprise",
        "name": "Enterprise",
        "description": "For large organizations with custom needs",
        "stripe_price_id_monthly": "price_enterprise_monthly",
        "stripe_price_id_yearly": "price_enterprise_yearly",
        "monthly_price": 19900,
        "yearly_price": 199000,
        "credits_included": 15000,
        "features": [
            "15,000 credits per month",
            "Unlimited team members",
            "Enterprise analytics",
            "24/7 phone support",
            "SSO integration",
            "Dedicated account manager",
        ],
        "sort_order": 3,
    },
]

PACKAGES = [
    {
        "package_id": "credits_500",
        "name": "500 Credits",
        "description": "Perfect for small projects",
        "stripe_price_id": "price_credits_500",
        "credits": 500,
        "price": 1500,
        "sort_order": 1,
    },
    {
        "package_id": "credits_1000",
        "name": "1,000 Credits",
        "description": "Great value for medium projects",
        "stripe_price_id": "price_credits_1000",
        "credits": 1000,
        "price": 2500,
        "sort_order": 2,
    },
    {
        "package_id": "credits_2500",
        "name": "2,500 Credits",
        "description": "Best value for large projects",
        "stripe_price_id": "price_credits_2500",
        "credits": 2500,
        "price": 5000,
        "sort_order": 3,
    },
    {
        "package_id": "credits_5000",
        "name": "5,000 Credits",
        "description": "Enterprise-level credit package",
        "stripe_price_id": "price_credits_5000",
        "credits": 5000,
        "price": 9000,
        "sort_order": 4,
    },
]


def seed_catalog(apps, schema_editor):
    SubscriptionPlan = apps.get_model("billing", "SubscriptionPlan")
    CreditPackage = apps.get_model("billing", "CreditPackage")

    for plan in PLANS:
        plan = dict(plan)
        SubscriptionPlan.objects.get_or_create(plan_id=plan.pop("plan_id"), defaults=plan)

    for package in PACKAGES:
        package = dict(package)
        CreditPackage.objects.get_or_create(
            package_id=package.pop("package_id"), defaults=package
        )


def remove_catalog(apps, schema_editor):
    SubscriptionPlan = apps.get_model("billing", "SubscriptionPlan")
    CreditPackage = apps.get_model("billing", "CreditPackage")

    SubscriptionPlan.objects.filter(
        plan_id__in=[plan["plan_id"] for plan in PLANS], subscriptions__isnull=True
    ).delete()
    CreditPackage.objects.filter(
        package_id__in=[package["package_id"] for package in PACKAGES]
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_catalog, remove_catalog),
    ]
