"""
Management command to seed the public plan catalog.

Creates or updates the five catalog plans (Free trial, Bronze, Silver, Gold,
Enterprise). Custom per-tenant plans are created by apply_custom_plan and are
never touched here.

Usage:
    python manage.py seed_plans              # Create missing plans
    python manage.py seed_plans --force      # Also update existing plan limits
"""

from django.core.management.base import BaseCommand

from recruitdesk.billing.constants import PlanCode
from recruitdesk.billing.models import Plan

PLAN_CONFIG = {
    PlanCode.FREE: {
        "name": "Free Trial",
        "description": "Try the platform for 7 days with a single recruiter.",
        "job_limit": 5,
        "member_limit": 1,
        "features": ["job_postings", "candidate_pipeline"],
        "monthly_price_cents": 0,
        "display_order": 0,
    },
    PlanCode.BRONZE: {
        "name": "Bronze",
        "description": "For small teams hiring a few roles each month.",
        "job_limit": 25,
        "member_limit": 4,
        "features": ["job_postings", "candidate_pipeline", "resume_scoring"],
        "monthly_price_cents": 30_000,
        "display_order": 1,
    },
    PlanCode.SILVER: {
        "name": "Silver",
        "description": "For growing teams with a steady hiring pipeline.",
        "job_limit": 50,
        "member_limit": 15,
        "features": [
            "job_postings",
            "candidate_pipeline",
            "resume_scoring",
            "custom_branding",
        ],
        "monthly_price_cents": 50_000,
        "display_order": 2,
    },
    PlanCode.GOLD: {
        "name": "Gold",
        "description": "For recruiting departments hiring at volume.",
        "job_limit": 100,
        "member_limit": 30,
        "features": [
            "job_postings",
            "candidate_pipeline",
            "resume_scoring",
            "custom_branding",
            "priority_support",
        ],
        "monthly_price_cents": 80_000,
        "display_order": 3,
    },
    PlanCode.ENTERPRISE: {
        "name": "Enterprise",
        "description": "Unlimited job postings and a large team. Contact us.",
        "job_limit": None,  # Unlimited
        "member_limit": 999,
        "features": [
            "job_postings",
            "candidate_pipeline",
            "resume_scoring",
            "custom_branding",
            "priority_support",
            "dedicated_manager",
        ],
        "monthly_price_cents": 0,  # Contact us
        "display_order": 4,
    },
}


class Command(BaseCommand):
    help = "Seed the public billing plan catalog"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Update existing plans with latest configuration",
        )

    def handle(self, *args, **options):
        force_update = options["force"]

        for plan_code, config in PLAN_CONFIG.items():
            plan, created = Plan.objects.get_or_create(
                code=plan_code,
                defaults=config,
            )

            if created:
                self.stdout.write(self.style.SUCCESS(f"  Created: {plan.name}"))
            elif force_update:
                for field, value in config.items():
                    setattr(plan, field, value)
                plan.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated: {plan.name}"))
            else:
                self.stdout.write(
                    f"  Exists: {plan.name} (use --force to update limits)",
                )

        self.stdout.write(f"\n{Plan.objects.filter(is_custom=False).count()} catalog plans.")
