"""
Tests for billing Celery tasks.

Tasks are called directly (synchronously); Redis is mocked behind the
distributed lock and .delay() is patched where a task fans out.
"""

from datetime import timedelta

import pytest
from django.test import override_settings
from django.utils import timezone
from freezegun import freeze_time

from billing.ledger import (
    BonusGrant,
    CreditEntry,
    CreditTransaction,
    TransactionType,
    credit_ledger,
)
from billing.models import WebhookEvent, WebhookEventStatus
from billing.tasks import (
    EXPIRE_CREDITS_LOCK_KEY,
    cleanup_stuck_webhooks,
    expire_credits,
    process_webhook_event,
    retry_failed_webhooks,
)
from billing.tests.factories import (
    WebhookEventFactory,
    stripe_checkout_session,
    stripe_event,
)


# =============================================================================
# Credit Expiration
# =============================================================================


@pytest.mark.django_db
class TestExpireCredits:
    def test_expires_lapsed_entries(self, organization, mock_redis):
        with freeze_time("2026-01-01 00:00:00"):
            credit_ledger.grant(
                organization.id,
                BonusGrant(
                    amount=200,
                    description="Launch promotion",
                    expires_at=timezone.now() + timedelta(days=30),
                ),
            )
            credit_ledger.grant(
                organization.id,
                BonusGrant(amount=300, description="Referral"),
            )

        with freeze_time("2026-02-15 00:00:00"):
            result = expire_credits()

        assert result == {
            "status": "completed",
            "expired_entry_count": 1,
            "total_expired": 200,
        }
        assert credit_ledger.get_balance(organization.id).balance == 300
        txn = CreditTransaction.objects.get(transaction_type=TransactionType.EXPIRED)
        assert txn.amount == -200

    def test_nothing_to_expire(self, db, mock_redis):
        result = expire_credits()

        assert result == {
            "status": "completed",
            "expired_entry_count": 0,
            "total_expired": 0,
        }

    def test_takes_and_releases_lock(self, db, mock_redis):
        expire_credits()

        lock_key = mock_redis.set.call_args.args[0]
        assert EXPIRE_CREDITS_LOCK_KEY in lock_key
        mock_redis.eval.assert_called_once()

    def test_skips_when_another_sweep_holds_the_lock(
        self, organization, mock_redis, mocker
    ):
        mock_redis.set.return_value = False
        sweep = mocker.patch("billing.tasks.credit_ledger.expire_sweep")

        result = expire_credits()

        assert result == {"status": "skipped"}
        sweep.assert_not_called()


# =============================================================================
# Webhook Processing
# =============================================================================


@pytest.mark.django_db
class TestProcessWebhookEvent:
    def test_processes_pending_event(self, organization):
        payload = stripe_event(
            "checkout.session.completed",
            stripe_checkout_session(organization_id=organization.id),
        )
        webhook_event = WebhookEventFactory(
            stripe_event_id=payload["id"],
            event_type="checkout.session.completed",
            payload=payload,
        )

        result = process_webhook_event(str(webhook_event.id))

        webhook_event.refresh_from_db()
        assert result["status"] == "processed"
        assert result["stripe_event_id"] == payload["id"]
        assert webhook_event.status == WebhookEventStatus.PROCESSED
        assert credit_ledger.get_balance(organization.id).balance == 500

    def test_retry_of_failed_event_does_not_double_grant(self, organization):
        payload = stripe_event(
            "checkout.session.completed",
            stripe_checkout_session(organization_id=organization.id),
        )
        first = WebhookEventFactory(
            stripe_event_id=payload["id"],
            event_type="checkout.session.completed",
            payload=payload,
        )
        process_webhook_event(str(first.id))
        # Simulate a crash after the grant committed
        WebhookEvent.objects.filter(pk=first.pk).update(
            status=WebhookEventStatus.FAILED
        )

        result = process_webhook_event(str(first.id))

        assert result["status"] == "processed"
        assert credit_ledger.get_balance(organization.id).balance == 500
        assert CreditEntry.objects.filter(organization=organization).count() == 1

    def test_unknown_event_id(self, db):
        result = process_webhook_event("00000000-0000-0000-0000-000000000000")

        assert result["status"] == "not_found"

    def test_already_processed_event(self, db):
        webhook_event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        result = process_webhook_event(str(webhook_event.id))

        assert result["status"] == "already_processed"

    def test_event_processing_elsewhere_is_not_claimed(self, db):
        webhook_event = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)

        result = process_webhook_event(str(webhook_event.id))

        assert result["status"] == "not_claimable"

    def test_invalid_payload_reports_handler_failure(self, db):
        webhook_event = WebhookEventFactory(
            event_type="checkout.session.completed",
            payload=stripe_event(
                "checkout.session.completed",
                {"id": "cs_1", "mode": "payment", "metadata": {}},
            ),
        )

        result = process_webhook_event(str(webhook_event.id))

        assert result["status"] == "handler_failed"


# =============================================================================
# Webhook Maintenance
# =============================================================================


@pytest.mark.django_db
class TestRetryFailedWebhooks:
    @override_settings(BILLING_WEBHOOK_MAX_RETRIES=3)
    def test_queues_failed_events_with_attempts_left(self, mocker):
        delay = mocker.patch("billing.tasks.process_webhook_event.delay")
        retryable = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)
        WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=3)
        WebhookEventFactory(status=WebhookEventStatus.PENDING)
        WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        delay.assert_called_once_with(str(retryable.id))

    def test_nothing_to_retry(self, db, mocker):
        delay = mocker.patch("billing.tasks.process_webhook_event.delay")

        assert retry_failed_webhooks() == {"queued_count": 0}
        delay.assert_not_called()


@pytest.mark.django_db
class TestCleanupStuckWebhooks:
    @override_settings(BILLING_WEBHOOK_STUCK_AFTER_MINUTES=30)
    def test_resets_events_stuck_in_processing(self):
        stuck = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        recent = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        WebhookEvent.objects.filter(pk=stuck.pk).update(
            updated_at=timezone.now() - timedelta(hours=1)
        )

        result = cleanup_stuck_webhooks()

        stuck.refresh_from_db()
        recent.refresh_from_db()
        assert result == {"reset_count": 1}
        assert stuck.status == WebhookEventStatus.FAILED
        assert stuck.error_message == "Processing timed out - reset for retry"
        assert recent.status == WebhookEventStatus.PROCESSING
