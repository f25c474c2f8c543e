from datetime import timedelta
from decimal import Decimal
import pytest
from django.utils import timezone
from rest_framework.test import APIClient
from apps.jobs.ledger import ledger
from apps.jobs.state_machine import job_machine
from apps.payments.tracker import payment_tracker
from apps.users.models import User
from core.constants import UserRole
from tests.fakes import FakeGateway


@pytest.fixture(autouse=True)
def lifecycle_settings(settings, tmp_path):
    settings.PAYMENT_GATEWAY = 'tests.fakes.FakeGateway'
    settings.MEDIA_ROOT = str(tmp_path / 'media')
    settings.REVISION_LIMIT = 0
    settings.PROOF_REJECTION_LIMIT = 0
    settings.TWILIO_ACCOUNT_SID = ''
    settings.DEFAULT_CURRENCY = 'ETB'
    FakeGateway.reset()
    yield settings
    FakeGateway.reset()


def make_user(username, role, **extra):
    return User.objects.create_user(
        username=username, email=f'{username}@example.com', password='pass12345', role=role, **extra
    )


@pytest.fixture
def client_user(db):
    return make_user('client', UserRole.CLIENT, first_name='Abebe', last_name='Kebede')


@pytest.fixture
def other_client(db):
    return make_user('client2', UserRole.CLIENT)


@pytest.fixture
def worker(db):
    return make_user('worker1', UserRole.WORKER, first_name='Sara')


@pytest.fixture
def worker2(db):
    return make_user('worker2', UserRole.WORKER, first_name='Dawit')


@pytest.fixture
def hr_admin(db):
    return make_user('hr', UserRole.HR_ADMIN)


@pytest.fixture
def finance_admin(db):
    return make_user('finance', UserRole.FINANCE_ADMIN)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def make_job(client_user):
    def _make_job(client=None, budget='1000.00', **kwargs):
        return job_machine.post(
            client or client_user,
            kwargs.pop('title', 'Paint the office'),
            kwargs.pop('description', 'Two rooms, white'),
            budget,
            kwargs.pop('deadline', timezone.now() + timedelta(days=7)),
            **kwargs
        )
    return _make_job


@pytest.fixture
def posted_job(make_job):
    return make_job()


@pytest.fixture
def assigned_job(posted_job, client_user, worker):
    application = ledger.submit(posted_job.pk, worker, Decimal('900.00'), 'I can do it this week')
    job, _ = ledger.accept(posted_job.pk, application.pk, client_user)
    return job


@pytest.fixture
def submitted_job(assigned_job, worker):
    job_machine.start_work(assigned_job.pk, worker)
    return job_machine.submit_for_review(assigned_job.pk, worker)


@pytest.fixture
def pending_payment(submitted_job, client_user):
    return payment_tracker.initiate(submitted_job.pk, client_user)


@pytest.fixture
def manual_review_payment(pending_payment):
    FakeGateway.mode = 'failure'
    payment = payment_tracker.attempt_gateway_settlement(pending_payment.pk)
    FakeGateway.mode = 'success'
    return payment


@pytest.fixture
def completed_job(pending_payment):
    payment_tracker.attempt_gateway_settlement(pending_payment.pk)
    pending_payment.job.refresh_from_db()
    return pending_payment.job
