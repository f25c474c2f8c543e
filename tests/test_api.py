import os
from datetime import timedelta
import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from apps.jobs.models import Job
from apps.management.models import ManagementLog
from apps.payments.models import Payment
from core.constants import DisputeStatus, JobStatus, PaymentStatus
from tests.fakes import FakeGateway

pytestmark = pytest.mark.django_db


def as_user(api_client, user):
    api_client.force_authenticate(user)
    return api_client


def test_requires_authentication(api_client):
    response = api_client.get('/jobs/')
    assert response.status_code == 401


def test_job_lifecycle_over_http(api_client, client_user, worker, worker2):
    deadline = (timezone.now() + timedelta(days=5)).isoformat()
    response = as_user(api_client, client_user).post('/jobs/create/', {
        'title': 'Build a fence', 'description': '20 meters', 'budget': '1000', 'deadline': deadline,
    }, format='json')
    assert response.status_code == 201
    job_id = response.data['id']
    assert response.data['status'] == JobStatus.POSTED

    response = as_user(api_client, worker2).get('/jobs/open/')
    assert [job['id'] for job in response.data] == [job_id]

    low = api_client.post(f'/jobs/{job_id}/apply/', {'proposed_budget': '700'}, format='json')
    high = as_user(api_client, worker).post(f'/jobs/{job_id}/apply/', {'proposed_budget': '900'}, format='json')
    assert low.status_code == high.status_code == 201

    duplicate = api_client.post(f'/jobs/{job_id}/apply/', {'proposed_budget': '850'}, format='json')
    assert duplicate.status_code == 409
    assert duplicate.data['code'] == 'duplicate_application'

    response = as_user(api_client, client_user).get(f'/jobs/{job_id}/applications/')
    assert len(response.data) == 2

    response = api_client.post(
        f'/jobs/{job_id}/applications/{high.data["id"]}/respond/', {'action': 'accept'}, format='json'
    )
    assert response.status_code == 200
    response = api_client.post(
        f'/jobs/{job_id}/applications/{low.data["id"]}/respond/', {'action': 'accept'}, format='json'
    )
    assert response.status_code == 409
    assert response.data['code'] == 'already_assigned'

    as_user(api_client, worker)
    assert api_client.post(f'/jobs/{job_id}/start/').data['status'] == JobStatus.IN_PROGRESS
    assert api_client.post(f'/jobs/{job_id}/submit/').data['status'] == JobStatus.AWAITING_COMPLETION

    as_user(api_client, client_user)
    response = api_client.post(f'/jobs/{job_id}/revision/', {'reason': 'missing section 3'}, format='json')
    assert response.data['status'] == JobStatus.REVISION_REQUESTED
    assert response.data['revision_count'] == 1

    as_user(api_client, worker)
    assert api_client.post(f'/jobs/{job_id}/resubmit/').data['status'] == JobStatus.IN_PROGRESS
    api_client.post(f'/jobs/{job_id}/submit/')

    response = as_user(api_client, client_user).post(f'/payments/jobs/{job_id}/settle/', {}, format='json')
    assert response.status_code == 200
    assert response.data['status'] == PaymentStatus.SETTLED
    assert response.data['amount'] == '900.00'
    assert Job.objects.get(pk=job_id).status == JobStatus.COMPLETED

    response = api_client.post(f'/jobs/{job_id}/reviews/', {'rating': 5, 'comment': 'Solid'}, format='json')
    assert response.status_code == 201
    response = api_client.get(f'/jobs/{job_id}/reviews/')
    assert len(response.data) == 1


def test_error_codes_map_to_http_status(api_client, submitted_job, client_user, worker, other_client):
    response = as_user(api_client, client_user).post(
        f'/jobs/{submitted_job.pk}/revision/', {'reason': '   '}, format='json'
    )
    assert response.status_code == 400
    assert response.data['code'] == 'invalid_argument'

    response = as_user(api_client, worker).post(f'/jobs/{submitted_job.pk}/start/')
    assert response.status_code == 409
    assert response.data['code'] == 'illegal_transition'

    response = as_user(api_client, other_client).get(f'/jobs/{submitted_job.pk}/')
    assert response.status_code == 403

    response = api_client.get('/jobs/424242/')
    assert response.status_code == 404
    assert response.data['code'] == 'not_found'


def test_role_permissions(api_client, posted_job, worker, client_user):
    response = as_user(api_client, worker).post('/jobs/create/', {}, format='json')
    assert response.status_code == 403
    response = as_user(api_client, client_user).get('/jobs/open/')
    assert response.status_code == 403


def test_manual_proof_flow_over_http(api_client, pending_payment, client_user, finance_admin):
    FakeGateway.mode = 'failure'
    response = as_user(api_client, client_user).post(f'/payments/{pending_payment.pk}/attempt/')
    assert response.data['status'] == PaymentStatus.MANUAL_REVIEW

    upload = SimpleUploadedFile('receipt.png', b'\x89PNG receipt', content_type='image/png')
    response = api_client.post(
        f'/payments/{pending_payment.pk}/proof/', {'proof': upload, 'note': 'Bank transfer'}, format='multipart'
    )
    assert response.status_code == 200
    assert response.data['proof_status'] == 'submitted'

    response = as_user(api_client, finance_admin).get(f'/payments/{pending_payment.pk}/proof/')
    assert response.status_code == 200
    assert response.content == b'\x89PNG receipt'

    response = api_client.post(f'/payments/{pending_payment.pk}/verify/', {'decision': 'accept'}, format='json')
    assert response.status_code == 200
    assert response.data['status'] == PaymentStatus.SETTLED
    assert Job.objects.get(pk=pending_payment.job_id).status == JobStatus.COMPLETED

    response = as_user(api_client, client_user).post(f'/payments/{pending_payment.pk}/verify/', {'decision': 'accept'})
    assert response.status_code == 403


def test_settle_while_disputed_returns_held_payment(api_client, submitted_job, client_user, worker):
    as_user(api_client, worker).post('/disputes/', {
        'job_id': submitted_job.pk, 'description': 'Client keeps adding work',
    }, format='json')

    response = as_user(api_client, client_user).post(f'/payments/jobs/{submitted_job.pk}/settle/', {}, format='json')

    assert response.status_code == 202
    assert response.data['is_held'] is True
    assert FakeGateway.charges == []


def test_payment_lists_are_scoped(api_client, pending_payment, client_user, worker2, finance_admin):
    assert len(as_user(api_client, client_user).get('/payments/').data) == 1
    assert as_user(api_client, worker2).get('/payments/').data == []
    assert as_user(api_client, worker2).get(f'/payments/{pending_payment.pk}/').status_code == 403
    assert len(as_user(api_client, finance_admin).get('/payments/?status=pending').data) == 1


def test_dispute_flow_over_http(api_client, pending_payment, client_user, hr_admin):
    response = as_user(api_client, client_user).post('/disputes/', {
        'job_id': pending_payment.job_id, 'description': 'Work incomplete', 'dispute_type': 'quality',
    }, format='json')
    assert response.status_code == 201
    dispute_id = response.data['id']

    again = api_client.post('/disputes/', {
        'job_id': pending_payment.job_id, 'description': 'Again',
    }, format='json')
    assert again.status_code == 409
    assert again.data['code'] == 'duplicate_dispute'

    response = api_client.post(f'/disputes/{dispute_id}/resolve/', {
        'outcome': 'refund', 'resolution_note': 'x',
    }, format='json')
    assert response.status_code == 403

    as_user(api_client, hr_admin)
    response = api_client.post(f'/disputes/{dispute_id}/status/', {'status': 'investigating'}, format='json')
    assert response.data['status'] == DisputeStatus.INVESTIGATING

    response = api_client.post(f'/disputes/{dispute_id}/resolve/', {
        'outcome': 'partial', 'resolution_note': 'Half done',
    }, format='json')
    assert response.status_code == 400

    response = api_client.post(f'/disputes/{dispute_id}/resolve/', {
        'outcome': 'partial', 'resolution_note': 'Half done', 'amount': '450',
    }, format='json')
    assert response.status_code == 200
    assert response.data['status'] == DisputeStatus.RESOLVED
    assert response.data['resolved_by'] == hr_admin.username
    assert Payment.objects.get(pk=pending_payment.pk).amount == 450

    response = api_client.get('/disputes/?status=resolved')
    assert [d['id'] for d in response.data] == [dispute_id]
    response = as_user(api_client, client_user).get(f'/disputes/{dispute_id}/')
    assert response.data['outcome'] == 'partial'


def test_management_logs_for_admins_only(api_client, assigned_job, hr_admin, client_user):
    as_user(api_client, hr_admin).post(f'/jobs/{assigned_job.pk}/cancel/', {'reason': 'Fraud'}, format='json')
    assert ManagementLog.objects.filter(action='cancel_job').exists()

    response = api_client.get('/management/management-logs/?action=cancel_job')
    assert response.status_code == 200
    assert response.data[0]['admin'] == hr_admin.username

    response = as_user(api_client, client_user).get('/management/management-logs/')
    assert response.status_code == 403


def test_user_endpoints(api_client, completed_job, client_user, worker):
    response = as_user(api_client, client_user).get('/users/me/')
    assert response.data['role'] == 'client'

    as_user(api_client, worker).post(f'/jobs/{completed_job.pk}/reviews/', {'rating': 4}, format='json')
    response = as_user(api_client, client_user).get(f'/users/{client_user.pk}/')
    assert response.data['rating_stats']['total_ratings'] == 1
    assert response.data['rating_stats']['rating_breakdown']['4_star'] == 100.0

    assert api_client.get('/users/9999/').status_code == 404


def test_obtain_token(api_client, client_user):
    response = api_client.post('/users/token/', {'username': 'client', 'password': 'pass12345'}, format='json')
    assert response.status_code == 200
    assert 'token' in response.data


def test_refused_proof_upload_leaves_no_file(api_client, pending_payment, client_user, settings):
    upload = SimpleUploadedFile('receipt.png', b'\x89PNG receipt', content_type='image/png')
    response = as_user(api_client, client_user).post(
        f'/payments/{pending_payment.pk}/proof/', {'proof': upload}, format='multipart'
    )

    assert response.status_code == 409
    proof_dir = os.path.join(settings.MEDIA_ROOT, 'payment_proofs')
    assert not os.path.isdir(proof_dir) or os.listdir(proof_dir) == []


def test_dispute_evidence_over_http(api_client, assigned_job, client_user, worker, worker2, hr_admin, settings):
    response = as_user(api_client, client_user).post('/disputes/', {
        'job_id': assigned_job.pk, 'title': 'Wrong paint', 'description': 'Used gloss instead of matte',
        'dispute_type': 'quality', 'priority': 'high',
    }, format='json')
    dispute_id = response.data['id']
    assert response.data['title'] == 'Wrong paint'
    assert response.data['priority'] == 'high'

    upload = SimpleUploadedFile('wall.jpg', b'jpeg bytes', content_type='image/jpeg')
    response = api_client.post(
        f'/disputes/{dispute_id}/evidence/', {'kind': 'image', 'file': upload, 'description': 'Shiny wall'},
        format='multipart',
    )
    assert response.status_code == 201
    evidence_id = response.data['id']

    response = as_user(api_client, worker).post(
        f'/disputes/{dispute_id}/evidence/', {'kind': 'message', 'description': 'Client picked gloss'}, format='json'
    )
    assert response.status_code == 201

    response = api_client.patch(f'/disputes/{dispute_id}/', {'description': 'Gloss was agreed'}, format='json')
    assert response.status_code == 200
    assert response.data['description'] == 'Gloss was agreed'
    assert [item['kind'] for item in response.data['evidence']] == ['image', 'message']

    response = api_client.get(f'/disputes/{dispute_id}/evidence/{evidence_id}/file/')
    assert response.status_code == 200
    assert response.content == b'jpeg bytes'

    assert as_user(api_client, worker2).get(f'/disputes/{dispute_id}/evidence/').status_code == 403

    as_user(api_client, hr_admin).post(f'/disputes/{dispute_id}/status/', {
        'status': 'investigating', 'hr_notes': 'Checking the order form',
    }, format='json')
    api_client.post(f'/disputes/{dispute_id}/resolve/', {
        'outcome': 'release', 'resolution_note': 'Gloss was in the order',
    }, format='json')

    upload = SimpleUploadedFile('late.jpg', b'late bytes', content_type='image/jpeg')
    response = as_user(api_client, client_user).post(
        f'/disputes/{dispute_id}/evidence/', {'kind': 'image', 'file': upload}, format='multipart'
    )
    assert response.status_code == 409
    assert os.listdir(os.path.join(settings.MEDIA_ROOT, 'dispute_evidence')) == [
        os.path.basename(api_client.get(f'/disputes/{dispute_id}/').data['evidence'][0]['blob_ref'])
    ]
    assert api_client.get(f'/disputes/{dispute_id}/').data['hr_notes'] == 'Checking the order form'
