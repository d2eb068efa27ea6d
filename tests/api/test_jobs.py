import pytest
from uuid import uuid4
from datetime import datetime, timezone

from studyroom.core.exceptions import JobNotCancellableError, JobNotFoundError


@pytest.fixture
def job_payload():
    job_id = uuid4()
    now = datetime.now(timezone.utc).isoformat()
    return {
        "id": str(job_id),
        "document_id": str(uuid4()),
        "status": "failed",
        "progress": 5,
        "retry_count": 3,
        "max_retries": 3,
        "total_pages": 0,
        "processed_pages": 0,
        "error_kind": "corrupt_source",
        "error_message": "Unable to open PDF",
        "user_message": "The file may be corrupted or password-protected.",
        "forced": False,
        "result": {},
        "started_at": now,
        "completed_at": now,
        "created_at": now,
        "updated_at": now,
    }


def test_get_job_status(client, mock_job_service, job_payload):
    job_id = job_payload["id"]
    mock_job_service.get_job_status.return_value = job_payload

    response = client.get(f"/api/v1/jobs/{job_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "failed"
    assert data["retryCount"] == 3
    assert data["errorKind"] == "corrupt_source"
    assert "password-protected" in data["userMessage"]
    mock_job_service.get_job_status.assert_called_once()


def test_get_job_not_found(client, mock_job_service):
    job_id = uuid4()
    mock_job_service.get_job_status.side_effect = JobNotFoundError(str(job_id))

    response = client.get(f"/api/v1/jobs/{job_id}")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "job_not_found"


def test_get_job_invalid_id(client, mock_job_service):
    response = client.get("/api/v1/jobs/not-a-uuid")

    assert response.status_code == 422
    mock_job_service.get_job_status.assert_not_called()


def test_cancel_queued_job(client, mock_job_service, job_payload):
    job_payload.update(status="cancelled", error_kind=None, error_message=None, user_message=None)
    mock_job_service.cancel_job.return_value = job_payload

    response = client.post(f"/api/v1/jobs/{job_payload['id']}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    mock_job_service.cancel_job.assert_awaited_once()


def test_cancel_running_job_conflicts(client, mock_job_service):
    job_id = uuid4()
    mock_job_service.cancel_job.side_effect = JobNotCancellableError(str(job_id), "processing")

    response = client.post(f"/api/v1/jobs/{job_id}/cancel")

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "job_not_cancellable"


def test_cancel_unknown_job(client, mock_job_service):
    job_id = uuid4()
    mock_job_service.cancel_job.side_effect = JobNotFoundError(str(job_id))

    response = client.post(f"/api/v1/jobs/{job_id}/cancel")

    assert response.status_code == 404
