import pytest
from sqlalchemy import func, select

from services.automation.app.persistence.models import GeneratedAutomation, JobStatus
from services.automation.app.persistence.sinks import SqlJobStore

from support import email_sheet_job, email_sheet_workflow


def _automation(organization_id=None):
    return {
        "name": "Email Categorization Log",
        "description": "Categorize support emails",
        "platform": "n8n",
        "workflow_json": email_sheet_workflow(),
        "instructions": "# Email Categorization Log",
        "metadata": {"organizationId": organization_id, "nodeCount": 3},
    }


@pytest.mark.asyncio
async def test_register_job_starts_pending(session_factory, job):
    store = SqlJobStore(session_factory)

    await store.register_job(job)

    record = await store.get_job("job-s1")
    assert record.status is JobStatus.pending
    assert record.progress == 0
    assert record.payload["id"] == "job-s1"
    assert record.payload["processData"]["businessContext"]["industry"] == "Customer Support"
    assert record.organization_id is None


@pytest.mark.asyncio
async def test_progress_updates_and_failure_message(session_factory, job):
    store = SqlJobStore(session_factory)
    await store.register_job(job)

    await store.update_progress("job-s1", 30, "processing")
    await store.update_progress("job-s1", 0, "failed", "Workflow validation failed: bad graph")

    record = await store.get_job("job-s1")
    assert record.status is JobStatus.failed
    assert record.progress == 0
    assert record.error_message == "Workflow validation failed: bad graph"


@pytest.mark.asyncio
@pytest.mark.parametrize("percent, status", [(150, "processing"), (-1, "processing"), (50, "paused")])
async def test_invalid_progress_is_rejected(session_factory, percent, status):
    store = SqlJobStore(session_factory)
    with pytest.raises(ValueError):
        await store.update_progress("job-s1", percent, status)
    assert await store.get_job("job-s1") is None


@pytest.mark.asyncio
async def test_save_and_read_automation(session_factory, job):
    store = SqlJobStore(session_factory)
    await store.register_job(job)

    automation_id = await store.save_automation("job-s1", _automation())

    saved = await store.get_automation("job-s1")
    assert saved.id == automation_id
    assert saved.platform == "n8n"
    assert saved.details == {"organizationId": None, "nodeCount": 3}
    assert saved.workflow_json["name"] == "Email Categorization Log"
    record = await store.get_job("job-s1")
    assert record.workflow_data == email_sheet_workflow()


@pytest.mark.asyncio
async def test_saving_twice_replaces_the_job_automation(session_factory, job):
    store = SqlJobStore(session_factory)
    await store.register_job(job)

    first_id = await store.save_automation("job-s1", _automation())
    retried = _automation("org-7")
    retried["name"] = "Email Categorization Log v2"
    second_id = await store.save_automation("job-s1", retried)

    assert second_id == first_id
    saved = await store.get_automation("job-s1")
    assert saved.name == "Email Categorization Log v2"
    assert saved.organization_id == "org-7"
    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(GeneratedAutomation))
    assert count == 1


@pytest.mark.asyncio
async def test_completion_clears_earlier_failure_message(session_factory, job):
    store = SqlJobStore(session_factory)
    await store.register_job(job)

    await store.update_progress("job-s1", 0, "failed", "All AI providers failed")
    await store.update_progress("job-s1", 100, "completed")

    record = await store.get_job("job-s1")
    assert record.status is JobStatus.completed
    assert record.error_message is None


@pytest.mark.asyncio
async def test_save_creates_missing_job_row(session_factory):
    store = SqlJobStore(session_factory)

    await store.save_automation("job-unknown", _automation())

    assert (await store.get_job("job-unknown")).status is JobStatus.pending


@pytest.mark.asyncio
async def test_missing_automation_is_none(session_factory):
    assert await SqlJobStore(session_factory).get_automation("job-none") is None


@pytest.mark.asyncio
async def test_usage_is_recorded_for_organizations_only(session_factory):
    store = SqlJobStore(session_factory)

    await store.log_usage(None, {"eventType": "automation_completed", "jobId": "job-p"})
    await store.log_usage("org-1", {"eventType": "automation_completed", "jobId": "job-o", "nodeCount": 3})

    events = await store.list_usage("org-1")
    assert len(events) == 1
    assert events[0].event_type == "automation_completed"
    assert events[0].details["jobId"] == "job-o"
    assert "eventType" not in events[0].details
    assert "timestamp" in events[0].details


@pytest.mark.asyncio
async def test_register_job_keeps_organization(session_factory):
    store = SqlJobStore(session_factory)
    job = email_sheet_job(id="job-org", organizationContext={"organizationId": "org-7", "organizationPlan": "enterprise"})

    await store.register_job(job)

    record = await store.get_job("job-org")
    assert record.organization_id == "org-7"
    assert record.payload["organizationContext"]["organizationPlan"] == "enterprise"
