import asyncio

import pytest

from conftest import POLL_INTERVAL, make_job, wait_until
from studio.errors import (
    GenerationFailure,
    InvalidHistorySelection,
    PollingTransportError,
    ResultUnavailableError,
    ServiceError,
    SubmissionError,
    SubmissionValidationError,
)
from studio.generation import GenerationSession, JobHistoryCache
from studio.generation.session import STATUS_CHECK_FAILED_MESSAGE, SUBMISSION_FAILED_MESSAGE
from studio.models import GenerationRequest, MosaicSettings, SessionState


def _session(job_service, with_history=True):
    history = JobHistoryCache(7, job_service) if with_history else None
    return GenerationSession(job_service, history=history, project_id=7, poll_interval=POLL_INTERVAL)


@pytest.mark.anyio
async def test_successful_generation_reaches_completed(job_service, valid_request):
    job_service.script(
        "m1",
        make_job("m1", "pending", 0),
        make_job("m1", "processing", 35),
        make_job("m1", "processing", 72),
        make_job("m1", "completed", 100, sd_url="/out/m1.jpg"),
    )
    job_service.history = [make_job("m1", "completed", 100, sd_url="/out/m1.jpg")]
    session = _session(job_service)
    seen = []
    session.subscribe(seen.append)

    snapshot = await session.submit(valid_request)
    assert snapshot.state is SessionState.polling
    assert snapshot.job.id == "m1"

    await wait_until(lambda: session.state is SessionState.completed)
    await wait_until(lambda: job_service.list_calls == 1)
    await asyncio.sleep(POLL_INTERVAL * 5)

    assert session.progress == 100
    assert session.result() == "/out/m1.jpg"
    assert session.error is None
    assert job_service.list_calls == 1
    assert len(job_service.status_calls) == 4
    assert not session.poller.is_running
    assert [job.id for job in session.history.entries] == ["m1"]

    progress = [item.progress for item in seen]
    assert progress == sorted(progress)
    assert [item.state for item in seen][:2] == [SessionState.submitting, SessionState.polling]
    await session.close()


@pytest.mark.anyio
async def test_scenario_with_five_tiles_and_camel_case_settings(job_service):
    settings = MosaicSettings.model_validate(
        {"tileSize": 50, "tileDensity": 80, "overlayRatio": 0.5, "style": "classic"}
    )
    request = GenerationRequest(
        main_image_id="m1",
        tile_image_ids=["t1", "t2", "t3", "t4", "t5"],
        settings=settings,
    )
    job_service.script(
        "m1",
        make_job("m1", "pending", 0),
        make_job("m1", "processing", 35),
        make_job("m1", "processing", 72),
        make_job("m1", "completed", 100, sd_url="/out/m1.jpg"),
    )
    session = _session(job_service)
    seen = []
    session.subscribe(seen.append)

    await session.submit(request)
    await wait_until(lambda: session.state is SessionState.completed)
    await wait_until(lambda: job_service.list_calls == 1)

    assert [item.state for item in seen][:2] == [SessionState.submitting, SessionState.polling]
    first_poll = next(item for item in seen if item.job is not None and item.job.progress == 0)
    assert first_poll.state is SessionState.polling
    assert first_poll.job.status.value == "pending"
    assert [item.progress for item in seen if item.state is SessionState.polling][-2:] == [35, 72]
    assert session.result("standard") == "/out/m1.jpg"
    assert job_service.submitted[0].to_payload()["tile_image_ids"] == ["t1", "t2", "t3", "t4", "t5"]
    await session.close()


@pytest.mark.anyio
async def test_history_refresh_failure_does_not_touch_completed_session(job_service, valid_request):
    job_service.list_error = ServiceError("historial no disponible")
    job_service.script("m1", make_job("m1", "completed", 100, sd_url="/out/m1.jpg"))
    session = _session(job_service)

    await session.submit(valid_request)
    await wait_until(lambda: session.state is SessionState.completed)
    await wait_until(lambda: job_service.list_calls == 1)
    await asyncio.sleep(POLL_INTERVAL * 3)

    assert session.state is SessionState.completed
    assert session.error is None
    assert session.result() == "/out/m1.jpg"
    assert job_service.list_calls == 1
    assert isinstance(session.history.last_error, ServiceError)
    await session.close()


@pytest.mark.anyio
async def test_failed_job_surfaces_service_error_verbatim(job_service, valid_request):
    job_service.script(
        "m2",
        make_job("m2", "processing", 10),
        make_job("m2", "failed", 10, error="unsupported tile format"),
    )
    session = _session(job_service)

    await session.submit(valid_request)
    await wait_until(lambda: session.state is SessionState.failed)

    assert session.error == "unsupported tile format"
    assert isinstance(session.last_error, GenerationFailure)
    assert not session.poller.is_running
    with pytest.raises(ResultUnavailableError):
        session.result()
    await session.close()


@pytest.mark.anyio
async def test_missing_tiles_is_rejected_without_network(job_service):
    session = _session(job_service)
    request = GenerationRequest(main_image_id="img-main", tile_image_ids=[], settings=MosaicSettings())

    with pytest.raises(SubmissionValidationError):
        await session.submit(request)

    assert job_service.submitted == []
    assert session.state is SessionState.idle
    assert session.job is None


@pytest.mark.anyio
async def test_missing_main_image_or_settings_is_rejected(job_service):
    session = _session(job_service)

    with pytest.raises(SubmissionValidationError):
        await session.submit(GenerationRequest(tile_image_ids=["t1"], settings=MosaicSettings()))
    with pytest.raises(SubmissionValidationError):
        await session.submit(GenerationRequest(main_image_id="img-main", tile_image_ids=["t1"]))

    assert job_service.submitted == []


@pytest.mark.anyio
async def test_submission_failure_moves_to_failed_without_polling(job_service, valid_request):
    job_service.submit_error = ServiceError("POST /generate/ fallo con 500", status_code=500)
    session = _session(job_service)

    snapshot = await session.submit(valid_request)

    assert snapshot.state is SessionState.failed
    assert snapshot.error == SUBMISSION_FAILED_MESSAGE
    assert isinstance(session.last_error, SubmissionError)
    assert job_service.status_calls == []
    assert not session.poller.is_running


@pytest.mark.anyio
async def test_status_transport_error_fails_the_session(job_service, valid_request):
    job_service.script("m3", ServiceError("GET fallo con 502", status_code=502))
    session = _session(job_service)

    await session.submit(valid_request)
    await wait_until(lambda: session.state is SessionState.failed)
    await asyncio.sleep(POLL_INTERVAL * 3)

    assert session.error == STATUS_CHECK_FAILED_MESSAGE
    assert isinstance(session.last_error, PollingTransportError)
    assert job_service.status_calls == ["m3"]
    await session.close()


@pytest.mark.anyio
async def test_progress_never_decreases(job_service, valid_request):
    job_service.script(
        "m4",
        make_job("m4", "processing", 60),
        make_job("m4", "processing", 40),
        make_job("m4", "pending", 0),
        make_job("m4", "processing", 80),
    )
    session = _session(job_service)
    seen = []
    session.subscribe(lambda snapshot: seen.append(snapshot.progress))

    await session.submit(valid_request)
    await wait_until(lambda: session.progress == 80)

    assert seen == sorted(seen)
    assert session.job.status.value == "processing"
    await session.close()


@pytest.mark.anyio
async def test_new_submission_replaces_the_previous_job(job_service, valid_request):
    job_service.script("m5", make_job("m5", "processing", 20))
    job_service.script("m6", make_job("m6", "processing", 5), make_job("m6", "completed", 100, sd_url="/out/m6.jpg"))
    session = _session(job_service, with_history=False)

    await session.submit(valid_request)
    await wait_until(lambda: session.progress == 20)
    await session.submit(valid_request)
    await wait_until(lambda: session.state is SessionState.completed)
    calls_after_completion = len(job_service.status_calls)
    await asyncio.sleep(POLL_INTERVAL * 5)

    assert session.job.id == "m6"
    assert session.result() == "/out/m6.jpg"
    assert len(job_service.status_calls) == calls_after_completion
    assert job_service.status_calls[-1] == "m6"


@pytest.mark.anyio
async def test_reset_during_in_flight_poll_keeps_session_idle(job_service, valid_request):
    job_service.script("m7", make_job("m7", "completed", 100, sd_url="/out/m7.jpg"))
    job_service.status_gate = asyncio.Event()
    session = _session(job_service)

    await session.submit(valid_request)
    await wait_until(lambda: job_service.status_calls)
    session.reset()
    job_service.status_gate.set()
    await asyncio.sleep(POLL_INTERVAL * 3)

    assert session.state is SessionState.idle
    assert session.job is None
    assert session.progress == 0
    assert job_service.list_calls == 0


@pytest.mark.anyio
async def test_reset_while_submitting_abandons_the_job(job_service, valid_request):
    job_service.script("m8", make_job("m8", "processing", 10))
    job_service.submit_gate = asyncio.Event()
    session = _session(job_service)

    pending = asyncio.get_running_loop().create_task(session.submit(valid_request))
    await wait_until(lambda: session.state is SessionState.submitting)
    session.reset()
    job_service.submit_gate.set()
    snapshot = await pending

    assert snapshot.state is SessionState.idle
    assert job_service.status_calls == []
    assert not session.poller.is_running


@pytest.mark.anyio
async def test_selecting_history_entries(job_service):
    job_service.history = [
        make_job("h1", "completed", 100, sd_url="/out/h1.jpg", hd_url="/out/h1_hd.jpg"),
        make_job("h2", "failed", 30, error="sin teselas"),
        make_job("h3", "processing", 50),
    ]
    session = _session(job_service)
    await session.history.refresh()

    snapshot = session.select_history("h1")
    assert snapshot.state is SessionState.completed
    assert session.result("high") == "/out/h1_hd.jpg"

    snapshot = session.select_history("h2")
    assert snapshot.state is SessionState.failed
    assert snapshot.error == "sin teselas"

    with pytest.raises(InvalidHistorySelection):
        session.select_history("h3")
    with pytest.raises(InvalidHistorySelection):
        session.select_history("desconocido")

    assert job_service.submitted == []
    assert job_service.status_calls == []


@pytest.mark.anyio
async def test_close_stops_polling_and_rejects_new_submissions(job_service, valid_request):
    job_service.script("m9", make_job("m9", "processing", 10))
    session = _session(job_service)

    async with session:
        await session.submit(valid_request)
        await wait_until(lambda: job_service.status_calls)

    calls = len(job_service.status_calls)
    await asyncio.sleep(POLL_INTERVAL * 4)

    assert session.closed
    assert len(job_service.status_calls) == calls
    with pytest.raises(RuntimeError):
        await session.submit(valid_request)


@pytest.mark.anyio
async def test_failing_listener_does_not_break_the_session(job_service, valid_request):
    job_service.script("m10", make_job("m10", "completed", 100, sd_url="/out/m10.jpg"))
    session = _session(job_service, with_history=False)

    def broken(snapshot):
        raise ValueError("observador roto")

    session.subscribe(broken)
    await session.submit(valid_request)
    await wait_until(lambda: session.state is SessionState.completed)

    assert session.result() == "/out/m10.jpg"
