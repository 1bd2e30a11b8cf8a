import pytest

from media_tools.models.job_contract import ConversionSpec, JobContext, JobState


def test_happy_path_reaches_done():
    job = JobContext(job_id="abc", route="/image/resize")

    for state in (JobState.VALIDATED, JobState.STAGED, JobState.TRANSFORMING, JobState.STREAMING, JobState.DONE):
        job.advance(state)

    assert job.finished
    assert job.history[0] == JobState.RECEIVED


@pytest.mark.parametrize(
    "path",
    [
        [],
        [JobState.VALIDATED],
        [JobState.VALIDATED, JobState.STAGED],
        [JobState.VALIDATED, JobState.STAGED, JobState.TRANSFORMING],
        [JobState.VALIDATED, JobState.STAGED, JobState.TRANSFORMING, JobState.STREAMING],
    ],
)
def test_failed_is_reachable_from_every_non_terminal_state(path):
    job = JobContext(job_id="abc", route="/video")
    for state in path:
        job.advance(state)

    job.advance(JobState.FAILED)

    assert job.state is JobState.FAILED


@pytest.mark.parametrize("terminal", [JobState.DONE, JobState.FAILED])
def test_terminal_states_are_final(terminal):
    job = JobContext(job_id="abc", route="/video")
    if terminal is JobState.DONE:
        for state in (JobState.VALIDATED, JobState.STAGED, JobState.TRANSFORMING, JobState.STREAMING):
            job.advance(state)
    job.advance(terminal)

    with pytest.raises(RuntimeError):
        job.advance(JobState.FAILED)


def test_skipping_a_stage_is_illegal():
    job = JobContext(job_id="abc", route="/video")

    with pytest.raises(RuntimeError):
        job.advance(JobState.TRANSFORMING)


def test_conversion_spec_is_immutable():
    spec = ConversionSpec(media="audio", operation="compress", quality=80)

    with pytest.raises(Exception):
        spec.quality = 20


def test_conversion_spec_rejects_mismatched_operation():
    with pytest.raises(ValueError):
        ConversionSpec(media="pdf", operation="resize", width=1, height=1)
