import threading

import pytest

from conftest import StepClock
from storyteller.domain.errors import InvalidTransition, JobNotFound, VideoNotFound
from storyteller.domain.models import Job, JobStatus, Video, VideoStatus
from storyteller.infrastructure.persistence.in_memory_repo import InMemoryJobRepository


def make_job(clock, n=2, job_id="job-1"):
    now = clock()
    videos = [
        Video(id=f"v{i}", original_name=f"v{i}.mp4", mime_type="video/mp4", created_at=now)
        for i in range(n)
    ]
    return Job(id=job_id, created_at=now, videos=videos)


@pytest.fixture
def repo(clock):
    return InMemoryJobRepository(clock=clock)


def test_reads_are_snapshots(repo, clock):
    repo.create(make_job(clock))

    snapshot = repo.get("job-1")
    snapshot.videos[0].status = VideoStatus.COMPLETED
    snapshot.videos.append(snapshot.videos[0])

    fresh = repo.get("job-1")
    assert len(fresh.videos) == 2
    assert fresh.videos[0].status == VideoStatus.PENDING


def test_create_keeps_its_own_copy(repo, clock):
    job = make_job(clock)
    repo.create(job)
    job.videos.clear()

    assert len(repo.get("job-1").videos) == 2


def test_duplicate_job_id(repo, clock):
    repo.create(make_job(clock))

    with pytest.raises(ValueError):
        repo.create(make_job(clock))


def test_unknown_ids(repo, clock):
    repo.create(make_job(clock))

    assert repo.get("nope") is None
    assert repo.get_video("job-1", "nope") is None
    assert repo.get_video("nope", "v0") is None
    with pytest.raises(JobNotFound):
        repo.update_video("nope", "v0", lambda v, now: None)
    with pytest.raises(VideoNotFound):
        repo.update_video("job-1", "nope", lambda v, now: None)


def test_update_refreshes_job_status(repo, clock):
    repo.create(make_job(clock))

    repo.update_video("job-1", "v0", lambda v, now: v.fail("quota", now))
    assert repo.get("job-1").status == JobStatus.PROCESSING

    updated = repo.update_video("job-1", "v1", lambda v, now: v.complete("story", now))
    assert updated.story == "story"

    job = repo.get("job-1")
    assert job.status == JobStatus.COMPLETED
    assert job.completed_at == job.videos[1].completed_at


def test_failed_mutation_leaves_record(repo, clock):
    repo.create(make_job(clock))
    repo.update_video("job-1", "v0", lambda v, now: v.fail("quota", now))

    with pytest.raises(InvalidTransition):
        repo.update_video("job-1", "v0", lambda v, now: v.complete("late", now))

    video = repo.get_video("job-1", "v0")
    assert video.status == VideoStatus.FAILED
    assert video.error == "quota"
    assert video.story is None


def test_concurrent_updates_are_not_lost():
    repo = InMemoryJobRepository(clock=StepClock())
    repo.create(make_job(StepClock(), n=50))
    barrier = threading.Barrier(50)

    def finish(index):
        barrier.wait()
        repo.update_video("job-1", f"v{index}", lambda v, now: v.advance(VideoStatus.PROCESSING, now))
        repo.update_video("job-1", f"v{index}", lambda v, now: v.complete(f"story {index}", now))

    threads = [threading.Thread(target=finish, args=(i,)) for i in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    job = repo.get("job-1")
    assert job.status == JobStatus.COMPLETED
    assert [v.story for v in job.videos] == [f"story {i}" for i in range(50)]
    assert repo.count() == 1
