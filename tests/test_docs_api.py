from __future__ import annotations

import allure
import pytest
from _docs_fakes import FakeRenderer, FakeResolver, render_failure

from docs_builder.builder import DocsArtifactStore, DocsGenerator
from docs_builder.builder.registry import RegistryUnavailableError
from docs_builder.errors import FailureEnvelope, TypeDocBuildError
from docs_builder.jobs.api import DocsApi
from docs_builder.jobs.models import JobStatus, PackageSpec
from docs_builder.jobs.repository import JobRepository

pytestmark = [
    allure.epic("Docs Build Queue"),
    allure.feature("Trigger, Build and Poll Endpoints"),
]

LEFT_PAD = PackageSpec(name="left-pad", version="1.3.0")


@pytest.fixture()
def api(
    repository: JobRepository,
    resolver: FakeResolver,
    generator: DocsGenerator,
    artifacts: DocsArtifactStore,
) -> DocsApi:
    return DocsApi(
        repository=repository,
        resolver=resolver,
        generator=generator,
        artifacts=artifacts,
        poll_interval_ms=1000,
    )


def test_trigger_enqueues_job_with_poll_interval(api: DocsApi, repository: JobRepository) -> None:
    response = api.trigger("left-pad", "1.3.0")

    assert response.status_code == 200
    assert response.body["status"] == "queued"
    assert response.body["pollInterval"] == 1000
    job = repository.get_job(job_id=response.body["jobId"])
    assert job.package == LEFT_PAD
    assert job.status is JobStatus.QUEUED


def test_trigger_without_version_resolves_latest(api: DocsApi, repository: JobRepository) -> None:
    response = api.trigger("left-pad")

    assert repository.get_job(job_id=response.body["jobId"]).package == LEFT_PAD


def test_trigger_answers_success_for_fresh_docs(
    api: DocsApi,
    artifacts: DocsArtifactStore,
    repository: JobRepository,
) -> None:
    artifacts.mark_built(LEFT_PAD, types_package=None)

    response = api.trigger("left-pad", "1.3.0")

    assert response.status_code == 200
    assert response.body == {"status": "success"}
    assert repository.list_jobs() == []


def test_trigger_force_bypasses_freshness(api: DocsApi, artifacts: DocsArtifactStore) -> None:
    artifacts.mark_built(LEFT_PAD, types_package=None)

    response = api.trigger("left-pad", "1.3.0", force=True)

    assert response.body["status"] == "queued"


def test_trigger_reuses_open_job_for_same_version(api: DocsApi, repository: JobRepository) -> None:
    first = api.trigger("left-pad", "1.3.0")
    second = api.trigger("left-pad", "1.3.0")
    other = api.trigger("left-pad", "1.0.0")

    assert first.body["jobId"] == second.body["jobId"]
    assert other.body["jobId"] != first.body["jobId"]
    assert len(repository.list_jobs()) == 2


def test_forced_trigger_does_not_reuse_unforced_open_job(
    api: DocsApi,
    repository: JobRepository,
) -> None:
    plain = api.trigger("left-pad", "1.3.0")
    forced = api.trigger("left-pad", "1.3.0", force=True)
    forced_again = api.trigger("left-pad", "1.3.0", force=True)
    plain_again = api.trigger("left-pad", "1.3.0")

    assert forced.body["jobId"] != plain.body["jobId"]
    assert forced_again.body["jobId"] == forced.body["jobId"]
    assert plain_again.body["jobId"] == plain.body["jobId"]
    assert repository.get_job(job_id=forced.body["jobId"]).force is True
    assert len(repository.list_jobs()) == 2


def test_trigger_unknown_package_returns_error_name(api: DocsApi) -> None:
    response = api.trigger("no-such-package")

    assert response.status_code == 404
    assert response.body["name"] == "PackageNotFoundError"
    assert response.body["errorStack"] == ""


def test_trigger_unknown_version_returns_available_versions(api: DocsApi) -> None:
    response = api.trigger("left-pad", "9.9.9")

    assert response.status_code == 404
    assert response.body["name"] == "PackageVersionMismatchError"
    assert response.body["extra"] == ["1.0.0", "1.3.0"]


def test_trigger_registry_outage_returns_bad_gateway(
    repository: JobRepository,
    generator: DocsGenerator,
    artifacts: DocsArtifactStore,
) -> None:
    class _DownResolver(FakeResolver):
        def resolve_package(self, name, version=None):
            raise RegistryUnavailableError("Registry returned HTTP 503 for left-pad")

    api = DocsApi(
        repository=repository,
        resolver=_DownResolver(),
        generator=generator,
        artifacts=artifacts,
    )

    response = api.trigger("left-pad")

    assert response.status_code == 502
    assert "name" not in response.body


def test_build_renders_inline(api: DocsApi, artifacts: DocsArtifactStore) -> None:
    response = api.build("left-pad", "1.3.0")

    assert response.status_code == 200
    assert response.body == {"status": "success"}
    assert artifacts.is_fresh(LEFT_PAD)


def test_build_unknown_package_reports_failed_status(api: DocsApi) -> None:
    response = api.build("no-such-package")

    assert response.status_code == 200
    assert response.body["status"] == "failed"
    assert response.body["errorCode"] == "PackageNotFoundError"
    assert response.body["errorStack"] == ""


def test_build_render_failure_reports_stack(
    repository: JobRepository,
    resolver: FakeResolver,
    artifacts: DocsArtifactStore,
) -> None:
    api = DocsApi(
        repository=repository,
        resolver=resolver,
        generator=DocsGenerator(
            resolver=resolver,
            renderer=FakeRenderer(fail_with=render_failure()),
            artifacts=artifacts,
        ),
        artifacts=artifacts,
    )

    response = api.build("left-pad", "1.3.0")

    assert response.body == {
        "status": "failed",
        "errorCode": "TypeDocBuildError",
        "errorMessage": "Rendering docs for left-pad@1.3.0 failed with exit code 2",
        "errorStack": "Error: cannot extract declarations\n    at renderDocs",
    }


def test_poll_reports_lifecycle(api: DocsApi, repository: JobRepository) -> None:
    job_id = api.trigger("left-pad", "1.3.0").body["jobId"]
    assert api.poll(job_id).body == {"status": "queued"}

    repository.claim_next_job(worker_id="w1")
    assert api.poll(job_id).body == {"status": "queued"}

    repository.complete_job(job_id=job_id, result={})
    assert api.poll(job_id).body == {"status": "success"}


def test_poll_failed_job_exposes_persisted_failure(api: DocsApi, repository: JobRepository) -> None:
    job_id = api.trigger("left-pad", "1.3.0").body["jobId"]
    repository.claim_next_job(worker_id="w1")
    repository.fail_job(
        job_id=job_id,
        envelope=FailureEnvelope.from_error(TypeDocBuildError("boom", stack="Error: boom")),
    )

    response = api.poll(job_id)

    assert response.status_code == 200
    assert response.body == {
        "status": "failed",
        "errorCode": "TypeDocBuildError",
        "errorMessage": "boom",
        "errorStack": "Error: boom",
    }


def test_poll_unknown_job_is_not_found(api: DocsApi) -> None:
    assert api.poll("missing").status_code == 404
